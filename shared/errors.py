"""
Shared error handling for the proxy gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for gateway errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details,
        )


class ConfigurationError(GatewayException):
    """Missing or invalid startup configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class PayloadTooLargeError(GatewayException):
    """Inbound body exceeds the configured limit."""

    status_code = 413

    def __init__(self, limit: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "PAYLOAD_TOO_LARGE",
            f"Request body exceeds {limit} bytes",
            {"limit": limit, **(details or {})},
        )
