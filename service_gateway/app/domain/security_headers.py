"""
Security header middleware for the Gateway.
"""

from typing import Dict, Iterable, Mapping, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

# Headers that advertise the server stack
DEFAULT_STRIPPED_HEADERS = ("X-Powered-By", "Server")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp hardening headers on every response and drop stack disclosure headers."""

    def __init__(
        self,
        app,
        headers: Optional[Mapping[str, str]] = None,
        stripped_headers: Iterable[str] = DEFAULT_STRIPPED_HEADERS,
    ):
        super().__init__(app)
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)
        self.stripped_headers = tuple(stripped_headers)

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name in self.stripped_headers:
            if name in response.headers:
                del response.headers[name]
        for name, value in self.headers.items():
            response.headers[name] = value
        return response
