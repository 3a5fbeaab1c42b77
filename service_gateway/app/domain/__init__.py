"""
Domain utilities for the Gateway Service.

Includes cross-cutting middleware that does not belong to routing,
forwarding or rate limiting.
"""

from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "SecurityHeadersMiddleware",
]
