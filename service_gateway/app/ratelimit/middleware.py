"""
Rate limiting middleware for the Gateway.
"""

from typing import Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.metrics import MetricsCollector
from service_gateway.app.ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitDecision


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject over-limit clients before any routing or forwarding happens."""

    def __init__(
        self,
        app,
        rate_limiter: FixedWindowRateLimiter,
        exempt_paths: Iterable[str] = (),
        trust_forwarded_headers: bool = False,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.exempt_paths = tuple(exempt_paths)
        self.trust_forwarded_headers = trust_forwarded_headers
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request.url.path):
            return await call_next(request)

        client_id = self._get_client_id(request)
        decision = await self.rate_limiter.admit(client_id)

        if not decision.allowed:
            if self.metrics is not None:
                self.metrics.record_rate_limit_hit()
            response = JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests",
                    "message": decision.message,
                }
            )
            response.headers["Retry-After"] = str(decision.reset_in_seconds)
        else:
            response = await call_next(request)

        self._set_rate_limit_headers(response, decision)
        return response

    def _is_exempt(self, path: str) -> bool:
        for pattern in self.exempt_paths:
            if pattern.endswith("/*"):
                if path.startswith(pattern[:-1]):
                    return True
            elif path == pattern:
                return True
        return False

    def _set_rate_limit_headers(self, response: Response, decision: RateLimitDecision) -> None:
        """Propagate rate limiting metadata via standard headers."""
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Reset"] = str(decision.reset_in_seconds)

    def _get_client_id(self, request: Request) -> str:
        """Extract client ID from request."""
        if self.trust_forwarded_headers:
            forwarded_for = request.headers.get('X-Forwarded-For')
            if forwarded_for:
                return forwarded_for.split(',')[0].strip()

            real_ip = request.headers.get('X-Real-IP')
            if real_ip:
                return real_ip

        return request.client.host if request.client else 'unknown'
