"""
Rate limiting package for the Gateway.

Holds the per-client fixed-window limiter and the middleware that turns
its decisions into 429 responses ahead of routing.
"""

from .fixed_window import ClientWindow, FixedWindowRateLimiter, RateLimitDecision
from .middleware import RateLimitMiddleware

__all__ = [
    "ClientWindow",
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RateLimitMiddleware",
]
