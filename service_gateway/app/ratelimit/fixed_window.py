"""
Fixed-window rate limiter for Gateway service.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from shared.logging import get_logger


@dataclass
class ClientWindow:
    """Request counter for one client within the current window."""

    client_key: str
    request_count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    client_key: str
    current_count: int
    limit: int
    reset_at: float
    checked_at: float
    message: Optional[str] = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_count)

    @property
    def reset_in_seconds(self) -> int:
        return max(0, math.ceil(self.reset_at - self.checked_at))


class FixedWindowRateLimiter:
    """In-process fixed-window limiter keyed by client identity.

    The window table is the limiter's own state. Every read-modify-write
    runs under one asyncio lock that is never held across I/O. Expired
    windows belonging to other clients are swept lazily during ``admit``
    at most once per sweep interval.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        sweep_interval_seconds: Optional[float] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        if sweep_interval_seconds is None:
            sweep_interval_seconds = min(60.0, window_seconds)
        self.sweep_interval_seconds = sweep_interval_seconds
        self.logger = get_logger("gateway.rate_limiter")

        self._windows: Dict[str, ClientWindow] = {}
        self._lock = asyncio.Lock()
        self._next_sweep_at: Optional[float] = None

    @property
    def window_minutes(self):
        minutes = self.window_seconds / 60
        return int(minutes) if minutes == int(minutes) else round(minutes, 2)

    @property
    def rejection_message(self) -> str:
        return f"Rate limit exceeded. Maximum {self.max_requests} requests per {self.window_minutes} minutes."

    @property
    def tracked_clients(self) -> int:
        """Number of client windows currently held."""
        return len(self._windows)

    async def admit(self, client_key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Count one request for ``client_key`` and decide whether to admit it."""
        if now is None:
            now = time.monotonic()

        async with self._lock:
            self._sweep_expired(now, keep=client_key)

            window = self._windows.get(client_key)
            if window is None or now >= window.window_reset_at:
                window = ClientWindow(client_key, 1, now + self.window_seconds)
                self._windows[client_key] = window
            else:
                window.request_count += 1

            count = window.request_count
            reset_at = window.window_reset_at

        if count > self.max_requests:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_key,
                current_count=count,
                limit=self.max_requests
            )
            return RateLimitDecision(
                allowed=False,
                client_key=client_key,
                current_count=count,
                limit=self.max_requests,
                reset_at=reset_at,
                checked_at=now,
                message=self.rejection_message,
            )

        return RateLimitDecision(
            allowed=True,
            client_key=client_key,
            current_count=count,
            limit=self.max_requests,
            reset_at=reset_at,
            checked_at=now,
        )

    def _sweep_expired(self, now: float, keep: str) -> None:
        # Caller holds the lock.
        if self._next_sweep_at is not None and now < self._next_sweep_at:
            return
        expired = [
            key for key, window in self._windows.items()
            if key != keep and now >= window.window_reset_at
        ]
        for key in expired:
            del self._windows[key]
        if expired:
            self.logger.debug("Purged expired rate limit windows", purged=len(expired))
        self._next_sweep_at = now + self.sweep_interval_seconds
