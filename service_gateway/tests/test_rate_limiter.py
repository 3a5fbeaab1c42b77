"""
Unit tests for Gateway Rate Limiter.
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from service_gateway.app.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def rate_limiter(self):
        """Create a limiter with the production defaults."""
        return FixedWindowRateLimiter(max_requests=100, window_seconds=900)

    @pytest.mark.asyncio
    async def test_admits_up_to_threshold(self, rate_limiter):
        """Every request up to the threshold within one window is admitted."""
        for expected_count in range(1, 101):
            decision = await rate_limiter.admit("10.0.0.1", now=1000.0)
            assert decision.allowed is True
            assert decision.current_count == expected_count

        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_rejects_request_over_threshold(self, rate_limiter):
        """The (threshold + 1)-th request in the window is rejected with a message."""
        for _ in range(100):
            await rate_limiter.admit("10.0.0.1", now=1000.0)

        decision = await rate_limiter.admit("10.0.0.1", now=1001.0)

        assert decision.allowed is False
        assert decision.current_count == 101
        assert decision.limit == 100
        assert decision.message == "Rate limit exceeded. Maximum 100 requests per 15 minutes."
        assert decision.reset_in_seconds == 899

    @pytest.mark.asyncio
    async def test_window_rollover_resets_count(self, rate_limiter):
        """After the reset time, the next request starts a new window at 1."""
        for _ in range(101):
            await rate_limiter.admit("10.0.0.1", now=0.0)

        decision = await rate_limiter.admit("10.0.0.1", now=900.0)

        assert decision.allowed is True
        assert decision.current_count == 1
        assert decision.reset_at == 1800.0

    @pytest.mark.asyncio
    async def test_clients_are_counted_independently(self):
        """One client's budget does not affect another's."""
        rate_limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60)

        await rate_limiter.admit("a", now=0.0)
        await rate_limiter.admit("a", now=0.0)
        rejected = await rate_limiter.admit("a", now=0.0)
        other = await rate_limiter.admit("b", now=0.0)

        assert rejected.allowed is False
        assert other.allowed is True
        assert other.current_count == 1

    @pytest.mark.asyncio
    async def test_count_keeps_growing_while_rejected(self):
        """Rejected requests still count within the window."""
        rate_limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60)

        counts = [(await rate_limiter.admit("a", now=5.0)).current_count for _ in range(4)]

        assert counts == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_expired_windows_are_purged_lazily(self):
        """Expired windows of other clients are dropped during later calls."""
        rate_limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=10, sweep_interval_seconds=0)

        await rate_limiter.admit("a", now=0.0)
        await rate_limiter.admit("b", now=0.0)
        await rate_limiter.admit("c", now=5.0)
        assert rate_limiter.tracked_clients == 3

        await rate_limiter.admit("c", now=11.0)

        assert rate_limiter.tracked_clients == 1

    @pytest.mark.asyncio
    async def test_sweep_is_throttled(self):
        """Sweeps run at most once per sweep interval."""
        rate_limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=10, sweep_interval_seconds=60)

        await rate_limiter.admit("a", now=0.0)
        await rate_limiter.admit("b", now=20.0)
        assert rate_limiter.tracked_clients == 2

        await rate_limiter.admit("b", now=61.0)
        assert rate_limiter.tracked_clients == 1

    @pytest.mark.asyncio
    async def test_concurrent_admits_do_not_undercount(self):
        """Concurrent checks for the same client serialize their increments."""
        rate_limiter = FixedWindowRateLimiter(max_requests=100, window_seconds=900)

        decisions = await asyncio.gather(*(rate_limiter.admit("burst", now=1.0) for _ in range(150)))

        assert sorted(d.current_count for d in decisions) == list(range(1, 151))
        assert sum(1 for d in decisions if d.allowed) == 100

    def test_window_minutes_in_message(self):
        """Non-integral windows are shown with fractional minutes."""
        rate_limiter = FixedWindowRateLimiter(max_requests=10, window_seconds=90)
        assert rate_limiter.rejection_message == "Rate limit exceeded. Maximum 10 requests per 1.5 minutes."

    def test_invalid_parameters(self):
        """Zero thresholds or windows are rejected."""
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(window_seconds=0)


class TestRateLimitMiddleware:
    """Test cases for RateLimitMiddleware."""

    def _build_app(self, rate_limiter, **kwargs):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, rate_limiter=rate_limiter, **kwargs)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        @app.get("/open")
        async def open_route():
            return {"ok": True}

        return app

    def test_rejects_with_429_and_headers(self):
        """Over-limit requests get the 429 body and rate limit headers."""
        app = self._build_app(FixedWindowRateLimiter(max_requests=1, window_seconds=60))

        with TestClient(app) as client:
            first = client.get("/ping")
            second = client.get("/ping")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"
        assert first.headers["X-RateLimit-Remaining"] == "0"

        assert second.status_code == 429
        assert second.json() == {
            "error": "Too many requests",
            "message": "Rate limit exceeded. Maximum 1 requests per 1 minutes.",
        }
        assert int(second.headers["Retry-After"]) <= 60

    def test_exempt_paths_bypass_limiter(self):
        """Exempt paths are neither counted nor rejected."""
        app = self._build_app(
            FixedWindowRateLimiter(max_requests=1, window_seconds=60),
            exempt_paths=("/open",),
        )

        with TestClient(app) as client:
            statuses = [client.get("/open").status_code for _ in range(3)]
            assert client.get("/ping").status_code == 200
            assert client.get("/ping").status_code == 429

        assert statuses == [200, 200, 200]

    def test_client_id_ignores_forwarded_headers_by_default(self):
        """Forwarded headers are only trusted when configured."""
        middleware = RateLimitMiddleware(MagicMock(), rate_limiter=FixedWindowRateLimiter())
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        request.client.host = "127.0.0.1"

        assert middleware._get_client_id(request) == "127.0.0.1"

    def test_client_id_from_forwarded_headers_when_trusted(self):
        """First X-Forwarded-For hop, then X-Real-IP, then the socket address."""
        middleware = RateLimitMiddleware(
            MagicMock(), rate_limiter=FixedWindowRateLimiter(), trust_forwarded_headers=True
        )
        request = MagicMock()
        request.client.host = "127.0.0.1"

        request.headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        assert middleware._get_client_id(request) == "203.0.113.9"

        request.headers = {"X-Real-IP": "198.51.100.7"}
        assert middleware._get_client_id(request) == "198.51.100.7"

        request.headers = {}
        assert middleware._get_client_id(request) == "127.0.0.1"

    def test_client_id_unknown_without_peer(self):
        """Requests without a peer address share the 'unknown' bucket."""
        middleware = RateLimitMiddleware(MagicMock(), rate_limiter=FixedWindowRateLimiter())
        request = MagicMock()
        request.headers = {}
        request.client = None

        assert middleware._get_client_id(request) == "unknown"
