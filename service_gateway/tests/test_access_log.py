"""
Unit tests for the Gateway access log.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from service_gateway.app.accesslog import AccessLog, ProxyLogEntry


def _entry(path: str, status_code: int = 200, service: str = "auth") -> ProxyLogEntry:
    return ProxyLogEntry(
        method="GET",
        path=path,
        target_service=service,
        status_code=status_code,
        response_time_ms=12.5,
    )


@pytest.mark.asyncio
async def test_newest_first():
    """Entries are listed newest first."""
    access_log = AccessLog()
    for index in range(3):
        await access_log.record(_entry(f"/api/auth/{index}"))

    entries = await access_log.list()

    assert [entry.path for entry in entries] == ["/api/auth/2", "/api/auth/1", "/api/auth/0"]
    assert [entry.id for entry in entries] == [3, 2, 1]


@pytest.mark.asyncio
async def test_capacity_evicts_oldest():
    """After entry 101, entry 1 is gone and 2..101 remain in order."""
    access_log = AccessLog(capacity=100)
    for index in range(1, 102):
        await access_log.record(_entry(f"/api/auth/{index}"))

    entries = await access_log.list()

    assert len(access_log) == 100
    assert [entry.id for entry in entries] == list(range(101, 1, -1))
    assert all(entry.path != "/api/auth/1" for entry in entries)


@pytest.mark.asyncio
async def test_list_truncates_to_limit():
    """list(limit) returns only the newest entries."""
    access_log = AccessLog(capacity=10)
    for index in range(5):
        await access_log.record(_entry(f"/api/auth/{index}"))

    assert [entry.path for entry in await access_log.list(2)] == ["/api/auth/4", "/api/auth/3"]
    assert await access_log.list(0) == []
    assert len(await access_log.list(50)) == 5


@pytest.mark.asyncio
async def test_concurrent_records_are_not_lost():
    """Concurrent writers each produce exactly one entry."""
    access_log = AccessLog(capacity=100)

    await asyncio.gather(*(access_log.record(_entry(f"/api/auth/{i}")) for i in range(60)))

    entries = await access_log.list()
    assert len(entries) == 60
    assert sorted(entry.path for entry in entries) == sorted(f"/api/auth/{i}" for i in range(60))
    assert len({entry.id for entry in entries}) == 60


@pytest.mark.asyncio
async def test_latest_by_service():
    """The newest entry per service is reported."""
    access_log = AccessLog()
    await access_log.record(_entry("/api/auth/a", 200, "auth"))
    await access_log.record(_entry("/api/videos/a", 502, "video"))
    await access_log.record(_entry("/api/auth/b", 500, "auth"))

    latest = await access_log.latest_by_service()

    assert latest["auth"].path == "/api/auth/b"
    assert latest["video"].status_code == 502
    assert "emotion" not in latest


def test_entry_serialization():
    """Entries serialize with the public field names."""
    entry = ProxyLogEntry(
        method="POST",
        path="/api/send-email",
        target_service="notification",
        status_code=202,
        response_time_ms=41.237,
        timestamp=datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc),
        id=7,
    )

    assert entry.to_dict() == {
        "id": 7,
        "method": "POST",
        "path": "/api/send-email",
        "targetService": "notification",
        "statusCode": 202,
        "responseTime": 41.24,
        "timestamp": "2024-01-02T03:04:05.678Z",
    }


def test_entries_are_immutable():
    """Entries cannot be changed after creation."""
    entry = _entry("/api/auth/me")
    with pytest.raises(AttributeError):
        entry.status_code = 500


def test_invalid_capacity():
    """Capacity must be positive."""
    with pytest.raises(ValueError):
        AccessLog(capacity=0)
