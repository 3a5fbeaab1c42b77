"""
Bounded in-memory access log for proxied requests.
"""

import asyncio
import itertools
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProxyLogEntry:
    """One completed forward, successful or not."""

    method: str
    path: str
    target_service: str
    status_code: int
    response_time_ms: float
    timestamp: datetime = field(default_factory=_utcnow)
    id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "path": self.path,
            "targetService": self.target_service,
            "statusCode": self.status_code,
            "responseTime": round(self.response_time_ms, 2),
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }


class AccessLog:
    """Fixed-capacity log, newest entry first.

    Appending beyond capacity evicts the oldest entry. Ids are assigned on
    record and increase strictly, so they also order entries across
    concurrent writers.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[ProxyLogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def record(self, entry: ProxyLogEntry) -> ProxyLogEntry:
        """Append an entry, returning it with its assigned id."""
        async with self._lock:
            entry = replace(entry, id=next(self._ids))
            self._entries.appendleft(entry)
        return entry

    async def list(self, limit: Optional[int] = None) -> List[ProxyLogEntry]:
        """Snapshot of the newest ``limit`` entries (all when ``limit`` is None)."""
        async with self._lock:
            if limit is None:
                return list(self._entries)
            return list(itertools.islice(self._entries, max(0, limit)))

    async def latest_by_service(self) -> Dict[str, ProxyLogEntry]:
        """Most recent entry per target service."""
        latest: Dict[str, ProxyLogEntry] = {}
        for entry in await self.list():
            latest.setdefault(entry.target_service, entry)
        return latest
