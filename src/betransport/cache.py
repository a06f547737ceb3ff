"""In-memory result cache and in-flight request deduplication.

Both live for the lifetime of the process and are only touched from the
event loop, so no locking is involved.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from .models import SearchOptions, TransportNetwork

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    data: T
    timestamp: float


class ResultCache:
    """Time-windowed key/value store with lazy expiry.

    An entry is served while its age is below ``ttl_seconds``. Expired entries
    are dropped when read. When ``max_entries`` is set, the least recently
    used entry is evicted once the cache is full.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Cache miss for %s", key)
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            del self._entries[key]
            logger.debug("Cache entry expired for %s", key)
            return None
        self._entries.move_to_end(key)
        logger.debug("Cache hit for %s", key)
        return entry.data

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock())
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from cache", evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _normalize_name(name: str | None) -> str | None:
    if name is None:
        return None
    return name.strip().casefold()


def make_cache_key(
    kind: str,
    network: TransportNetwork,
    origin: str,
    destination: str | None = None,
    options: SearchOptions | None = None,
) -> str:
    """Build a canonical fingerprint of a request.

    Every input that changes the upstream answer is part of the key. An absent
    destination or options encode as ``null``, which never equals a string.
    """
    return json.dumps(
        [
            kind,
            network.value,
            _normalize_name(origin),
            _normalize_name(destination),
            options.date.isoformat() if options else None,
            options.time.strftime("%H:%M") if options else None,
        ],
        ensure_ascii=False,
        separators=(",", ":"),
    )


class InflightRequests:
    """Collapse concurrent identical requests into one upstream call."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[Any]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the shared task for ``key``, starting it if none is running."""
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda done: self._finish(key, done))
        else:
            logger.debug("Joining in-flight request for %s", key)
        # A cancelled waiter must not cancel the shared call.
        return await asyncio.shield(task)

    def _finish(self, key: str, task: asyncio.Task[Any]) -> None:
        self._pending.pop(key, None)
        # Consume the outcome even when every waiter was cancelled.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("In-flight request for %s failed: %r", key, task.exception())
