"""In-memory TTL response cache with in-flight request deduplication."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Final

from ..models import CacheEntry
from ..telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Final = _Miss()


def cache_key(method: str, url: str) -> str:
    """Build the cache/dedup key for a request."""
    return f"{method.upper()}:{url}"


class ResponseCache:
    """TTL cache plus a registry of pending requests.

    Cached values and pending requests are independent: a key may dedupe
    concurrent calls without ever storing a value.

    Attributes:
        clock: Monotonic time source in seconds.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Task[Any]] = {}
        self._logger = get_logger()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def read(self, key: str) -> Any:
        """Return the cached value for ``key`` or ``MISS``.

        Expired entries are evicted on read.
        """
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if not entry.is_fresh(self.clock()):
            del self._entries[key]
            return MISS
        return entry.value

    def write(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds. A non-positive TTL stores nothing."""
        if ttl <= 0:
            return
        now = self.clock()
        self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + ttl)

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop cached entries.

        Args:
            pattern: Substring to match against keys; ``None`` drops everything.

        Returns:
            Number of entries removed.
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            keys = [key for key in self._entries if pattern in key]
            for key in keys:
                del self._entries[key]
            removed = len(keys)

        if removed:
            self._logger.debug("Cache invalidated", pattern=pattern, removed=removed)
        return removed

    def pending(self, key: str) -> asyncio.Task[Any] | None:
        """Get the in-flight request registered for ``key``."""
        return self._pending.get(key)

    def attach_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[Any]:
        """Join the in-flight request for ``key`` or start a new one.

        The new task's first done-callback unregisters it, so it is gone
        from the registry before any awaiting caller resumes.
        """
        task = self._pending.get(key)
        if task is not None:
            return task

        task = asyncio.ensure_future(factory())
        self._pending[key] = task
        task.add_done_callback(lambda t: self._release(key, t))
        return task

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # Mark the outcome retrieved; every waiter gets its own copy via await.
        if not task.cancelled():
            task.exception()
