"""In-memory TTL cache for query results, plus in-flight request coalescing."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class _Miss:
    """Sentinel returned by TTLCache.get when nothing fresh is stored."""

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class TTLCache:
    """Keyed store where every entry carries its own TTL in milliseconds.

    Expiry is only detected on read: a stale entry is removed the first time
    it is looked up. There is no size cap and no background sweep.
    """

    def __init__(self, clock: Callable[[], float] = _monotonic_ms) -> None:
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any:
        """Return the cached value, or MISS if absent or expired."""
        entry = self._store.get(key)
        if entry is None:
            return MISS
        if not entry.is_fresh(self._clock()):
            self._store.pop(key, None)
            logger.debug(f"Cache entry expired: {key}")
            return MISS
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._store[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        self._store.pop(key, None)

    def invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        """Drop every key the predicate accepts. Returns the number removed."""
        keys = [k for k in self._store if predicate(k)]
        for k in keys:
            del self._store[k]
        return len(keys)

    def clear(self) -> None:
        self._store.clear()

    def keys(self) -> list[str]:
        return list(self._store)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISS

    def __len__(self) -> int:
        return len(self._store)


class RequestCoalescer:
    """Collapse concurrent fetches for the same key into one awaited task."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task] = {}

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug(f"Joining in-flight request: {key}")
        # shield: one waiter being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # mark the exception retrieved in case every waiter was cancelled
        if not task.cancelled():
            task.exception()
