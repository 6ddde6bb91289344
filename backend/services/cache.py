"""In-memory TTL read-through cache with request coalescing.

One instance per process. Entries go stale lazily: nothing evicts them in the
background, a lookup past the TTL simply triggers a refetch. While a fetch for
a key is outstanding, later callers for the same key await that fetch instead
of starting their own.
"""

import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from errors import InvalidKeyError

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    fetched_at: float


class TTLCache:
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key) if isinstance(key, str) else None
        return entry is not None and self._is_fresh(entry)

    async def get(self, key: str, fetch_fn: FetchFn) -> Any:
        """Return the cached payload for `key`, fetching it when missing or stale.

        A failed fetch propagates to every caller waiting on it and leaves the
        existing entry untouched.
        """
        _check_key(key)

        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            return entry.payload

        task = self._pending.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._fetch_and_store(key, fetch_fn))
            self._pending[key] = task
            task.add_done_callback(functools.partial(self._settle, key))
        else:
            logger.debug("Joining in-flight fetch for %s", key)

        # One caller being cancelled must not cancel the fetch other callers share
        return await asyncio.shield(task)

    async def get_many(
        self, keys: Iterable[str], fetch_fn_for: Callable[[str], FetchFn]
    ) -> list[Any]:
        """Fetch all keys concurrently; results follow input order.

        Fails as soon as any single fetch fails.
        """
        keys = list(keys)
        for key in keys:
            _check_key(key)
        return list(await asyncio.gather(*[self.get(key, fetch_fn_for(key)) for key in keys]))

    def peek(self, key: str) -> Any | None:
        """Fresh payload for `key` without fetching, or None."""
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            return entry.payload
        return None

    def stale(self, key: str) -> Any | None:
        """Last stored payload for `key` regardless of age, or None."""
        entry = self._entries.get(key)
        return entry.payload if entry is not None else None

    def entry(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def invalidate(self, prefix: str = "") -> int:
        """Remove entries whose key starts with `prefix` (all if empty)."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self.ttl_seconds

    async def _fetch_and_store(self, key: str, fetch_fn: FetchFn) -> Any:
        try:
            result = fetch_fn()
            payload = await result if inspect.isawaitable(result) else result
            self._entries[key] = CacheEntry(key=key, payload=payload, fetched_at=self._clock())
            return payload
        finally:
            # Cleared before the task completes so later callers start a new fetch
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Fetch for %s failed: %s", key, task.exception())


def _check_key(key: object) -> None:
    if not isinstance(key, str) or not key.strip():
        raise InvalidKeyError(key)
