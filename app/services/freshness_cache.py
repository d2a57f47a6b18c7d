"""
Freshness Cache

Holds the last good value of one upstream source together with the time it
was fetched. Fresh values are served without I/O; stale values trigger a
refresh, and a failed refresh falls back to the value already held.
"""
import asyncio
import copy
import logging
import time
from typing import Awaitable, Callable, Generic, TypeVar

from app.errors import NoDataAvailable, RefreshError
from app.services.fetch_types import CacheEntry


logger = logging.getLogger(__name__)

T = TypeVar('T')


class FreshnessCache(Generic[T]):
    """
    TTL-gated cache slot for one data source.

    Reads never take a lock: the slot holds an immutable CacheEntry that is
    replaced wholesale after a successful refresh, and readers get a shallow
    copy of its value.

    Refreshes are single-flight. A reader that finds a refresh already in
    progress gets the stale value straight away; only a cold cache waits for
    the in-flight attempt.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Source name used in logs and errors (e.g. 'playlist')
            loader: Async callable that fetches and parses the source
            ttl_seconds: Age after which the cached value is stale
            clock: Monotonic clock, injectable for tests
        """
        self.name = name
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._entry: CacheEntry[T] | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def fetched_at(self) -> float | None:
        entry = self._entry
        return entry.fetched_at if entry else None

    def age(self) -> float | None:
        """Seconds since the last successful fetch, None when empty"""
        entry = self._entry
        return self._clock() - entry.fetched_at if entry else None

    def is_empty(self) -> bool:
        return self._entry is None

    def is_stale(self) -> bool:
        """True when a value is held and it is at least ttl seconds old"""
        entry = self._entry
        return entry is not None and self._is_expired(entry)

    def is_refreshing(self) -> bool:
        return self._refresh_lock.locked()

    def _is_expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.fetched_at >= self._ttl

    async def get(self) -> T:
        """
        Return the cached value, refreshing it first when stale or missing.

        Raises:
            NoDataAvailable: If no value was ever fetched successfully
        """
        entry = self._entry
        if entry is not None and not self._is_expired(entry):
            return copy.copy(entry.value)

        return await self.refresh()

    async def refresh(self, force: bool = False) -> T:
        """
        Fetch a new value and swap it into the slot.

        On failure the previous value and its timestamp are kept, so the next
        read retries. Without a previous value the failure is surfaced.

        Args:
            force: Refresh even if another caller just made the value fresh

        Raises:
            NoDataAvailable: If the fetch failed and nothing is cached
        """
        entry = self._entry
        if entry is not None and self._refresh_lock.locked():
            logger.debug("%s refresh already in progress, serving cached value", self.name)
            return copy.copy(entry.value)

        async with self._refresh_lock:
            entry = self._entry
            if not force and entry is not None and not self._is_expired(entry):
                # Someone else refreshed while we waited
                return copy.copy(entry.value)

            started = self._clock()
            try:
                value = await self._loader()
            except RefreshError as exc:
                if entry is None:
                    logger.error("Initial %s fetch failed: %s", self.name, exc)
                    raise NoDataAvailable(self.name) from exc

                logger.warning(
                    "%s refresh failed, serving value fetched %.0fs ago: %s",
                    self.name.capitalize(),
                    self._clock() - entry.fetched_at,
                    exc,
                )
                return copy.copy(entry.value)

            self._entry = CacheEntry(value=value, fetched_at=self._clock())
            logger.info(
                "%s refreshed in %.2fs",
                self.name.capitalize(),
                self._entry.fetched_at - started,
            )
            return copy.copy(value)
