"""TTL-bounded enrichment cache with single-flight lookups."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from api_saver.enrichment.provider import EnrichmentProvider
from api_saver.telemetry.models import EnrichmentResult
from api_saver.utils.http import is_loopback

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0

# Shared by every loopback lookup.
LOCAL_RESULT = EnrichmentResult.local()


@dataclass
class CacheEntry:
    stored_at: float
    result: EnrichmentResult

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.stored_at < ttl_seconds


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    lookups: int = 0


class EnrichmentCache:
    """Resolve addresses to metadata, memoizing successes and failures alike.

    Concurrent misses for the same address share one in-flight lookup. Error
    results are cached for the full TTL so a failing upstream is asked at
    most once per window per address.
    """

    def __init__(
        self,
        provider: EnrichmentProvider,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        lookup_timeout_seconds: float | None = None,
        max_entries: int | None = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._ttl_seconds = ttl_seconds
        self._lookup_timeout = lookup_timeout_seconds
        self._max_entries = max_entries
        self._enabled = enabled
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._in_flight: dict[str, asyncio.Future[EnrichmentResult]] = {}
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            lookups=self._stats.lookups,
        )

    async def resolve(self, address: str) -> EnrichmentResult | None:
        if not self._enabled or not address:
            return None
        if is_loopback(address):
            return LOCAL_RESULT

        async with self._lock:
            entry = self._entries.get(address)
            if entry is not None and entry.is_fresh(self._clock(), self._ttl_seconds):
                self._stats.hits += 1
                return entry.result

            in_flight = self._in_flight.get(address)
            if in_flight is None:
                self._stats.misses += 1
                in_flight = asyncio.get_running_loop().create_future()
                self._in_flight[address] = in_flight
                should_lookup = True
            else:
                self._stats.hits += 1
                should_lookup = False

        if not should_lookup:
            return await asyncio.shield(in_flight)

        try:
            result = await self._lookup(address)
        except BaseException as exc:
            async with self._lock:
                future = self._in_flight.pop(address, None)
                if future is not None and not future.done():
                    future.set_exception(exc)
            raise

        async with self._lock:
            self._entries[address] = CacheEntry(stored_at=self._clock(), result=result)
            self._entries.move_to_end(address)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)

            future = self._in_flight.pop(address, None)
            if future is not None and not future.done():
                future.set_result(result)

        return result

    async def _lookup(self, address: str) -> EnrichmentResult:
        provider_name = getattr(self._provider, "name", "unknown")
        self._stats.lookups += 1
        try:
            if self._lookup_timeout is not None:
                return await asyncio.wait_for(
                    self._provider.lookup(address), timeout=self._lookup_timeout
                )
            return await self._provider.lookup(address)
        except asyncio.TimeoutError:
            logger.warning("Enrichment lookup for %s exceeded %ss", address, self._lookup_timeout)
            return EnrichmentResult.failure(provider_name, "lookup timed out")
        except Exception as e:
            logger.warning("Enrichment provider %s failed for %s: %s", provider_name, address, e)
            return EnrichmentResult.failure(provider_name, str(e))

    async def sweep_expired(self) -> int:
        """Drop stale entries. Returns the number removed."""
        async with self._lock:
            now = self._clock()
            stale = [
                key
                for key, entry in self._entries.items()
                if not entry.is_fresh(now, self._ttl_seconds)
            ]
            for key in stale:
                del self._entries[key]
            return len(stale)
