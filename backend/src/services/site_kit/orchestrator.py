"""
Cache-Aside Orchestrator.

Check the response cache, and on a miss (or an expired entry) call the
provider, store the result with a fresh TTL and return it. A failed fetch is
never cached and there is no serve-stale fallback. A cache outage only costs
the cache: reads fall through to a fresh fetch, failed writes are logged.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping

from backend.src.core.errors import CacheUnavailable
from backend.src.services.site_kit.domain import CachedReport, ReportProvider
from backend.src.services.site_kit.response_cache import ResponseCache, derive_cache_key
from backend.src.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class CacheAsideOrchestrator:
    def __init__(
        self,
        cache: ResponseCache,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    async def get_or_fetch(
        self,
        provider: ReportProvider,
        key_params: Mapping[str, Any] | None,
        fetch_fn: Callable[[], Awaitable[Any]],
        endpoint: str | None = None,
    ) -> CachedReport:
        now = self._clock()
        cache_key = derive_cache_key(provider, key_params, today=now.date())

        try:
            entry = await self.cache.get(provider, cache_key)
        except CacheUnavailable as e:
            logger.warning("⚠️ Cache lookup failed for %s, fetching fresh: %s", cache_key, e)
            entry = None

        if entry is not None and entry.is_live(now):
            logger.debug("📦 Cache hit for %s", cache_key)
            return CachedReport(
                provider=provider,
                cache_key=cache_key,
                payload=entry.payload,
                cached=True,
                cached_at=entry.fetched_at,
                fetch_duration_ms=entry.fetch_duration_ms,
            )

        # Errors propagate untouched and nothing is written
        started = time.perf_counter()
        payload = await fetch_fn()
        duration_ms = int((time.perf_counter() - started) * 1000)

        fetched_at = self._clock()
        try:
            await self.cache.put(
                provider,
                cache_key,
                payload,
                expires_at=fetched_at + self.ttl,
                fetched_at=fetched_at,
                fetch_duration_ms=duration_ms,
                endpoint=endpoint,
            )
        except CacheUnavailable as e:
            logger.warning("⚠️ Could not cache %s: %s", cache_key, e)

        return CachedReport(
            provider=provider,
            cache_key=cache_key,
            payload=payload,
            cached=False,
            fetch_duration_ms=duration_ms,
        )
