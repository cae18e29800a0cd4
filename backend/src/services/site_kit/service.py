from __future__ import annotations

from datetime import date, datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.src.core.config import Settings
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.domain import CachedReport, ReportProvider, ReportQuery
from backend.src.services.site_kit.orchestrator import CacheAsideOrchestrator
from backend.src.services.site_kit.providers.base import ProviderAdapter
from backend.src.services.site_kit.providers.factory import build_adapters
from backend.src.services.site_kit.response_cache import ResponseCache
from backend.src.services.site_kit.status import StatusReporter
from backend.src.services.site_kit.token_refresher import TokenRefresher
from backend.src.utils.timeutils import utcnow

MAX_REPORT_DAYS = 90


class SiteKitService:
    """Wires the store, refresher, adapters and cache together for the routes."""

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        adapters: dict[ReportProvider, ProviderAdapter],
        orchestrator: CacheAsideOrchestrator,
        status_reporter: StatusReporter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.refresher = refresher
        self.adapters = adapters
        self.orchestrator = orchestrator
        self.status_reporter = status_reporter
        self._clock = clock

    def build_query(
        self,
        provider: ReportProvider,
        end_date: date | None = None,
        days: int | None = None,
    ) -> ReportQuery:
        adapter = self.adapters[provider]
        days = days or adapter.default_days
        if not 1 <= days <= MAX_REPORT_DAYS:
            raise ValueError(f"days must be between 1 and {MAX_REPORT_DAYS}")
        return ReportQuery(end_date=end_date or self._clock().date(), days=days)

    async def get_report(
        self,
        provider: ReportProvider,
        end_date: date | None = None,
        days: int | None = None,
    ) -> CachedReport:
        adapter = self.adapters[provider]
        query = self.build_query(provider, end_date, days)

        async def fetch():
            return await adapter.fetch_report(query)

        return await self.orchestrator.get_or_fetch(
            provider, query.cache_params(), fetch, endpoint=adapter.endpoint
        )


def build_site_kit(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    clock: Callable[[], datetime] = utcnow,
) -> SiteKitService:
    store = CredentialStore(session_factory, clock=clock)
    refresher = TokenRefresher(
        store,
        token_url=settings.GOOGLE_TOKEN_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        margin_seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS,
        clock=clock,
    )
    cache = ResponseCache(session_factory)
    orchestrator = CacheAsideOrchestrator(
        cache,
        ttl_seconds=settings.SITE_KIT_CACHE_TTL_SECONDS,
        clock=clock,
    )
    return SiteKitService(
        store=store,
        refresher=refresher,
        adapters=build_adapters(store, refresher, settings),
        orchestrator=orchestrator,
        status_reporter=StatusReporter(store, cache),
        clock=clock,
    )
