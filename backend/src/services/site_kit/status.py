"""Read-only projection of the integration row for the admin dashboard."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from backend.src.core.errors import CacheUnavailable, NotConfigured
from backend.src.models.site_kit import ConnectionStatus
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.domain import ReportProvider
from backend.src.services.site_kit.response_cache import ResponseCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceStatus:
    enabled: bool
    configured: bool


@dataclass
class SiteKitStatus:
    configured: bool
    connection_status: str
    last_error: str | None = None
    last_sync_at: datetime | None = None
    # Latest successful provider fetch still held by the response cache
    last_fetch_at: datetime | None = None
    token_expires_at: datetime | None = None
    services: dict[str, ServiceStatus] = field(default_factory=dict)
    setup_issues: list[str] = field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED.value


class StatusReporter:
    def __init__(self, store: CredentialStore, cache: ResponseCache | None = None):
        self.store = store
        self.cache = cache

    async def report(self) -> SiteKitStatus:
        # Always a fresh read; CredentialStoreError reaches the caller
        try:
            config = await self.store.read()
        except NotConfigured:
            return SiteKitStatus(
                configured=False,
                connection_status=ConnectionStatus.DISCONNECTED.value,
                services={p.value: ServiceStatus(False, False) for p in ReportProvider},
                setup_issues=["Google Site Kit has not been configured"],
            )

        return SiteKitStatus(
            configured=True,
            connection_status=config.connection_status,
            last_error=config.last_error,
            last_sync_at=config.last_sync_at,
            last_fetch_at=await self._last_fetch_at(),
            token_expires_at=config.access_token_expires_at,
            services={
                p.value: ServiceStatus(
                    enabled=config.service_enabled(p),
                    configured=config.service_configured(p),
                )
                for p in ReportProvider
            },
            setup_issues=config.setup_issues(),
        )

    async def _last_fetch_at(self) -> datetime | None:
        if self.cache is None:
            return None
        try:
            return await self.cache.latest_fetched_at()
        except CacheUnavailable as e:
            logger.warning("⚠️ Could not read last fetch time: %s", e)
            return None
