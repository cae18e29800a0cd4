from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any


class ReportProvider(str, enum.Enum):
    ADSENSE = "adsense"
    ANALYTICS = "analytics"
    SEARCH_CONSOLE = "search_console"


# provider -> (enable flag column, identifier column)
SERVICE_COLUMNS: dict[ReportProvider, tuple[str, str]] = {
    ReportProvider.ADSENSE: ("enable_adsense", "adsense_account_id"),
    ReportProvider.ANALYTICS: ("enable_analytics", "analytics_property_id"),
    ReportProvider.SEARCH_CONSOLE: ("enable_search_console", "search_console_site_url"),
}


@dataclass(frozen=True)
class IntegrationConfig:
    """Decrypted snapshot of the integration row."""

    id: int
    client_id: str | None
    client_secret: str | None
    access_token: str | None
    refresh_token: str | None
    access_token_expires_at: datetime | None
    token_version: int
    connection_status: str
    last_error: str | None
    last_sync_at: datetime | None
    enabled_services: frozenset[ReportProvider] = frozenset()
    adsense_publisher_id: str | None = None
    adsense_account_id: str | None = None
    analytics_property_id: str | None = None
    search_console_site_url: str | None = None

    def has_usable_token(self, now: datetime, margin: timedelta) -> bool:
        # A missing expiry counts as expired
        if not self.access_token or self.access_token_expires_at is None:
            return False
        return self.access_token_expires_at - margin > now

    def service_enabled(self, provider: ReportProvider) -> bool:
        return provider in self.enabled_services

    def service_identifier(self, provider: ReportProvider) -> str | None:
        return getattr(self, SERVICE_COLUMNS[provider][1])

    def service_configured(self, provider: ReportProvider) -> bool:
        return bool(self.service_identifier(provider))

    def setup_issues(self) -> list[str]:
        """Human readable reasons the integration cannot serve every enabled report."""
        issues = []
        if not self.client_id:
            issues.append("oauth_client_id is required")
        if not self.client_secret:
            issues.append("oauth_client_secret is required")

        if self.service_enabled(ReportProvider.ADSENSE):
            if not self.adsense_publisher_id:
                issues.append("adsense_publisher_id is required when AdSense is enabled")
            elif not self.adsense_publisher_id.startswith("ca-pub-"):
                issues.append('adsense_publisher_id must start with "ca-pub-"')
            if not self.adsense_account_id:
                issues.append("adsense_account_id is required when AdSense is enabled")

        if self.service_enabled(ReportProvider.ANALYTICS) and not self.analytics_property_id:
            issues.append("analytics_property_id is required when Analytics is enabled")

        if self.service_enabled(ReportProvider.SEARCH_CONSOLE):
            if not self.search_console_site_url:
                issues.append("search_console_site_url is required when Search Console is enabled")
            elif not self.search_console_site_url.startswith(("http://", "https://", "sc-domain:")):
                issues.append("search_console_site_url must be a URL or an sc-domain: property")
        return issues


@dataclass(frozen=True)
class ReportQuery:
    """Reporting window ending on ``end_date`` (inclusive)."""

    end_date: date
    days: int

    @property
    def start_date(self) -> date:
        return self.end_date - timedelta(days=self.days - 1)

    def cache_params(self) -> dict[str, Any]:
        # end_date doubles as the calendar-day cache bucket
        return {"date": self.end_date.isoformat(), "days": self.days}


@dataclass
class CachedReport:
    provider: ReportProvider
    cache_key: str
    payload: Any
    cached: bool
    cached_at: datetime | None = None
    fetch_duration_ms: int | None = None
