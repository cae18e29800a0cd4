from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from backend.src.core.errors import CacheUnavailable, RefreshError
from backend.src.models.site_kit import ConnectionStatus
from backend.src.services.site_kit.domain import ReportProvider
from backend.src.services.site_kit.response_cache import ResponseCache
from backend.src.services.site_kit.status import StatusReporter

POST = "backend.src.services.site_kit.token_refresher.requests.post"


async def test_unconfigured_integration_reports_disconnected(store):
    status = await StatusReporter(store).report()

    assert status.configured is False
    assert status.is_connected is False
    assert status.connection_status == ConnectionStatus.DISCONNECTED.value
    assert set(status.services) == {"adsense", "analytics", "search_console"}
    assert status.setup_issues == ["Google Site Kit has not been configured"]


async def test_connected_integration_reports_services(store, connect, clock):
    await connect(
        enable_analytics=True,
        analytics_property_id="123456",
        enable_search_console=True,
    )

    status = await StatusReporter(store).report()

    assert status.configured is True
    assert status.is_connected is True
    assert status.last_error is None
    assert status.last_sync_at == clock.now
    assert status.token_expires_at == clock.now + timedelta(hours=1)
    assert status.services["analytics"].enabled is True
    assert status.services["analytics"].configured is True
    assert status.services["search_console"].configured is False
    assert status.services["adsense"].enabled is False
    assert status.setup_issues == [
        "search_console_site_url is required when Search Console is enabled"
    ]


async def test_setup_issues_cover_client_and_adsense_ids(store):
    await store.configure(enable_adsense=True, adsense_publisher_id="pub-123")

    status = await StatusReporter(store).report()

    assert status.setup_issues == [
        "oauth_client_id is required",
        "oauth_client_secret is required",
        'adsense_publisher_id must start with "ca-pub-"',
        "adsense_account_id is required when AdSense is enabled",
    ]


async def test_refresh_failure_is_visible_on_the_next_read(store, connect, refresher, clock, make_response):
    await connect()
    await store.write(access_token_expires_at=clock.now - timedelta(minutes=5))

    with patch(POST, return_value=make_response(401, {"error": "invalid_client"})):
        with pytest.raises(RefreshError):
            await refresher.ensure_valid_token()

    status = await StatusReporter(store).report()
    assert status.is_connected is False
    assert status.connection_status == ConnectionStatus.ERROR.value
    assert "invalid_client" in status.last_error


async def test_last_fetch_comes_from_the_response_cache(store, connect, session_factory, clock):
    await connect()
    cache = ResponseCache(session_factory)
    reporter = StatusReporter(store, cache)

    assert (await reporter.report()).last_fetch_at is None

    await cache.put(
        ReportProvider.ANALYTICS,
        "analytics:date=2024-01-01&days=30",
        {"sessions": 1},
        expires_at=clock.now + timedelta(hours=1),
        fetched_at=clock.now,
    )

    assert (await reporter.report()).last_fetch_at == clock.now


async def test_cache_outage_leaves_last_fetch_empty(store, connect):
    await connect()
    broken = MagicMock()
    broken.latest_fetched_at = AsyncMock(side_effect=CacheUnavailable("cache read failed"))

    status = await StatusReporter(store, broken).report()

    assert status.is_connected is True
    assert status.last_fetch_at is None
