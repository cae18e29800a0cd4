from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
import requests

from backend.src.core.errors import AdapterError, AdapterErrorKind, CredentialStoreError
from backend.src.models.site_kit import ConnectionStatus
from backend.src.services.site_kit.domain import ReportQuery
from backend.src.services.site_kit.providers.adsense import AdSenseAdapter
from backend.src.services.site_kit.providers.analytics import AnalyticsAdapter
from backend.src.services.site_kit.providers.search_console import SearchConsoleAdapter

POST = "backend.src.services.site_kit.token_refresher.requests.post"
REQUEST = "backend.src.services.site_kit.providers.base.requests.request"

ANALYTICS_BODY = {
    "metricHeaders": [
        {"name": "sessions"},
        {"name": "screenPageViews"},
        {"name": "bounceRate"},
        {"name": "averageSessionDuration"},
    ],
    "rows": [{"metricValues": [
        {"value": "120"},
        {"value": "300"},
        {"value": "0.42"},
        {"value": "63.5"},
    ]}],
}

QUERY = ReportQuery(end_date=date(2024, 1, 31), days=30)


@pytest.fixture
def analytics(store, refresher):
    return AnalyticsAdapter(store, refresher, "https://analytics.example.test/v1beta", timeout=5.0)


@pytest.fixture
def adsense(store, refresher):
    return AdSenseAdapter(store, refresher, "https://adsense.example.test/v2/", timeout=5.0)


@pytest.fixture
def search_console(store, refresher):
    return SearchConsoleAdapter(store, refresher, "https://sc.example.test/webmasters/v3", timeout=5.0)


@pytest.fixture
async def analytics_connected(connect):
    return await connect(enable_analytics=True, analytics_property_id="123456")


def bearer(call):
    return call.kwargs["headers"]["Authorization"]


# ==========================================
# TOKEN HANDLING
# ==========================================
async def test_expired_token_is_refreshed_before_the_request(
    analytics, analytics_connected, store, clock, make_response, token_response
):
    await store.write(access_token_expires_at=clock.now - timedelta(seconds=1))

    with patch(POST, return_value=token_response("A2", expires_in=3599)) as mock_post, \
            patch(REQUEST, return_value=make_response(200, ANALYTICS_BODY)) as mock_request:
        data = await analytics.fetch_report(QUERY)

    assert data["sessions"] == 120
    assert mock_post.call_count == 1
    assert mock_request.call_count == 1
    assert bearer(mock_request.call_args) == "Bearer A2"

    config = await store.read()
    assert config.access_token == "A2"
    assert config.access_token_expires_at == clock.now + timedelta(seconds=3599)


async def test_single_401_forces_one_refresh_and_one_retry(
    analytics, analytics_connected, make_response, token_response
):
    responses = [make_response(401, {"error": {"message": "Invalid Credentials"}}),
                 make_response(200, ANALYTICS_BODY)]

    with patch(POST, return_value=token_response("A2")) as mock_post, \
            patch(REQUEST, side_effect=responses) as mock_request:
        data = await analytics.fetch_report(QUERY)

    assert data["page_views"] == 300
    assert mock_post.call_count == 1
    assert mock_request.call_count == 2
    first, second = mock_request.call_args_list
    assert bearer(first) == "Bearer A1"
    assert bearer(second) == "Bearer A2"


async def test_second_401_is_unauthorized_without_a_third_attempt(
    analytics, analytics_connected, store, make_response, token_response
):
    with patch(POST, return_value=token_response("A2")) as mock_post, \
            patch(REQUEST, return_value=make_response(401, {})) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.UNAUTHORIZED
    assert mock_request.call_count == 2
    assert mock_post.call_count == 1

    config = await store.read()
    assert config.connection_status == ConnectionStatus.ERROR.value
    assert config.last_error


async def test_refresh_failure_is_unauthenticated_and_skips_the_request(
    analytics, analytics_connected, store, clock, make_response
):
    await store.write(access_token_expires_at=clock.now - timedelta(seconds=1))

    with patch(POST, return_value=make_response(400, {"error": "invalid_grant"})), \
            patch(REQUEST) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.UNAUTHENTICATED
    mock_request.assert_not_called()
    assert (await store.read()).connection_status == ConnectionStatus.ERROR.value


async def test_not_configured_is_unauthenticated(analytics):
    with patch(REQUEST) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.UNAUTHENTICATED
    mock_request.assert_not_called()


# ==========================================
# PROVIDER FAILURES
# ==========================================
async def test_server_error_is_provider_failure_and_keeps_status(
    analytics, analytics_connected, store, make_response
):
    failing = make_response(500, {"error": {"code": 500, "message": "Backend Error"}})

    with patch(REQUEST, return_value=failing) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE
    assert "Backend Error" in exc_info.value.details
    assert mock_request.call_count == 1

    config = await store.read()
    assert config.connection_status == ConnectionStatus.CONNECTED.value
    assert config.last_error is None


async def test_forbidden_is_provider_failure_not_a_retry(analytics, analytics_connected, make_response):
    with patch(POST) as mock_post, patch(REQUEST, return_value=make_response(403, {})) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE
    assert mock_request.call_count == 1
    mock_post.assert_not_called()


async def test_network_error_is_provider_failure(analytics, analytics_connected):
    with patch(REQUEST, side_effect=requests.Timeout("read timed out")):
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE
    assert "Timeout" in exc_info.value.details


async def test_non_json_body_is_provider_failure(analytics, analytics_connected, make_response):
    with patch(REQUEST, return_value=make_response(200, None, text="<html></html>")):
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE


@pytest.mark.parametrize("body", [
    {"rows": [{"metricValues": [{"value": "N/A"}]}]},
    {"rows": [{"metricValues": ["120"]}]},
    {"rows": ["not-a-row"]},
])
async def test_malformed_analytics_body_is_provider_failure(
    analytics, analytics_connected, store, make_response, body
):
    with patch(REQUEST, return_value=make_response(200, body)):
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE
    assert "unexpected body" in exc_info.value.details
    assert (await store.read()).connection_status == ConnectionStatus.CONNECTED.value


async def test_malformed_search_console_row_is_provider_failure(search_console, connect, make_response):
    await connect(enable_search_console=True, search_console_site_url="sc-domain:example.com")

    with patch(REQUEST, return_value=make_response(200, {"rows": [42]})):
        with pytest.raises(AdapterError) as exc_info:
            await search_console.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.PROVIDER_FAILURE


async def test_store_outage_is_not_reported_as_unauthenticated(analytics, store):
    with patch.object(store, "read", AsyncMock(side_effect=CredentialStoreError("database is locked"))), \
            patch(REQUEST) as mock_request:
        with pytest.raises(CredentialStoreError):
            await analytics.fetch_report(QUERY)

    mock_request.assert_not_called()


# ==========================================
# SERVICE SETTINGS
# ==========================================
async def test_disabled_service_never_calls_out(analytics, connect):
    await connect(enable_analytics=False, analytics_property_id="123456")

    with patch(POST) as mock_post, patch(REQUEST) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await analytics.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.SERVICE_DISABLED
    mock_post.assert_not_called()
    mock_request.assert_not_called()


async def test_missing_identifier_is_misconfigured(search_console, connect):
    await connect(enable_search_console=True)

    with patch(REQUEST) as mock_request:
        with pytest.raises(AdapterError) as exc_info:
            await search_console.fetch_report(QUERY)

    assert exc_info.value.kind == AdapterErrorKind.MISCONFIGURED
    mock_request.assert_not_called()


# ==========================================
# REQUEST SHAPES AND PARSING
# ==========================================
async def test_analytics_request_shape(analytics, analytics_connected, make_response):
    with patch(REQUEST, return_value=make_response(200, ANALYTICS_BODY)) as mock_request:
        await analytics.fetch_report(QUERY)

    method, url = mock_request.call_args.args
    body = mock_request.call_args.kwargs["json"]
    assert method == "POST"
    assert url == "https://analytics.example.test/v1beta/properties/123456:runReport"
    assert body["dateRanges"] == [{"startDate": "2024-01-02", "endDate": "2024-01-31"}]
    assert [m["name"] for m in body["metrics"]] == [
        "sessions", "screenPageViews", "bounceRate", "averageSessionDuration"
    ]
    assert mock_request.call_args.kwargs["timeout"] == 5.0


def test_analytics_parse_response(analytics):
    assert analytics.parse_response(ANALYTICS_BODY) == {
        "sessions": 120,
        "page_views": 300,
        "bounce_rate": 0.42,
        "avg_session_duration": 63.5,
    }
    assert analytics.parse_response({"rowCount": 0}) == {
        "sessions": 0, "page_views": 0, "bounce_rate": 0, "avg_session_duration": 0
    }


async def test_adsense_request_shape(adsense, connect, make_response):
    await connect(
        enable_adsense=True,
        adsense_publisher_id="ca-pub-1234567890",
        adsense_account_id="ca-pub-1234567890",
    )

    with patch(REQUEST, return_value=make_response(200, {"headers": [], "totals": {"cells": []}})) as mock_request:
        await adsense.fetch_report(ReportQuery(end_date=date(2024, 3, 10), days=7))

    method, url = mock_request.call_args.args
    params = mock_request.call_args.kwargs["params"]
    assert method == "GET"
    assert url == "https://adsense.example.test/v2/accounts/pub-1234567890/reports:generate"
    assert ("dateRange", "CUSTOM") in params
    assert ("startDate.day", 4) in params
    assert ("endDate.month", 3) in params
    assert [v for k, v in params if k == "metrics"] == [
        "ESTIMATED_EARNINGS", "PAGE_VIEWS", "CLICKS", "AD_REQUESTS", "AD_REQUESTS_CTR"
    ]


def test_adsense_parse_response(adsense):
    body = {
        "headers": [
            {"name": "ESTIMATED_EARNINGS", "type": "METRIC_CURRENCY", "currencyCode": "USD"},
            {"name": "PAGE_VIEWS", "type": "METRIC_TALLY"},
            {"name": "CLICKS", "type": "METRIC_TALLY"},
        ],
        "totals": {"cells": [{"value": "12.34"}, {"value": "1000"}, {"value": "7"}]},
        "totalMatchedRows": "3",
    }

    data = adsense.parse_response(body)

    assert data["estimated_earnings"] == 12.34
    assert data["page_views"] == 1000.0
    assert data["clicks"] == 7.0
    assert data["ad_requests"] == 0.0
    assert data["currency_code"] == "USD"
    assert data["row_count"] == 3


async def test_search_console_request_shape(search_console, connect, make_response):
    await connect(enable_search_console=True, search_console_site_url="https://blog.example.com/")

    with patch(REQUEST, return_value=make_response(200, {"rows": []})) as mock_request:
        await search_console.fetch_report(QUERY)

    method, url = mock_request.call_args.args
    assert method == "POST"
    assert url == (
        "https://sc.example.test/webmasters/v3/sites/"
        "https%3A%2F%2Fblog.example.com%2F/searchAnalytics/query"
    )
    assert mock_request.call_args.kwargs["json"]["startDate"] == "2024-01-02"


def test_search_console_parse_response(search_console):
    body = {"rows": [
        {"impressions": 100, "clicks": 10, "ctr": 0.1, "position": 4.0},
        {"impressions": 50, "clicks": 0, "ctr": 0.0, "position": 8.0},
    ]}

    assert search_console.parse_response(body) == {
        "impressions": 150,
        "clicks": 10,
        "ctr": 0.05,
        "average_position": 6.0,
    }
    assert search_console.parse_response({}) == {
        "impressions": 0, "clicks": 0, "ctr": 0.0, "average_position": 0.0
    }
