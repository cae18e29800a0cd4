from typing import Any, Dict

from backend.src.services.site_kit.domain import IntegrationConfig, ReportProvider, ReportQuery
from backend.src.services.site_kit.providers.base import ProviderAdapter, ProviderRequest

# GA4 metric -> dashboard field
ANALYTICS_METRICS = {
    "sessions": "sessions",
    "screenPageViews": "page_views",
    "bounceRate": "bounce_rate",
    "averageSessionDuration": "avg_session_duration",
}


def _property_name(property_id: str) -> str:
    property_id = property_id.strip()
    if property_id.startswith("properties/"):
        return property_id
    return f"properties/{property_id}"


class AnalyticsAdapter(ProviderAdapter):
    provider = ReportProvider.ANALYTICS
    label = "Analytics"
    endpoint = "runReport"
    default_days = 30

    def build_request(self, config: IntegrationConfig, query: ReportQuery) -> ProviderRequest:
        body = {
            "dateRanges": [{
                "startDate": query.start_date.isoformat(),
                "endDate": query.end_date.isoformat(),
            }],
            "metrics": [{"name": name} for name in ANALYTICS_METRICS],
        }
        return ProviderRequest(
            method="POST",
            url=f"{self.api_base}/{_property_name(config.analytics_property_id)}:runReport",
            json=body,
        )

    def parse_response(self, body: Any) -> Dict[str, Any]:
        result: Dict[str, Any] = {field: 0 for field in ANALYTICS_METRICS.values()}
        if not isinstance(body, dict):
            return result

        rows = body.get("rows") or []
        if not rows:
            return result

        headers = [h.get("name") for h in body.get("metricHeaders") or []]
        if not headers:
            headers = list(ANALYTICS_METRICS)
        values = rows[0].get("metricValues") or []

        for name, value in zip(headers, values):
            field = ANALYTICS_METRICS.get(name)
            if field is None:
                continue
            raw = value.get("value") or "0"
            if field in ("sessions", "page_views"):
                result[field] = int(float(raw))
            else:
                result[field] = float(raw)
        return result
