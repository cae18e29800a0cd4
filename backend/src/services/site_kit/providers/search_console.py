from typing import Any, Dict
from urllib.parse import quote

from backend.src.services.site_kit.domain import IntegrationConfig, ReportProvider, ReportQuery
from backend.src.services.site_kit.providers.base import ProviderAdapter, ProviderRequest


class SearchConsoleAdapter(ProviderAdapter):
    provider = ReportProvider.SEARCH_CONSOLE
    label = "Search Console"
    endpoint = "searchAnalytics/query"
    default_days = 30

    def build_request(self, config: IntegrationConfig, query: ReportQuery) -> ProviderRequest:
        # The site URL is a path segment, so '/' and ':' must be encoded too
        site = quote(config.search_console_site_url, safe="")
        body = {
            "startDate": query.start_date.isoformat(),
            "endDate": query.end_date.isoformat(),
            "dimensions": [],
            "rowLimit": 1,
            "startRow": 0,
        }
        return ProviderRequest(
            method="POST",
            url=f"{self.api_base}/sites/{site}/searchAnalytics/query",
            json=body,
        )

    def parse_response(self, body: Any) -> Dict[str, Any]:
        rows = body.get("rows") if isinstance(body, dict) else None
        if not rows:
            return {"impressions": 0, "clicks": 0, "ctr": 0.0, "average_position": 0.0}

        impressions = sum(row.get("impressions") or 0 for row in rows)
        clicks = sum(row.get("clicks") or 0 for row in rows)
        ctr = sum(row.get("ctr") or 0 for row in rows) / len(rows)
        position = sum(row.get("position") or 0 for row in rows) / len(rows)

        return {
            "impressions": int(impressions),
            "clicks": int(clicks),
            "ctr": ctr,
            "average_position": position,
        }
