from typing import Any, Dict, List, Tuple

from backend.src.services.site_kit.domain import IntegrationConfig, ReportProvider, ReportQuery
from backend.src.services.site_kit.providers.base import ProviderAdapter, ProviderRequest

ADSENSE_METRICS = [
    "ESTIMATED_EARNINGS",
    "PAGE_VIEWS",
    "CLICKS",
    "AD_REQUESTS",
    "AD_REQUESTS_CTR",
]


def _account_name(account_id: str) -> str:
    """Accepts 'accounts/pub-1', 'pub-1' or the publisher id 'ca-pub-1'."""
    account_id = account_id.strip()
    if account_id.startswith("accounts/"):
        account_id = account_id[len("accounts/"):]
    if account_id.startswith("ca-"):
        account_id = account_id[len("ca-"):]
    return account_id


def _to_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class AdSenseAdapter(ProviderAdapter):
    provider = ReportProvider.ADSENSE
    label = "AdSense"
    endpoint = "reports:generate"
    default_days = 7

    def build_request(self, config: IntegrationConfig, query: ReportQuery) -> ProviderRequest:
        account = _account_name(config.adsense_account_id)
        start, end = query.start_date, query.end_date

        # Repeated 'metrics' keys, so a list of pairs instead of a dict
        params: List[Tuple[str, Any]] = [
            ("dateRange", "CUSTOM"),
            ("startDate.year", start.year),
            ("startDate.month", start.month),
            ("startDate.day", start.day),
            ("endDate.year", end.year),
            ("endDate.month", end.month),
            ("endDate.day", end.day),
        ]
        params.extend(("metrics", metric) for metric in ADSENSE_METRICS)

        return ProviderRequest(
            method="GET",
            url=f"{self.api_base}/accounts/{account}/reports:generate",
            params=params,
        )

    def parse_response(self, body: Any) -> Dict[str, Any]:
        result: Dict[str, Any] = {metric.lower(): 0.0 for metric in ADSENSE_METRICS}
        result["currency_code"] = None
        if not isinstance(body, dict):
            return result

        headers = body.get("headers") or []
        cells = (body.get("totals") or {}).get("cells") or []
        for header, cell in zip(headers, cells):
            name = (header.get("name") or "").upper()
            if header.get("type") == "METRIC_CURRENCY" and header.get("currencyCode"):
                result["currency_code"] = header["currencyCode"]
            if name in ADSENSE_METRICS:
                result[name.lower()] = _to_number(cell.get("value"))

        result["row_count"] = int(body.get("totalMatchedRows") or len(body.get("rows") or []))
        return result
