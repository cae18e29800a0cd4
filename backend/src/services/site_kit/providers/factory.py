from backend.src.core.config import Settings
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.domain import ReportProvider
from backend.src.services.site_kit.providers.adsense import AdSenseAdapter
from backend.src.services.site_kit.providers.analytics import AnalyticsAdapter
from backend.src.services.site_kit.providers.base import ProviderAdapter
from backend.src.services.site_kit.providers.search_console import SearchConsoleAdapter
from backend.src.services.site_kit.token_refresher import TokenRefresher

def build_adapters(
    store: CredentialStore,
    refresher: TokenRefresher,
    settings: Settings,
) -> dict[ReportProvider, ProviderAdapter]:
    """One adapter per reporting API, all sharing the same store and refresher."""
    timeout = settings.PROVIDER_TIMEOUT_SECONDS
    return {
        ReportProvider.ADSENSE: AdSenseAdapter(store, refresher, settings.ADSENSE_API_BASE, timeout),
        ReportProvider.ANALYTICS: AnalyticsAdapter(store, refresher, settings.ANALYTICS_API_BASE, timeout),
        ReportProvider.SEARCH_CONSOLE: SearchConsoleAdapter(
            store, refresher, settings.SEARCH_CONSOLE_API_BASE, timeout
        ),
    }
