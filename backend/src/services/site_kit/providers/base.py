from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests

from backend.src.core.errors import (
    AdapterError,
    AdapterErrorKind,
    CredentialStoreError,
    NotConfigured,
    RefreshError,
)
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.domain import IntegrationConfig, ReportProvider, ReportQuery
from backend.src.services.site_kit.token_refresher import TokenRefresher

logger = logging.getLogger(__name__)

# First attempt plus one retry after a forced refresh
MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class ProviderRequest:
    method: str
    url: str
    params: Any = None
    json: dict[str, Any] | None = None


def _describe_provider_error(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:500]}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"HTTP {response.status_code}: {error['message']}"
    return f"HTTP {response.status_code}"


class ProviderAdapter(ABC):
    """
    Abstract interface for a Google reporting API.

    Subclasses only describe the request and parse the response; token
    handling and the single 401 retry live here.
    """

    provider: ReportProvider
    label: str
    endpoint: str
    default_days: int = 30

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        api_base: str,
        timeout: float = 15.0,
    ):
        self.store = store
        self.refresher = refresher
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @abstractmethod
    def build_request(self, config: IntegrationConfig, query: ReportQuery) -> ProviderRequest:
        """Provider specific URL, query string and body for ``query``."""
        pass

    @abstractmethod
    def parse_response(self, body: Any) -> dict[str, Any]:
        """Turn the provider's JSON into the dashboard payload."""
        pass

    async def fetch_report(self, query: ReportQuery) -> dict[str, Any]:
        config = await self._load_config()
        request = self.build_request(config, query)

        token = await self._token(force=False)
        for attempt in range(1, MAX_ATTEMPTS + 1):
            response = await self._send(request, token)

            if response.status_code == 401:
                if attempt < MAX_ATTEMPTS:
                    logger.warning("🔑 %s rejected the access token, forcing a refresh", self.label)
                    token = await self._token(force=True)
                    continue

                message = f"{self.label} rejected a freshly refreshed access token"
                logger.error("❌ %s", message)
                await self._record_unauthorized(message)
                raise AdapterError(AdapterErrorKind.UNAUTHORIZED, message)

            if not 200 <= response.status_code < 300:
                details = _describe_provider_error(response)
                logger.error("❌ %s API error: %s", self.label, details)
                raise AdapterError(AdapterErrorKind.PROVIDER_FAILURE, f"{self.label} {details}")

            try:
                body = response.json()
            except ValueError as e:
                raise AdapterError(
                    AdapterErrorKind.PROVIDER_FAILURE, f"{self.label} returned a non-JSON body"
                ) from e

            try:
                report = self.parse_response(body)
            except (ValueError, TypeError, AttributeError, KeyError) as e:
                logger.error("❌ %s returned an unexpected body: %s", self.label, type(e).__name__)
                raise AdapterError(
                    AdapterErrorKind.PROVIDER_FAILURE, f"{self.label} returned an unexpected body"
                ) from e

            logger.info("📊 %s report received", self.label)
            return report

        # range() always returns or raises above
        raise AssertionError("unreachable")

    async def _load_config(self) -> IntegrationConfig:
        try:
            config = await self.store.read()
        except NotConfigured as e:
            raise AdapterError(AdapterErrorKind.UNAUTHENTICATED, "not connected") from e
        # CredentialStoreError reaches the caller as is

        if not config.service_enabled(self.provider):
            raise AdapterError(AdapterErrorKind.SERVICE_DISABLED, f"{self.label} is not enabled")
        if not config.service_configured(self.provider):
            raise AdapterError(
                AdapterErrorKind.MISCONFIGURED, f"{self.label} identifier is not configured"
            )
        return config

    async def _token(self, force: bool) -> str:
        try:
            return await self.refresher.ensure_valid_token(force=force)
        except RefreshError as e:
            raise AdapterError(AdapterErrorKind.UNAUTHENTICATED, str(e)) from e

    async def _send(self, request: ProviderRequest, token: str) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            return await asyncio.to_thread(
                requests.request,
                request.method,
                request.url,
                params=request.params,
                json=request.json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            # Exception text may carry the Authorization header
            raise AdapterError(
                AdapterErrorKind.PROVIDER_FAILURE, f"{self.label} network error ({type(e).__name__})"
            ) from e

    async def _record_unauthorized(self, message: str) -> None:
        try:
            await self.store.mark_error(message)
        except (CredentialStoreError, NotConfigured) as e:
            logger.error("❌ Could not record authorization failure: %s", e)
