"""
Token Refresher.

The only code path that mints access tokens. Safe to call from many requests
at once: each refresh is persisted with a compare-and-swap on
``token_version``, and a request that loses the swap adopts the token the
winner stored instead of overwriting it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

import requests

from backend.src.core.errors import CredentialStoreError, NotConfigured, RefreshError
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.domain import IntegrationConfig
from backend.src.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _describe_token_error(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    if isinstance(body, dict):
        detail = body.get("error_description") or body.get("error")
        if detail:
            return f"HTTP {response.status_code}: {detail}"
    return f"HTTP {response.status_code}"


class TokenRefresher:
    def __init__(
        self,
        store: CredentialStore,
        token_url: str,
        timeout: float = 15.0,
        margin_seconds: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.token_url = token_url
        self.timeout = timeout
        self.margin = timedelta(seconds=margin_seconds)
        self._clock = clock

    async def ensure_valid_token(self, force: bool = False) -> str:
        """
        Return an access token that is valid for at least the safety margin.

        Args:
            force: Skip the still-valid shortcut. Used after a provider rejected
                   the current token.

        Raises:
            RefreshError: Not connected, the exchange failed, or the new token
                          could not be persisted.
        """
        try:
            config = await self.store.read()
        except NotConfigured as e:
            raise RefreshError("not connected") from e
        except CredentialStoreError as e:
            raise RefreshError(f"credential store unavailable: {e}") from e

        if not config.refresh_token:
            raise RefreshError("not connected")

        if not force and config.has_usable_token(self._clock(), self.margin):
            return config.access_token

        return await self._refresh(config)

    async def _refresh(self, config: IntegrationConfig) -> str:
        logger.info("🔄 Refreshing Google access token (version %s)", config.token_version)
        form = {
            "client_id": config.client_id or "",
            "client_secret": config.client_secret or "",
            "refresh_token": config.refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            response = await asyncio.to_thread(
                requests.post,
                self.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            # The exception text can echo the request body, keep only the type
            raise await self._record_failure(
                f"Token refresh failed: network error ({type(e).__name__})"
            ) from e

        if response.status_code != 200:
            raise await self._record_failure(f"Token refresh failed: {_describe_token_error(response)}")

        try:
            tokens = response.json()
        except ValueError as e:
            raise await self._record_failure("Token refresh failed: response was not JSON") from e

        access_token = tokens.get("access_token") if isinstance(tokens, dict) else None
        if not access_token:
            raise await self._record_failure("Token refresh failed: no access_token in response")

        try:
            expires_in = int(tokens.get("expires_in") or DEFAULT_EXPIRES_IN)
            if expires_in <= 0:
                raise ValueError(expires_in)
            expires_at = self._clock() + timedelta(seconds=expires_in)
        except (TypeError, ValueError, OverflowError) as e:
            raise await self._record_failure("Token refresh failed: invalid expires_in") from e

        try:
            swapped = await self.store.swap_tokens(
                config,
                access_token=access_token,
                expires_at=expires_at,
                refresh_token=tokens.get("refresh_token"),
            )
            if swapped:
                logger.info("✅ Access token refreshed, expires at %s", expires_at.isoformat())
                return access_token

            # Another request refreshed (or disconnected) between our read and write
            current = await self.store.read()
        except (CredentialStoreError, NotConfigured) as e:
            # Never hand out a token the store does not know about
            logger.error("❌ Refreshed token could not be persisted: %s", e)
            raise RefreshError("refreshed token could not be persisted") from e

        if current.access_token:
            logger.info("↪️ Token already refreshed by a concurrent request, reusing it")
            return current.access_token

        raise RefreshError("integration was disconnected during refresh")

    async def _record_failure(self, message: str) -> RefreshError:
        """Persist the failure for the status view and build the error to raise."""
        logger.error("❌ %s", message)
        try:
            await self.store.mark_error(message)
        except (CredentialStoreError, NotConfigured) as e:
            logger.error("❌ Could not record refresh failure: %s", e)
        return RefreshError(message)
