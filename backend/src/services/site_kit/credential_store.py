"""
Credential Store.

Durable home of the single Site Kit integration row. Every write is a
column-level ``UPDATE ... WHERE id = ...`` that only touches the fields the
caller supplied, so independent writers (token refresh, admin config edits,
error reporting) never clobber each other's columns. Token writes additionally
compare-and-swap on ``token_version``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.src.core.errors import ConfigurationError, CredentialStoreError, NotConfigured
from backend.src.models.site_kit import ConnectionStatus, SiteKitConfig
from backend.src.services.site_kit.domain import SERVICE_COLUMNS, IntegrationConfig
from backend.src.utils.security import SecurityUtils
from backend.src.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

# logical field -> (mapped attribute, encrypted?)
_FIELDS: dict[str, tuple[Any, bool]] = {
    "client_id": (SiteKitConfig.oauth_client_id, False),
    "client_secret": (SiteKitConfig._oauth_client_secret, True),
    "access_token": (SiteKitConfig._access_token, True),
    "refresh_token": (SiteKitConfig._refresh_token, True),
    "access_token_expires_at": (SiteKitConfig.token_expires_at, False),
    "connection_status": (SiteKitConfig.connection_status, False),
    "last_error": (SiteKitConfig.error_message, False),
    "last_sync_at": (SiteKitConfig.last_sync_at, False),
    "enable_adsense": (SiteKitConfig.enable_adsense, False),
    "enable_analytics": (SiteKitConfig.enable_analytics, False),
    "enable_search_console": (SiteKitConfig.enable_search_console, False),
    "adsense_publisher_id": (SiteKitConfig.adsense_publisher_id, False),
    "adsense_account_id": (SiteKitConfig.adsense_account_id, False),
    "analytics_property_id": (SiteKitConfig.analytics_property_id, False),
    "search_console_site_url": (SiteKitConfig.search_console_site_url, False),
}

# Fields an admin may set through configure(); tokens only move via the refresher
CONFIG_FIELDS = frozenset({
    "client_id",
    "client_secret",
    "enable_adsense",
    "enable_analytics",
    "enable_search_console",
    "adsense_publisher_id",
    "adsense_account_id",
    "analytics_property_id",
    "search_console_site_url",
})

IMMUTABLE_FIELDS = ("client_id", "client_secret")


def _snapshot(row: SiteKitConfig) -> IntegrationConfig:
    enabled = frozenset(
        provider for provider, (flag, _) in SERVICE_COLUMNS.items() if getattr(row, flag)
    )
    return IntegrationConfig(
        id=row.id,
        client_id=row.oauth_client_id,
        client_secret=row.oauth_client_secret,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        access_token_expires_at=as_utc(row.token_expires_at),
        token_version=row.token_version or 0,
        connection_status=row.connection_status,
        last_error=row.error_message,
        last_sync_at=as_utc(row.last_sync_at),
        enabled_services=enabled,
        adsense_publisher_id=row.adsense_publisher_id,
        adsense_account_id=row.adsense_account_id,
        analytics_property_id=row.analytics_property_id,
        search_console_site_url=row.search_console_site_url,
    )


def _column_values(fields: dict[str, Any]) -> dict[Any, Any]:
    unknown = set(fields) - set(_FIELDS)
    if unknown:
        raise ValueError(f"Unknown config fields: {sorted(unknown)}")

    values = {}
    for name, value in fields.items():
        attribute, encrypted = _FIELDS[name]
        if encrypted:
            value = SecurityUtils.encrypt(value)
        elif isinstance(value, ConnectionStatus):
            value = value.value
        values[attribute] = value
    return values


class CredentialStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    # ==========================================
    # READ
    # ==========================================
    async def read(self) -> IntegrationConfig:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SiteKitConfig).order_by(SiteKitConfig.id).limit(1)
                )
                row = result.scalars().first()
                if row is None:
                    raise NotConfigured()
                return _snapshot(row)
        except (SQLAlchemyError, ValueError) as e:
            raise CredentialStoreError(f"Failed to read Site Kit configuration: {e}") from e

    # ==========================================
    # PARTIAL WRITES
    # ==========================================
    async def write(self, **fields: Any) -> IntegrationConfig:
        """Merge the supplied fields into the row and return the new state."""
        values = _column_values(fields)
        if values:
            await self._update(values)
        return await self.read()

    async def _update(self, values: dict[Any, Any], *conditions: Any) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SiteKitConfig.id).order_by(SiteKitConfig.id).limit(1)
                )
                config_id = result.scalar()
                if config_id is None:
                    raise NotConfigured()

                stmt = (
                    update(SiteKitConfig)
                    .where(SiteKitConfig.id == config_id, *conditions)
                    .values(values)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise CredentialStoreError(f"Failed to update Site Kit configuration: {e}") from e

    async def swap_tokens(
        self,
        observed: IntegrationConfig,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None,
    ) -> bool:
        """
        Persist a refreshed access token only if nobody else changed the token
        since ``observed`` was read. Returns False when the swap lost.
        """
        fields: dict[str, Any] = {
            "access_token": access_token,
            "access_token_expires_at": expires_at,
            "connection_status": ConnectionStatus.CONNECTED,
            "last_error": None,
            "last_sync_at": self._clock(),
        }
        if refresh_token:
            fields["refresh_token"] = refresh_token

        values = _column_values(fields)
        values[SiteKitConfig.token_version] = observed.token_version + 1
        rowcount = await self._update(values, SiteKitConfig.token_version == observed.token_version)
        return rowcount == 1

    async def mark_error(self, message: str) -> IntegrationConfig:
        return await self.write(connection_status=ConnectionStatus.ERROR, last_error=message)

    async def store_authorization(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_in: int,
    ) -> IntegrationConfig:
        """Write path of the one-time authorization exchange."""
        now = self._clock()
        fields: dict[str, Any] = {
            "access_token": access_token,
            "access_token_expires_at": now + timedelta(seconds=expires_in),
            "connection_status": ConnectionStatus.CONNECTED,
            "last_error": None,
            "last_sync_at": now,
        }
        if refresh_token:
            fields["refresh_token"] = refresh_token

        values = _column_values(fields)
        values[SiteKitConfig.token_version] = SiteKitConfig.token_version + 1
        await self._update(values)
        logger.info("🔗 Site Kit tokens stored, integration connected")
        return await self.read()

    async def reset(self) -> IntegrationConfig:
        """Back to disconnected; client registration and service settings survive."""
        values = _column_values({
            "access_token": None,
            "refresh_token": None,
            "access_token_expires_at": None,
            "connection_status": ConnectionStatus.DISCONNECTED,
            "last_error": None,
        })
        values[SiteKitConfig.token_version] = SiteKitConfig.token_version + 1
        await self._update(values)
        logger.info("🔌 Site Kit integration reset to disconnected")
        return await self.read()

    # ==========================================
    # ADMIN CONFIGURATION
    # ==========================================
    async def configure(self, **fields: Any) -> IntegrationConfig:
        """Create the row on first configuration, otherwise merge into it."""
        unknown = set(fields) - CONFIG_FIELDS
        if unknown:
            raise ConfigurationError(f"Fields cannot be configured: {sorted(unknown)}")

        try:
            current = await self.read()
        except NotConfigured:
            current = None

        if current is None:
            return await self._create(fields)

        for name in IMMUTABLE_FIELDS:
            new_value = fields.get(name)
            old_value = getattr(current, name)
            if new_value is not None and old_value and new_value != old_value:
                raise ConfigurationError(f"{name} is immutable once set")

        return await self.write(**fields)

    async def _create(self, fields: dict[str, Any]) -> IntegrationConfig:
        row = SiteKitConfig(
            oauth_client_id=fields.get("client_id"),
            connection_status=ConnectionStatus.DISCONNECTED.value,
            token_version=0,
        )
        row.oauth_client_secret = fields.get("client_secret")
        row.access_token = None
        row.refresh_token = None
        for name in CONFIG_FIELDS - set(IMMUTABLE_FIELDS):
            if name in fields:
                setattr(row, name, fields[name])

        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise CredentialStoreError(f"Failed to create Site Kit configuration: {e}") from e

        logger.info("🆕 Site Kit configuration created (disconnected)")
        return await self.read()
