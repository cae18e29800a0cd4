"""
Response Cache.

Provider payloads keyed by ``(provider, cache_key)``. Expiry is logical
(``expires_at``); a write replaces any previous row for the same key, and
expired rows are swept after each write.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping
from urllib.parse import urlencode

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.src.core.errors import CacheUnavailable
from backend.src.models.api_cache import ApiCacheEntry
from backend.src.services.site_kit.domain import ReportProvider
from backend.src.utils.timeutils import as_utc, utcnow


def derive_cache_key(
    provider: ReportProvider,
    params: Mapping[str, Any] | None = None,
    today: date | None = None,
) -> str:
    """
    The one place cache keys are built.

    Keys are bucketed by calendar day: without an explicit ``date`` parameter
    the current UTC date is used, so each provider gets one entry per day.
    Example: ``analytics:date=2024-01-01&days=30``
    """
    params = dict(params or {})
    if params.get("date") is None:
        params["date"] = (today or utcnow().date()).isoformat()

    pairs = sorted((str(k), "" if v is None else str(v)) for k, v in params.items())
    return f"{ReportProvider(provider).value}:{urlencode(pairs)}"


@dataclass(frozen=True)
class CacheEntry:
    provider: ReportProvider
    cache_key: str
    payload: Any
    expires_at: datetime
    fetched_at: datetime
    fetch_duration_ms: int | None = None
    size_bytes: int | None = None

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now


def _upsert(dialect_name: str, values: dict[str, Any]):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    stmt = insert(ApiCacheEntry).values(**values)
    overwrite = {
        name: stmt.excluded[name]
        for name in ("endpoint", "response_data", "expires_at", "fetched_at",
                     "fetch_duration_ms", "response_size_bytes")
    }
    return stmt.on_conflict_do_update(index_elements=["provider", "cache_key"], set_=overwrite)


class ResponseCache:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, provider: ReportProvider, cache_key: str) -> CacheEntry | None:
        """Return the stored entry (live or not) or None."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ApiCacheEntry).where(
                        ApiCacheEntry.provider == ReportProvider(provider).value,
                        ApiCacheEntry.cache_key == cache_key,
                    )
                )
                row = result.scalars().first()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"cache read failed: {e}") from e

        if row is None:
            return None
        return CacheEntry(
            provider=ReportProvider(row.provider),
            cache_key=row.cache_key,
            payload=row.response_data,
            expires_at=as_utc(row.expires_at),
            fetched_at=as_utc(row.fetched_at),
            fetch_duration_ms=row.fetch_duration_ms,
            size_bytes=row.response_size_bytes,
        )

    async def put(
        self,
        provider: ReportProvider,
        cache_key: str,
        payload: Any,
        expires_at: datetime,
        fetched_at: datetime,
        fetch_duration_ms: int | None = None,
        endpoint: str | None = None,
    ) -> None:
        values = {
            "provider": ReportProvider(provider).value,
            "cache_key": cache_key,
            "endpoint": endpoint,
            "response_data": payload,
            "expires_at": expires_at,
            "fetched_at": fetched_at,
            "fetch_duration_ms": fetch_duration_ms,
            "response_size_bytes": len(json.dumps(payload, default=str).encode("utf-8")),
        }
        try:
            async with self._session_factory() as session:
                await session.execute(_upsert(session.bind.dialect.name, values))
                # Opportunistic sweep of rows nobody can read any more
                await session.execute(
                    delete(ApiCacheEntry)
                    .where(ApiCacheEntry.expires_at <= fetched_at)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"cache write failed: {e}") from e

    async def count(self, provider: ReportProvider | None = None) -> int:
        stmt = select(func.count(ApiCacheEntry.id))
        if provider is not None:
            stmt = stmt.where(ApiCacheEntry.provider == ReportProvider(provider).value)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"cache read failed: {e}") from e

    async def latest_fetched_at(self) -> datetime | None:
        """When any provider last answered successfully, as far as the cache remembers."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.max(ApiCacheEntry.fetched_at)))
                latest = result.scalar()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"cache read failed: {e}") from e
        return as_utc(latest)
