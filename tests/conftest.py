"""Shared fixtures: a throwaway SQLite database, a controllable clock and fake HTTP responses."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.src.db.base import Base
from backend.src.models.api_cache import ApiCacheEntry  # noqa: F401
from backend.src.models.site_kit import SiteKitConfig  # noqa: F401
from backend.src.models.user import User  # noqa: F401
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.services.site_kit.token_refresher import TokenRefresher

TOKEN_URL = "https://oauth2.example.test/token"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'site_kit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory, clock) -> CredentialStore:
    return CredentialStore(session_factory, clock=clock)


@pytest.fixture
def refresher(store, clock) -> TokenRefresher:
    return TokenRefresher(store, token_url=TOKEN_URL, timeout=5.0, margin_seconds=60, clock=clock)


@pytest.fixture
def connect(store):
    """Configure the integration and store an initial token pair."""

    async def _connect(access_token="A1", refresh_token="R1", expires_in=3600, **services):
        await store.configure(client_id="client-id", client_secret="client-secret", **services)
        return await store.store_authorization(access_token, refresh_token, expires_in)

    return _connect


@pytest.fixture
def make_response():
    def _make(status_code: int = 200, json_body=None, text: str | None = None):
        response = MagicMock()
        response.status_code = status_code
        if json_body is None:
            response.json.side_effect = ValueError("No JSON object could be decoded")
            response.text = text or ""
        else:
            response.json.return_value = json_body
            response.text = text if text is not None else json.dumps(json_body)
        return response

    return _make


@pytest.fixture
def token_response(make_response):
    def _make(access_token: str = "A2", expires_in: int = 3599, **extra):
        return make_response(200, {"access_token": access_token, "expires_in": expires_in, **extra})

    return _make
