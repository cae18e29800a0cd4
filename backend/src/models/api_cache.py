from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from backend.src.db.base import Base

class ApiCacheEntry(Base):
    __tablename__ = "google_api_cache"
    __table_args__ = (
        # One row per key; writes are upserts
        UniqueConstraint("provider", "cache_key", name="uq_google_api_cache_provider_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String, nullable=False)   # adsense | analytics | search_console
    cache_key = Column(String, nullable=False)
    endpoint = Column(String, nullable=True)

    response_data = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Observability only
    fetched_at = Column(DateTime(timezone=True), nullable=False)
    fetch_duration_ms = Column(Integer, nullable=True)
    response_size_bytes = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
