import asyncio
import logging

from sqlalchemy.future import select

from backend.src.core.config import settings
from backend.src.core.errors import NotConfigured
from backend.src.core.logging_utils import configure_logging
from backend.src.db.session import engine, AsyncSessionLocal
from backend.src.db.base import Base
from backend.src.services.site_kit.credential_store import CredentialStore
from backend.src.utils.auth import get_password_hash

# --- Import ALL Models here ---
# SQLAlchemy only creates tables for models it has seen
from backend.src.models.api_cache import ApiCacheEntry  # noqa: F401
from backend.src.models.site_kit import SiteKitConfig  # noqa: F401
from backend.src.models.user import User

logger = logging.getLogger(__name__)

async def seed_admin(session_factory=AsyncSessionLocal):
    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin seed")
        return

    async with session_factory() as db:
        result = await db.execute(select(User).where(User.email == settings.ADMIN_EMAIL))
        if result.scalars().first():
            logger.info("👤 Admin %s already exists", settings.ADMIN_EMAIL)
            return
        db.add(User(
            email=settings.ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
            full_name="Administrator",
            is_admin=True,
        ))
        await db.commit()
        logger.info("👤 Admin %s created", settings.ADMIN_EMAIL)

async def ensure_site_kit_config(session_factory=AsyncSessionLocal):
    """Create the single, disconnected integration row if it is missing."""
    store = CredentialStore(session_factory)
    try:
        await store.read()
    except NotConfigured:
        await store.configure()

async def init_database():
    logger.info("🚀 Connecting to the database...")
    async with engine.begin() as conn:
        # create_all only adds missing tables; stored tokens survive re-runs
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables ready")

    await seed_admin()
    await ensure_site_kit_config()

if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_database())
