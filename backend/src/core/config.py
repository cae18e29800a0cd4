# --- EXTERNAL IMPORTS ---
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # ------------------- CORE PROJECT SETTINGS -------------------
    PROJECT_NAME: str = "Site Kit Backend"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # ------------------- SECURITY -------------------
    # JWT signing key for admin sessions
    SECRET_KEY: str = "super-secret-key-change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Fernet key for OAuth secrets at rest (32 url-safe base64 bytes)
    ENCRYPTION_KEY: str = "8_sW7x9y2z4A5b6C8d9E0f1G2h3I4j5K6l7M8n9O0pQ="

    # Seed admin, created by init_db when both are set
    ADMIN_EMAIL: str | None = None
    ADMIN_PASSWORD: str | None = None

    # ------------------- DATABASES -------------------
    POSTGRES_URL: str = "sqlite+aiosqlite:///./site_kit.db"

    @property
    def DATABASE_URL(self) -> str:
        url = self.POSTGRES_URL
        if url and "?" in url:
            url = url.split("?")[0]
        if url and url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url and url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    # ------------------- GOOGLE SITE KIT -------------------
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    ADSENSE_API_BASE: str = "https://adsense.googleapis.com/v2"
    ANALYTICS_API_BASE: str = "https://analyticsdata.googleapis.com/v1beta"
    SEARCH_CONSOLE_API_BASE: str = "https://www.googleapis.com/webmasters/v3"

    SITE_KIT_CACHE_TTL_SECONDS: int = 3600
    TOKEN_REFRESH_MARGIN_SECONDS: int = 60
    PROVIDER_TIMEOUT_SECONDS: float = 15.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_file_encoding='utf-8')

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
