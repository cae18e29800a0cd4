from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.sql import func
import enum
from backend.src.db.base import Base
from backend.src.utils.security import SecurityUtils

class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"

class SiteKitConfig(Base):
    """The one integration row per deployment."""
    __tablename__ = "google_site_kit_config"

    id = Column(Integer, primary_key=True, index=True)

    # --- OAuth client registration (immutable once set) ---
    oauth_client_id = Column(String, nullable=True)
    _oauth_client_secret = Column("oauth_client_secret", Text, nullable=True)

    # --- Tokens (encrypted at rest) ---
    _access_token = Column("access_token", Text, nullable=True)
    _refresh_token = Column("refresh_token", Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped by every write that changes access_token; guards concurrent refreshes
    token_version = Column(Integer, default=0, nullable=False)

    connection_status = Column(String, default=ConnectionStatus.DISCONNECTED.value, nullable=False)
    error_message = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    # --- Service flags ---
    enable_adsense = Column(Boolean, default=False, nullable=False)
    enable_analytics = Column(Boolean, default=False, nullable=False)
    enable_search_console = Column(Boolean, default=False, nullable=False)

    # --- Service identifiers ---
    adsense_publisher_id = Column(String, nullable=True)  # ca-pub-...
    adsense_account_id = Column(String, nullable=True)    # pub-...
    analytics_property_id = Column(String, nullable=True)
    search_console_site_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def oauth_client_secret(self):
        return SecurityUtils.decrypt(self._oauth_client_secret)

    @oauth_client_secret.setter
    def oauth_client_secret(self, value):
        self._oauth_client_secret = SecurityUtils.encrypt(value)

    @property
    def access_token(self):
        return SecurityUtils.decrypt(self._access_token)

    @access_token.setter
    def access_token(self, value):
        self._access_token = SecurityUtils.encrypt(value)

    @property
    def refresh_token(self):
        return SecurityUtils.decrypt(self._refresh_token)

    @refresh_token.setter
    def refresh_token(self, value):
        self._refresh_token = SecurityUtils.encrypt(value)
