from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

class ServiceStatusResponse(BaseModel):
    enabled: bool
    configured: bool

class StatusResponse(BaseModel):
    success: bool = True
    configured: bool
    is_connected: bool
    connection_status: str
    last_error: Optional[str] = None
    last_sync: Optional[datetime] = None
    last_fetch: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    services: Dict[str, ServiceStatusResponse]
    setup_issues: List[str] = []

class ReportResponse(BaseModel):
    success: bool = True
    provider: str
    data: Any
    cached: bool
    cached_at: Optional[datetime] = None
    fetch_duration_ms: Optional[int] = None

class ConfigUpdateRequest(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    enable_adsense: Optional[bool] = None
    enable_analytics: Optional[bool] = None
    enable_search_console: Optional[bool] = None

    adsense_publisher_id: Optional[str] = None
    adsense_account_id: Optional[str] = None
    analytics_property_id: Optional[str] = None
    search_console_site_url: Optional[str] = None

class ConnectRequest(BaseModel):
    """Tokens handed over by the consent flow."""
    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_in: int = Field(default=3600, gt=0)

class MessageResponse(BaseModel):
    success: bool = True
    message: str
