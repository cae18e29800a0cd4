import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from backend.src.api.routes.deps import get_current_admin, get_site_kit
from backend.src.core.errors import (
    AdapterError,
    AdapterErrorKind,
    ConfigurationError,
    CredentialStoreError,
    NotConfigured,
    RefreshError,
)
from backend.src.models.user import User
from backend.src.schemas.site_kit import (
    ConfigUpdateRequest,
    ConnectRequest,
    MessageResponse,
    ReportResponse,
    ServiceStatusResponse,
    StatusResponse,
)
from backend.src.services.site_kit.domain import ReportProvider
from backend.src.services.site_kit.service import MAX_REPORT_DAYS, SiteKitService

logger = logging.getLogger(__name__)

router = APIRouter()

_ADAPTER_STATUS = {
    AdapterErrorKind.UNAUTHENTICATED: status.HTTP_409_CONFLICT,
    AdapterErrorKind.UNAUTHORIZED: status.HTTP_409_CONFLICT,
    AdapterErrorKind.SERVICE_DISABLED: status.HTTP_400_BAD_REQUEST,
    AdapterErrorKind.MISCONFIGURED: status.HTTP_400_BAD_REQUEST,
    AdapterErrorKind.PROVIDER_FAILURE: status.HTTP_502_BAD_GATEWAY,
}

def _error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": error, "message": message},
    )

# ==========================================
# 1. CONNECTION STATUS
# ==========================================
@router.get("/site-kit/status", response_model=StatusResponse)
async def get_status(
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    try:
        report = await site_kit.status_reporter.report()
    except CredentialStoreError as e:
        logger.error("❌ Status check failed: %s", e)
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", "Failed to check connection status")

    return StatusResponse(
        configured=report.configured,
        is_connected=report.is_connected,
        connection_status=report.connection_status,
        last_error=report.last_error,
        last_sync=report.last_sync_at,
        last_fetch=report.last_fetch_at,
        token_expires_at=report.token_expires_at,
        services={
            name: ServiceStatusResponse(enabled=s.enabled, configured=s.configured)
            for name, s in report.services.items()
        },
        setup_issues=report.setup_issues,
    )

# ==========================================
# 2. REPORTS (cached or fresh)
# ==========================================
@router.get("/site-kit/report/{provider}", response_model=ReportResponse)
async def get_report(
    provider: ReportProvider,
    report_date: Optional[date] = Query(None, alias="date"),
    days: Optional[int] = Query(None, ge=1, le=MAX_REPORT_DAYS),
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    try:
        report = await site_kit.get_report(provider, end_date=report_date, days=days)
    except AdapterError as e:
        raise _error(_ADAPTER_STATUS[e.kind], e.kind.value, str(e))
    except CredentialStoreError as e:
        logger.error("❌ Report failed, credential store unavailable: %s", e)
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", "Failed to load Site Kit configuration")

    return ReportResponse(
        provider=provider.value,
        data=report.payload,
        cached=report.cached,
        cached_at=report.cached_at,
        fetch_duration_ms=report.fetch_duration_ms,
    )

# ==========================================
# 3. MANUAL TOKEN REFRESH
# ==========================================
@router.post("/site-kit/refresh", response_model=MessageResponse)
async def refresh_tokens(
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    try:
        await site_kit.refresher.ensure_valid_token(force=True)
    except RefreshError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "refresh_failed", str(e))
    return MessageResponse(message="Tokens refreshed successfully")

# ==========================================
# 4. CONFIGURATION
# ==========================================
@router.put("/site-kit/config", response_model=StatusResponse)
async def update_config(
    data: ConfigUpdateRequest,
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    fields = data.model_dump(exclude_none=True)
    try:
        await site_kit.store.configure(**fields)
    except ConfigurationError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "invalid_config", str(e))
    except CredentialStoreError as e:
        logger.error("❌ Config update failed: %s", e)
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", "Failed to save configuration")

    logger.info("⚙️ Site Kit configuration updated by admin %s: %s", current_user.id, sorted(fields))
    return await get_status(site_kit=site_kit, current_user=current_user)

# ==========================================
# 5. CONNECT / DISCONNECT
# ==========================================
@router.post("/site-kit/connect", response_model=MessageResponse)
async def connect(
    data: ConnectRequest,
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    try:
        await site_kit.store.store_authorization(
            access_token=data.access_token,
            refresh_token=data.refresh_token,
            expires_in=data.expires_in,
        )
    except NotConfigured as e:
        raise _error(status.HTTP_409_CONFLICT, "not_configured", str(e))
    except CredentialStoreError as e:
        logger.error("❌ Failed to store OAuth tokens: %s", e)
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", "Failed to store OAuth tokens")
    return MessageResponse(message="OAuth tokens stored successfully")

@router.post("/site-kit/disconnect", response_model=MessageResponse)
async def disconnect(
    site_kit: SiteKitService = Depends(get_site_kit),
    current_user: User = Depends(get_current_admin),
):
    try:
        await site_kit.store.reset()
    except NotConfigured as e:
        raise _error(status.HTTP_409_CONFLICT, "not_configured", str(e))
    except CredentialStoreError as e:
        logger.error("❌ Disconnect failed: %s", e)
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", "Failed to disconnect")
    return MessageResponse(message="Google services disconnected")
