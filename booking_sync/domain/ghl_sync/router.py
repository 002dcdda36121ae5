"""GHL sync router - Admin and cron endpoints for appointment synchronization"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ...auth import get_current_admin
from ...firestore import get_firestore
from ...webhook_security import verify_cron_secret
from .schemas import (
    FailedSyncsResponse,
    RetryFailedResponse,
    RetrySingleRequest,
    RetrySingleResponse,
    ScheduledSyncResponse,
    SyncFromCrmResponse,
    SyncStatusResponse,
    SyncToCrmRequest,
    SyncToCrmResponse,
)
from .service import (
    AppointmentNotFoundError,
    CredentialsNotConfiguredError,
    CRMUnavailableError,
    GHLSyncService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/ghl-sync", tags=["GHL Sync"])
cron_router = APIRouter(prefix="/cron", tags=["Cron"])


def get_ghl_sync_service(db=Depends(get_firestore)) -> GHLSyncService:
    """Dependency injection for GHLSyncService"""
    return GHLSyncService(db)


def _credentials_error(e: CredentialsNotConfiguredError, status_code: int = 503) -> HTTPException:
    logger.error(f"❌ {e}")
    return HTTPException(status_code=status_code, detail=str(e))


# ============================================================================
# WEBSITE -> GHL
# ============================================================================


@router.post("/to-ghl", response_model=SyncToCrmResponse)
async def sync_all_to_ghl(
    request: Request,
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Sync every booking from both collections to GHL"""
    try:
        body = await request.json()
        data = SyncToCrmRequest(**body) if isinstance(body, dict) else SyncToCrmRequest()
    except (json.JSONDecodeError, ValueError):
        data = SyncToCrmRequest()

    try:
        return await service.sync_to_crm(force_resync=data.forceResync)
    except CredentialsNotConfiguredError as e:
        raise _credentials_error(e) from e
    except Exception as e:
        logger.error(f"❌ [GHL Sync] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Sync failed") from e


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Sync progress per collection. Performs no writes"""
    try:
        return service.get_sync_status()
    except Exception as e:
        logger.error(f"❌ [GHL Sync Status] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to get sync status") from e


@router.get("/failed", response_model=FailedSyncsResponse)
async def get_failed_syncs(
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Bookings that failed to sync or were never synced"""
    try:
        return service.list_failed_syncs()
    except Exception as e:
        logger.error(f"❌ [Failed Syncs] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to fetch failed syncs") from e


@router.post("/retry", response_model=RetrySingleResponse)
async def retry_single_sync(
    data: RetrySingleRequest,
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Retry syncing one booking"""
    try:
        return await service.retry_single(data.id, data.collection)
    except CredentialsNotConfiguredError as e:
        raise _credentials_error(e) from e
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"❌ [Retry Single] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Retry failed") from e


@router.post("/retry-failed", response_model=RetryFailedResponse)
async def retry_failed_syncs(
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Retry every booking that carries a sync error"""
    try:
        return await service.retry_failed()
    except CredentialsNotConfiguredError as e:
        raise _credentials_error(e) from e
    except Exception as e:
        logger.error(f"❌ [Retry Sync] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Retry failed") from e


# ============================================================================
# GHL -> WEBSITE
# ============================================================================


@router.post("/from-ghl", response_model=SyncFromCrmResponse)
async def sync_from_ghl(
    _admin: dict = Depends(get_current_admin),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Pull GHL appointments into the website and drop bookings GHL no longer has"""
    try:
        return await service.sync_from_crm()
    except CredentialsNotConfiguredError as e:
        raise _credentials_error(e, status_code=400) from e
    except CRMUnavailableError as e:
        logger.error(f"❌ [ghl-sync] {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    except Exception as e:
        logger.error(f"❌ [ghl-sync] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Unknown error") from e


# ============================================================================
# CRON
# ============================================================================


@cron_router.get("/ghl-sync", response_model=ScheduledSyncResponse)
async def scheduled_ghl_sync(
    _: None = Depends(verify_cron_secret),
    service: GHLSyncService = Depends(get_ghl_sync_service),
):
    """Periodic retry of unsynced bookings (Vercel cron, cron-job.org, ...)"""
    try:
        return await service.scheduled_sync()
    except CredentialsNotConfiguredError as e:
        raise _credentials_error(e) from e
    except Exception as e:
        logger.error(f"❌ [Cron] Error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Sync failed") from e
