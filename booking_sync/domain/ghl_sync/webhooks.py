"""
GHL Webhook Routes
Receives appointment events from GoHighLevel so bookings update without waiting for a sync
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ... import config
from ...webhook_security import verify_ghl_webhook
from .router import get_ghl_sync_service
from .schemas import WebhookResponse
from .service import GHLSyncService

logger = logging.getLogger(__name__)

webhooks_router = APIRouter(prefix="/webhooks/ghl", tags=["ghl-webhooks"])


@webhooks_router.post("/appointments", response_model=WebhookResponse)
async def handle_ghl_appointment_webhook(
    request: Request, service: GHLSyncService = Depends(get_ghl_sync_service)
):
    """
    Handle GHL appointment webhooks.
    Supported events: appointment.created, appointment.updated, appointment.deleted
    (and the AppointmentCreate/Update/Delete workflow names)
    """
    _, body = await verify_ghl_webhook(request, config.GHL_WEBHOOK_SECRET)

    try:
        payload = json.loads(body.decode() or "{}")
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        return await service.handle_webhook(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"❌ [ghl-webhook] Error processing webhook: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Unknown error") from e
