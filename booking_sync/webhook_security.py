"""
Webhook Security Module

Shared-secret checks for machine callers:
- GHL appointment webhooks carrying GHL_WEBHOOK_SECRET in a static header
  (GHL workflow webhooks can only add fixed custom headers)
- Cron triggers carrying CRON_SECRET in a header
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

from . import config

logger = logging.getLogger(__name__)

GHL_SECRET_HEADER = "x-ghl-webhook-secret"
CRON_SECRET_HEADER = "x-cron-secret"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def _bearer(request: Request) -> str:
    authorization = request.headers.get("authorization") or ""
    return authorization[7:] if authorization.lower().startswith("bearer ") else authorization


async def verify_ghl_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Verify a GHL webhook against the shared secret.

    The secret is read from the X-GHL-Webhook-Secret header, falling back to
    Authorization: Bearer.

    Returns:
        Tuple of (is_valid, raw_body). Without a configured secret the body
        is accepted unchecked.
    """
    body = await request.body()

    if not secret:
        logger.warning("⚠️ GHL_WEBHOOK_SECRET not configured - webhook secret check skipped")
        return True, body

    provided = request.headers.get(GHL_SECRET_HEADER) or _bearer(request)
    if constant_time_compare(provided, secret):
        return True, body

    logger.warning(f"🚫 Invalid GHL webhook secret from {request.client.host if request.client else 'unknown'}")
    if raise_on_failure:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
    return False, body


async def verify_cron_secret(request: Request) -> None:
    """FastAPI dependency guarding cron endpoints"""
    expected = config.CRON_SECRET
    if not expected:
        return

    provided = request.headers.get(CRON_SECRET_HEADER) or _bearer(request)
    if not constant_time_compare(provided, expected):
        logger.warning(f"🚫 Rejected cron call to {request.url.path}")
        raise HTTPException(status_code=401, detail="Unauthorized")
