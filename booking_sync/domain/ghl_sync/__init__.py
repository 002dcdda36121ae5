"""
GHL Sync Domain

Keeps website bookings (Firestore `bookings` and legacy `appointments`
collections) and GoHighLevel calendar appointments in agreement.

Structure:
- credentials.py: API key / location id lookup (Firestore settings, then env)
- client.py: GoHighLevel REST client
- mapping.py: status table, timestamp and notes parsing
- repository.py: Firestore adapters, one per booking collection
- service.py: both sync directions, retries, cron and webhook handling
- router.py / webhooks.py: HTTP endpoints
"""

from .router import cron_router, router
from .webhooks import webhooks_router

__all__ = ["router", "cron_router", "webhooks_router"]
