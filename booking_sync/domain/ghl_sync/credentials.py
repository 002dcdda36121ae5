"""Resolve the GHL API key and location id"""

import logging
from typing import Any, Optional

from ... import config
from .repository import SettingsRepository
from .schemas import GHLCredentials

logger = logging.getLogger(__name__)


class CredentialResolver:
    """
    Settings saved from the admin dashboard win over the environment.

    Lookup order: first document of crmSettings, the legacy
    crmSettings/gohighlevel document, then GHL_API_KEY / GHL_LOCATION_ID.
    A settings document missing one value falls back to the environment
    for that value only.
    """

    def __init__(self, db):
        self.repo = SettingsRepository(db)

    def _from_settings(self) -> Optional[dict[str, Any]]:
        try:
            settings = self.repo.first_settings()
            if settings is not None:
                logger.info("🔑 Found GHL credentials in Firestore")
                return settings

            settings = self.repo.legacy_settings()
            if settings is not None:
                logger.info("🔑 Found GHL credentials in Firestore (legacy doc)")
                return settings
        except Exception as e:
            logger.error(f"❌ Error fetching GHL credentials from Firestore: {e}")
        return None

    def resolve(self) -> GHLCredentials:
        settings = self._from_settings()
        if settings is None:
            logger.info("🔑 Using environment variables for GHL credentials")
            settings = {}

        return GHLCredentials(
            api_key=settings.get("apiKey") or config.GHL_API_KEY or "",
            location_id=settings.get("locationId") or config.GHL_LOCATION_ID or "",
        )
