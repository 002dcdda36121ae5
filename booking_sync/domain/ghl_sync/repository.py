"""GHL sync repository - Firestore access for booking records and CRM settings"""

from dataclasses import dataclass, field
from typing import Any, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from .mapping import utc_now_iso

SETTINGS_COLLECTION = "crmSettings"
LEGACY_SETTINGS_DOCUMENT = "gohighlevel"

PAST_DATE_REASON = "past_date"


@dataclass
class AppointmentRecord:
    """A booking document from either legacy collection"""

    id: str
    collection: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def client_name(self) -> str:
        return self.data.get("clientName") or "Unknown"

    @property
    def client_email(self) -> str:
        return self.data.get("clientEmail") or ""

    @property
    def client_phone(self) -> str:
        return self.data.get("clientPhone") or ""

    @property
    def service_name(self) -> str:
        return self.data.get("serviceName") or ""

    @property
    def date(self) -> Optional[str]:
        if self.collection == "appointments":
            return self.data.get("scheduledDate") or self.data.get("date")
        return self.data.get("date") or self.data.get("scheduledDate")

    @property
    def display_date(self) -> str:
        return self.date or "Unknown"

    @property
    def time(self) -> str:
        return self.data.get("time") or self.data.get("scheduledTime") or ""

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    @property
    def price(self) -> Any:
        return self.data.get("price") or self.data.get("totalAmount") or 0

    @property
    def notes(self) -> str:
        return self.data.get("notes") or self.data.get("specialRequests") or ""

    @property
    def ghl_contact_id(self) -> Optional[str]:
        return self.data.get("ghlContactId") or None

    @property
    def ghl_appointment_id(self) -> Optional[str]:
        return self.data.get("ghlAppointmentId") or None

    @property
    def sync_error(self) -> Optional[str]:
        return self.data.get("ghlSyncError") or None

    @property
    def skipped_reason(self) -> Optional[str]:
        return self.data.get("ghlSkippedReason") or None

    @property
    def retry_count(self) -> int:
        return int(self.data.get("ghlRetryCount") or 0)


class AppointmentSource:
    """One legacy booking collection. Both collections share this interface"""

    def __init__(self, db, collection: str):
        self.db = db
        self.collection = collection

    def _ref(self):
        return self.db.collection(self.collection)

    def _to_record(self, snapshot) -> AppointmentRecord:
        return AppointmentRecord(
            id=snapshot.id, collection=self.collection, data=snapshot.to_dict() or {}
        )

    def list_records(self) -> list[AppointmentRecord]:
        return [self._to_record(doc) for doc in self._ref().stream()]

    def list_linked(self) -> list[AppointmentRecord]:
        """Records that reference a GHL appointment"""
        return [record for record in self.list_records() if record.ghl_appointment_id]

    def list_with_sync_error(self) -> list[AppointmentRecord]:
        return [record for record in self.list_records() if record.sync_error]

    def get(self, doc_id: str) -> Optional[AppointmentRecord]:
        snapshot = self._ref().document(doc_id).get()
        if not snapshot.exists:
            return None
        return self._to_record(snapshot)

    def find_by_ghl_appointment_id(self, ghl_appointment_id: str) -> Optional[AppointmentRecord]:
        docs = (
            self._ref()
            .where(filter=FieldFilter("ghlAppointmentId", "==", ghl_appointment_id))
            .limit(1)
            .get()
        )
        for doc in docs:
            return self._to_record(doc)
        return None

    def add(self, fields: dict[str, Any]) -> str:
        """Insert a new document and return its id"""
        _, doc_ref = self._ref().add(fields)
        return doc_ref.id

    def update(self, doc_id: str, fields: dict[str, Any]) -> None:
        self._ref().document(doc_id).update(fields)

    def delete(self, doc_id: str) -> None:
        self._ref().document(doc_id).delete()

    # Sync bookkeeping

    def mark_synced(self, doc_id: str, contact_id: str, appointment_id: str, **extra) -> None:
        self.update(
            doc_id,
            {
                "ghlContactId": contact_id,
                "ghlAppointmentId": appointment_id,
                "lastSyncedAt": utc_now_iso(),
                "ghlSyncError": None,
                **extra,
            },
        )

    def mark_failed(self, doc_id: str, error: str, contact_id: Optional[str] = None, **extra) -> None:
        fields: dict[str, Any] = {"ghlSyncAttempted": utc_now_iso(), "ghlSyncError": error}
        if contact_id:
            fields["ghlContactId"] = contact_id
        fields.update(extra)
        self.update(doc_id, fields)

    def mark_skipped_past_date(self, doc_id: str, contact_id: Optional[str]) -> None:
        fields: dict[str, Any] = {
            "ghlSyncError": "Past date - cannot sync to GHL calendar",
            "ghlSkippedReason": PAST_DATE_REASON,
        }
        if contact_id:
            fields["ghlContactId"] = contact_id
        self.update(doc_id, fields)


class SettingsRepository:
    """crmSettings collection holding the GHL credentials saved from the dashboard"""

    def __init__(self, db):
        self.db = db

    def first_settings(self) -> Optional[dict[str, Any]]:
        for doc in self.db.collection(SETTINGS_COLLECTION).limit(1).get():
            return doc.to_dict() or {}
        return None

    def legacy_settings(self) -> Optional[dict[str, Any]]:
        snapshot = self.db.collection(SETTINGS_COLLECTION).document(LEGACY_SETTINGS_DOCUMENT).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}


def get_sources(db) -> list[AppointmentSource]:
    """Both booking collections in scan order"""
    return [AppointmentSource(db, "bookings"), AppointmentSource(db, "appointments")]
