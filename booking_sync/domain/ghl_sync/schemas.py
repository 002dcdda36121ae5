"""GHL sync domain schemas - Pydantic models for requests and sync reports"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

SyncStatus = Literal["synced", "failed", "skipped"]

SYNC_COLLECTIONS = ("bookings", "appointments")


class GHLCredentials(BaseModel):
    """API key + location id used for every CRM call"""

    api_key: str = ""
    location_id: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.location_id)


class SyncToCrmRequest(BaseModel):
    """Body of the website -> GHL sync trigger"""

    forceResync: bool = False


class SyncResult(BaseModel):
    """Outcome of syncing one local record to GHL"""

    id: str
    collection: str
    clientName: str
    date: str
    status: SyncStatus
    ghlContactId: Optional[str] = None
    ghlAppointmentId: Optional[str] = None
    error: Optional[str] = None


class SyncSummary(BaseModel):
    total: int = 0
    synced: int = 0
    failed: int = 0
    skipped: int = 0


class SyncToCrmResponse(BaseModel):
    success: bool = True
    summary: SyncSummary
    results: list[SyncResult]
    message: str


class CollectionSyncStatus(BaseModel):
    """Sync progress of one collection. skipped past-date records are also counted as synced"""

    total: int = 0
    synced: int = 0
    unsynced: int = 0
    failed: int = 0
    skipped: int = 0


class SyncStatusResponse(BaseModel):
    bookings: CollectionSyncStatus
    appointments: CollectionSyncStatus
    totalUnsynced: int
    totalFailed: int
    totalSkipped: int


class SyncFromCrmResponse(BaseModel):
    success: bool = True
    synced: int = 0
    failed: int = 0
    deleted: int = 0
    calendars: int = 0


class FailedSync(BaseModel):
    """Local record that still needs to reach GHL"""

    id: str
    collection: str
    clientName: str
    clientEmail: str = ""
    clientPhone: str = ""
    serviceName: str = ""
    date: str
    time: str = ""
    error: str
    retryCount: int = 0
    lastRetry: Optional[str] = None
    ghlContactId: Optional[str] = None
    skippedReason: Optional[str] = None


class FailedSyncsResponse(BaseModel):
    failed: list[FailedSync]
    count: int
    bookingsCount: int
    appointmentsCount: int


class RetrySingleRequest(BaseModel):
    id: str = Field(min_length=1)
    collection: str

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, v: str) -> str:
        if v not in SYNC_COLLECTIONS:
            raise ValueError(f"collection must be one of {', '.join(SYNC_COLLECTIONS)}")
        return v


class RetrySingleResponse(BaseModel):
    success: bool
    ghlContactId: Optional[str] = None
    ghlAppointmentId: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class RetryFailedResponse(BaseModel):
    success: bool = True
    summary: SyncSummary
    results: list[SyncResult]
    message: str


class ScheduledSyncResponse(BaseModel):
    """Report of the cron-driven retry of unsynced records"""

    success: bool = True
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    skippedPastDates: int = 0
    details: list[SyncResult] = []
    message: str = ""
    timestamp: str = ""


class WebhookResponse(BaseModel):
    success: bool = True
    message: str = "Webhook processed successfully"
