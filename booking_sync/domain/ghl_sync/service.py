"""GHL sync service - Reconciles website bookings with GoHighLevel appointments"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ... import config
from .client import GHLClient
from .credentials import CredentialResolver
from .mapping import (
    build_crm_notes,
    build_local_record,
    local_start,
    map_local_status,
    studio_tz,
    utc_now_iso,
)
from .repository import PAST_DATE_REASON, AppointmentRecord, AppointmentSource, get_sources
from .schemas import (
    SYNC_COLLECTIONS,
    CollectionSyncStatus,
    FailedSync,
    FailedSyncsResponse,
    RetryFailedResponse,
    RetrySingleResponse,
    ScheduledSyncResponse,
    SyncFromCrmResponse,
    SyncResult,
    SyncStatusResponse,
    SyncSummary,
    SyncToCrmResponse,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

CONTACT_FAILED = "Failed to create/find GHL contact"
APPOINTMENT_FAILED = "Failed to create GHL appointment"
PAST_DATE_ERROR = "Past date - GHL does not allow past appointments"

WEBHOOK_UPSERT_EVENTS = {"appointment.created", "appointment.updated", "AppointmentCreate", "AppointmentUpdate"}
WEBHOOK_DELETE_EVENTS = {"appointment.deleted", "AppointmentDelete"}


class GHLSyncError(Exception):
    """Base error for failures that abort a whole sync run"""


class CredentialsNotConfiguredError(GHLSyncError):
    pass


class CRMUnavailableError(GHLSyncError):
    pass


class AppointmentNotFoundError(GHLSyncError):
    pass


@dataclass
class PushOutcome:
    """CRM side result of pushing one booking. Nothing is written locally"""

    contact_id: Optional[str] = None
    appointment_id: Optional[str] = None
    error: Optional[str] = None
    past_date: bool = False

    @property
    def ok(self) -> bool:
        return bool(self.appointment_id)


ClientFactory = Callable[[str, str], GHLClient]


class GHLSyncService:
    """Service layer for both sync directions and the retry tooling around them"""

    def __init__(self, db, client_factory: Optional[ClientFactory] = None):
        self.db = db
        self.client_factory = client_factory or GHLClient
        self.sources = get_sources(db)
        self.tz = studio_tz()

    def _source(self, collection: str) -> AppointmentSource:
        for source in self.sources:
            if source.collection == collection:
                return source
        raise ValueError(f"Unknown collection: {collection}")

    def get_client(self) -> GHLClient:
        """Client for the configured location. Raises before any network call if unconfigured"""
        credentials = CredentialResolver(self.db).resolve()
        if not credentials.is_configured:
            raise CredentialsNotConfiguredError(
                "GHL credentials not configured. Set GHL_API_KEY and GHL_LOCATION_ID "
                "or save them in the dashboard"
            )
        return self.client_factory(credentials.api_key, credentials.location_id)

    @staticmethod
    def _safe_update(source: AppointmentSource, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            source.update(doc_id, fields)
        except Exception as e:
            logger.error(f"❌ Failed to record sync state on {source.collection}/{doc_id}: {e}")

    @staticmethod
    def _result(record: AppointmentRecord, status: str, **kwargs) -> SyncResult:
        return SyncResult(
            id=record.id,
            collection=record.collection,
            clientName=record.client_name,
            date=record.display_date,
            status=status,
            **kwargs,
        )

    async def _pause(self) -> None:
        await asyncio.sleep(config.GHL_SYNC_DELAY_SECONDS)

    async def _push(
        self,
        client: GHLClient,
        record: AppointmentRecord,
        contact_source: str,
        tags: list[str],
        to_notify: bool = False,
        reject_past: bool = False,
    ) -> PushOutcome:
        """Ensure a GHL contact and create the GHL appointment for a booking"""
        contact_id = record.ghl_contact_id
        if not contact_id:
            contact_id = await client.find_or_create_contact(
                record.data.get("clientName") or "Unknown Client",
                record.client_email,
                record.client_phone,
                source=contact_source,
                tags=tags,
            )
        if not contact_id:
            return PushOutcome(error=CONTACT_FAILED)

        try:
            start = local_start({"date": record.date, "time": record.time}, self.tz)
        except ValueError:
            logger.error(
                f"❌ Invalid date/time on {record.collection}/{record.id}: {record.date!r} {record.time!r}"
            )
            return PushOutcome(contact_id=contact_id, error=f"Invalid date/time: {record.date} {record.time}")
        if start is None:
            logger.error(f"❌ No date found for {record.collection}/{record.id}")
            return PushOutcome(contact_id=contact_id, error="No date found")

        if reject_past and start < datetime.now(timezone.utc):
            logger.info(f"⏭️ Skipping past appointment {record.collection}/{record.id} on {record.date}")
            return PushOutcome(contact_id=contact_id, error=PAST_DATE_ERROR, past_date=True)

        service_name = record.service_name or "Appointment"
        client_name = record.data.get("clientName") or "Unknown Client"
        created = await client.create_appointment(
            contact_id=contact_id,
            calendar_id=config.GHL_SERVICE_CALENDAR_ID,
            title=f"{service_name} - {client_name}",
            start=start,
            notes=build_crm_notes(service_name, record.price, record.notes),
            status=map_local_status(record.status),
            to_notify=to_notify,
        )
        if not created.id:
            return PushOutcome(contact_id=contact_id, error=created.error or "Failed to create appointment")
        return PushOutcome(contact_id=contact_id, appointment_id=created.id)

    # ========================================================================
    # WEBSITE -> GHL
    # ========================================================================

    async def _sync_record(
        self, client: GHLClient, source: AppointmentSource, record: AppointmentRecord
    ) -> SyncResult:
        try:
            outcome = await self._push(
                client,
                record,
                contact_source="Website Sync",
                tags=["website-booking", "synced-from-firebase"],
            )

            if not outcome.contact_id:
                return self._result(record, "failed", error=CONTACT_FAILED)

            if not outcome.ok:
                # Keep the contact so the next run skips contact resolution
                source.mark_failed(record.id, outcome.error, contact_id=outcome.contact_id)
                return self._result(
                    record,
                    "failed",
                    ghlContactId=outcome.contact_id,
                    error=f"{APPOINTMENT_FAILED}: {outcome.error}",
                )

            source.mark_synced(record.id, outcome.contact_id, outcome.appointment_id)
            return self._result(
                record,
                "synced",
                ghlContactId=outcome.contact_id,
                ghlAppointmentId=outcome.appointment_id,
            )

        except Exception as e:
            message = str(e) or "Unknown error"
            logger.error(f"❌ GHL sync failed for {record.collection}/{record.id}: {message}")
            self._safe_update(
                source, record.id, {"ghlSyncAttempted": utc_now_iso(), "ghlSyncError": message}
            )
            return self._result(record, "failed", error=message)

    async def sync_to_crm(self, force_resync: bool = False) -> SyncToCrmResponse:
        """Push every booking without a GHL appointment (all of them when forcing)"""
        client = self.get_client()
        results: list[SyncResult] = []

        for source in self.sources:
            logger.info(f"🔄 [GHL Sync] Fetching {source.collection} collection...")
            records = source.list_records()
            logger.info(f"🔄 [GHL Sync] Found {len(records)} {source.collection}")

            for record in records:
                if record.ghl_appointment_id and not force_resync:
                    results.append(
                        self._result(
                            record,
                            "skipped",
                            ghlContactId=record.ghl_contact_id,
                            ghlAppointmentId=record.ghl_appointment_id,
                        )
                    )
                    continue

                results.append(await self._sync_record(client, source, record))
                await self._pause()

        summary = SyncSummary(
            total=len(results),
            synced=sum(1 for r in results if r.status == "synced"),
            failed=sum(1 for r in results if r.status == "failed"),
            skipped=sum(1 for r in results if r.status == "skipped"),
        )
        logger.info(
            f"✅ [GHL Sync] Complete: {summary.synced} synced, {summary.failed} failed, "
            f"{summary.skipped} skipped"
        )
        return SyncToCrmResponse(
            summary=summary,
            results=results,
            message=(
                f"Sync complete: {summary.synced} synced, {summary.failed} failed, "
                f"{summary.skipped} already synced"
            ),
        )

    def get_sync_status(self) -> SyncStatusResponse:
        """Progress counts from the stored sync fields. Read-only"""
        per_collection: dict[str, CollectionSyncStatus] = {}

        for source in self.sources:
            status = CollectionSyncStatus()
            for record in source.list_records():
                status.total += 1
                if record.ghl_appointment_id:
                    status.synced += 1
                elif record.skipped_reason == PAST_DATE_REASON:
                    # Past dates count toward the progress bar as well
                    status.skipped += 1
                    status.synced += 1
                elif record.sync_error:
                    status.failed += 1
                else:
                    status.unsynced += 1
            per_collection[source.collection] = status

        bookings = per_collection["bookings"]
        appointments = per_collection["appointments"]
        return SyncStatusResponse(
            bookings=bookings,
            appointments=appointments,
            totalUnsynced=bookings.unsynced + appointments.unsynced,
            totalFailed=bookings.failed + appointments.failed,
            totalSkipped=bookings.skipped + appointments.skipped,
        )

    def list_failed_syncs(self) -> FailedSyncsResponse:
        """Bookings with a sync error or no GHL appointment, newest first"""
        failed: list[FailedSync] = []

        for source in self.sources:
            for record in source.list_records():
                if record.skipped_reason == PAST_DATE_REASON:
                    continue
                if not (record.sync_error or not record.ghl_appointment_id):
                    continue
                failed.append(
                    FailedSync(
                        id=record.id,
                        collection=record.collection,
                        clientName=record.client_name,
                        clientEmail=record.client_email,
                        clientPhone=record.client_phone,
                        serviceName=record.service_name,
                        date=record.display_date,
                        time=record.time,
                        error=record.sync_error or "Not synced to GHL",
                        retryCount=record.retry_count,
                        lastRetry=record.data.get("ghlLastRetry"),
                        ghlContactId=record.ghl_contact_id,
                        skippedReason=record.skipped_reason,
                    )
                )

        failed.sort(key=lambda f: f.date if f.date[:1].isdigit() else "", reverse=True)
        return FailedSyncsResponse(
            failed=failed,
            count=len(failed),
            bookingsCount=sum(1 for f in failed if f.collection == "bookings"),
            appointmentsCount=sum(1 for f in failed if f.collection == "appointments"),
        )

    async def retry_single(self, doc_id: str, collection: str) -> RetrySingleResponse:
        """Retry one booking from the failed-syncs view"""
        client = self.get_client()
        source = self._source(collection)
        record = source.get(doc_id)
        if record is None:
            raise AppointmentNotFoundError("Appointment not found")

        retry_fields = {"ghlRetryCount": record.retry_count + 1, "ghlLastRetry": utc_now_iso()}
        outcome = await self._push(
            client,
            record,
            contact_source="Website Manual Retry",
            tags=["website-booking", "manual-retry"],
            to_notify=True,
            reject_past=True,
        )

        if not outcome.contact_id:
            source.update(doc_id, {"ghlSyncError": "Failed to create/find contact", **retry_fields})
            return RetrySingleResponse(success=False, error=CONTACT_FAILED)

        if not outcome.ok:
            source.update(
                doc_id, {"ghlContactId": outcome.contact_id, "ghlSyncError": outcome.error, **retry_fields}
            )
            return RetrySingleResponse(success=False, ghlContactId=outcome.contact_id, error=outcome.error)

        source.mark_synced(doc_id, outcome.contact_id, outcome.appointment_id)
        logger.info(f"✅ Retried {collection}/{doc_id} -> {outcome.appointment_id}")
        return RetrySingleResponse(
            success=True,
            ghlContactId=outcome.contact_id,
            ghlAppointmentId=outcome.appointment_id,
            message="Successfully synced to GHL",
        )

    async def retry_failed(self) -> RetryFailedResponse:
        """Retry every booking that carries a sync error"""
        client = self.get_client()
        results: list[SyncResult] = []

        for source in self.sources:
            records = source.list_with_sync_error()
            logger.info(f"🔁 [Retry Sync] Found {len(records)} failed {source.collection}")

            for record in records:
                if record.ghl_appointment_id:
                    self._safe_update(source, record.id, {"ghlSyncError": None})
                    continue

                try:
                    outcome = await self._push(
                        client,
                        record,
                        contact_source="Website Sync",
                        tags=["website-booking", "retry-sync"],
                    )
                    if not outcome.contact_id:
                        results.append(self._result(record, "failed", error="Could not create contact"))
                    elif outcome.ok:
                        source.mark_synced(
                            record.id,
                            outcome.contact_id,
                            outcome.appointment_id,
                            ghlRetryCount=record.retry_count + 1,
                        )
                        results.append(
                            self._result(
                                record,
                                "synced",
                                ghlContactId=outcome.contact_id,
                                ghlAppointmentId=outcome.appointment_id,
                            )
                        )
                    else:
                        source.update(
                            record.id,
                            {
                                "ghlContactId": outcome.contact_id,
                                "ghlRetryCount": record.retry_count + 1,
                                "ghlLastRetry": utc_now_iso(),
                            },
                        )
                        results.append(
                            self._result(
                                record, "failed", ghlContactId=outcome.contact_id, error=outcome.error
                            )
                        )
                except Exception as e:
                    logger.error(f"❌ Retry failed for {record.collection}/{record.id}: {e}")
                    results.append(self._result(record, "failed", error=str(e) or "Unknown error"))

                await self._pause()

        synced = sum(1 for r in results if r.status == "synced")
        failed = sum(1 for r in results if r.status == "failed")
        return RetryFailedResponse(
            summary=SyncSummary(total=len(results), synced=synced, failed=failed),
            results=results,
            message=f"Retry complete: {synced} synced, {failed} still failing",
        )

    async def scheduled_sync(self) -> ScheduledSyncResponse:
        """
        Cron pass over unsynced bookings.

        Gives up on a record after GHL_MAX_RETRY_COUNT attempts. Past-dated
        bookings cannot be booked in GHL and are flagged instead.
        """
        client = self.get_client()
        report = ScheduledSyncResponse()

        for source in self.sources:
            for record in source.list_records():
                if record.ghl_appointment_id or record.retry_count >= config.GHL_MAX_RETRY_COUNT:
                    report.skipped += 1
                    continue

                retry_fields = {"ghlRetryCount": record.retry_count + 1, "ghlLastRetry": utc_now_iso()}
                try:
                    outcome = await self._push(
                        client,
                        record,
                        contact_source="Website Auto-Sync",
                        tags=["website-booking", "auto-sync"],
                        to_notify=True,
                        reject_past=True,
                    )

                    if not outcome.contact_id:
                        report.failed += 1
                        source.update(record.id, {"ghlSyncError": "Failed to create contact", **retry_fields})
                    elif outcome.past_date:
                        report.skippedPastDates += 1
                        source.mark_skipped_past_date(record.id, outcome.contact_id)
                    elif outcome.ok:
                        report.synced += 1
                        source.mark_synced(record.id, outcome.contact_id, outcome.appointment_id)
                        report.details.append(
                            self._result(
                                record,
                                "synced",
                                ghlContactId=outcome.contact_id,
                                ghlAppointmentId=outcome.appointment_id,
                            )
                        )
                    else:
                        report.failed += 1
                        source.update(
                            record.id,
                            {"ghlContactId": outcome.contact_id, "ghlSyncError": outcome.error, **retry_fields},
                        )
                except Exception as e:
                    report.failed += 1
                    logger.error(f"❌ [Cron] Sync failed for {record.collection}/{record.id}: {e}")
                    self._safe_update(source, record.id, {"ghlSyncError": str(e), **retry_fields})

                await self._pause()

        report.message = (
            f"Synced: {report.synced}, Failed: {report.failed}, Skipped: {report.skipped}, "
            f"Past dates: {report.skippedPastDates}"
        )
        report.timestamp = utc_now_iso()
        logger.info(f"⏰ [Cron] Sync complete: {report.message}")
        return report

    # ========================================================================
    # GHL -> WEBSITE
    # ========================================================================

    def find_linked(self, ghl_appointment_id: str) -> Optional[tuple[AppointmentSource, AppointmentRecord]]:
        for source in self.sources:
            record = source.find_by_ghl_appointment_id(ghl_appointment_id)
            if record is not None:
                return source, record
        return None

    async def _upsert_event(
        self,
        client: Optional[GHLClient],
        event: dict[str, Any],
        contacts: dict[str, Optional[dict[str, Any]]],
    ) -> str:
        """Insert or update the booking that mirrors a GHL appointment. Returns the document id"""
        contact_id = event.get("contactId")
        if contact_id and client is not None and contact_id not in contacts:
            try:
                contacts[contact_id] = await client.get_contact(contact_id)
            except Exception as e:
                logger.error(f"❌ Error fetching GHL contact {contact_id}: {e}")
                contacts[contact_id] = None
        contact = contacts.get(contact_id) if contact_id else None

        fields = build_local_record(event, contact, self.tz)

        linked = self.find_linked(event["id"])
        if linked is not None:
            source, record = linked
            source.update(record.id, fields)
            logger.info(f"📝 Updated {source.collection}/{record.id} from GHL {event['id']}")
            return record.id

        bookings = self._source("bookings")
        doc_id = bookings.add(fields)
        logger.info(f"➕ Created bookings/{doc_id} from GHL {event['id']}")
        return doc_id

    async def sync_from_crm(self) -> SyncFromCrmResponse:
        """
        Pull GHL appointments inside the rolling window into the website.

        Appointments come from every calendar of the location plus every
        known contact's appointment list. Afterwards, every linked booking whose
        GHL appointment was not pulled is deleted, unless part of the pull failed.
        """
        client = self.get_client()

        calendars = await client.list_calendars()
        if calendars is None:
            raise CRMUnavailableError("Failed to fetch GHL calendars")
        logger.info(f"📆 [ghl-sync] Found {len(calendars)} calendars")

        now = datetime.now(timezone.utc)
        window_start = now - timedelta(days=config.GHL_SYNC_PAST_DAYS)
        window_end = now + timedelta(days=config.GHL_SYNC_FUTURE_DAYS)

        events: dict[str, dict[str, Any]] = {}
        complete = True

        for calendar in calendars:
            logger.info(f"📆 [ghl-sync] Fetching from \"{calendar.get('name')}\"...")
            fetched = await client.list_calendar_events(calendar["id"], window_start, window_end)
            if fetched is None:
                complete = False
                logger.error(f"❌ [ghl-sync] Failed to fetch from calendar \"{calendar.get('name')}\"")
                continue
            for event in fetched:
                if event.get("id"):
                    events.setdefault(event["id"], event)

        contact_ids = {event["contactId"] for event in events.values() if event.get("contactId")}
        for source in self.sources:
            contact_ids.update(r.ghl_contact_id for r in source.list_records() if r.ghl_contact_id)

        for contact_id in sorted(contact_ids):
            fetched = await client.list_contact_appointments(contact_id, window_start, window_end)
            await self._pause()
            if fetched is None:
                complete = False
                logger.error(f"❌ [ghl-sync] Failed to fetch appointments for contact {contact_id}")
                continue
            for event in fetched:
                if event.get("id") and event["id"] not in events:
                    logger.info(f"📆 [ghl-sync] Found off-calendar appointment {event['id']} for contact {contact_id}")
                    events[event["id"]] = event

        synced = 0
        failed = 0
        contacts: dict[str, Optional[dict[str, Any]]] = {}
        for event in events.values():
            try:
                await self._upsert_event(client, event, contacts)
                synced += 1
            except Exception as e:
                failed += 1
                logger.error(f"❌ [ghl-sync] Failed to sync appointment {event.get('id')}: {e}")
            await self._pause()

        deleted = 0
        if complete:
            for source in self.sources:
                for record in source.list_linked():
                    if record.ghl_appointment_id in events:
                        continue
                    try:
                        source.delete(record.id)
                        deleted += 1
                        logger.info(
                            f"🗑️ [ghl-sync] Deleted {source.collection}/{record.id} "
                            f"(GHL appointment {record.ghl_appointment_id} no longer exists)"
                        )
                    except Exception as e:
                        logger.error(f"❌ [ghl-sync] Failed to delete {source.collection}/{record.id}: {e}")
        else:
            logger.warning("⚠️ [ghl-sync] Pull incomplete, skipping deletion of missing appointments")

        logger.info(f"✅ [ghl-sync] Sync complete. Synced: {synced}, Failed: {failed}, Deleted: {deleted}")
        return SyncFromCrmResponse(synced=synced, failed=failed, deleted=deleted, calendars=len(calendars))

    async def handle_webhook(self, payload: dict[str, Any]) -> WebhookResponse:
        """Apply a single GHL appointment event"""
        event_type = payload.get("type")
        event = payload.get("appointment") or payload
        if not isinstance(event, dict):
            raise ValueError("Webhook appointment must be an object")
        appointment_id = event.get("id")
        logger.info(f"📥 [ghl-webhook] {event_type} for appointment {appointment_id}")

        if event_type in WEBHOOK_UPSERT_EVENTS:
            if not appointment_id:
                raise ValueError("Webhook payload has no appointment id")
            try:
                client = self.get_client()
            except CredentialsNotConfiguredError:
                logger.warning("⚠️ [ghl-webhook] GHL credentials missing, syncing without contact details")
                client = None
            await self._upsert_event(client, event, {})

        elif event_type in WEBHOOK_DELETE_EVENTS:
            linked = self.find_linked(appointment_id) if appointment_id else None
            if linked is not None:
                source, record = linked
                source.update(record.id, {"status": "cancelled", "lastSyncedAt": utc_now_iso()})
                logger.info(f"🚫 [ghl-webhook] Marked {source.collection}/{record.id} as cancelled")

        else:
            logger.debug(f"[ghl-webhook] Unhandled event type: {event_type}")

        return WebhookResponse()


__all__ = [
    "GHLSyncService",
    "GHLSyncError",
    "CredentialsNotConfiguredError",
    "CRMUnavailableError",
    "AppointmentNotFoundError",
    "SYNC_COLLECTIONS",
]
