"""Tests for the GHL -> website direction, including deletion of vanished appointments."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from booking_sync.domain.ghl_sync.service import CRMUnavailableError

from .conftest import future_date, ghl_event


def past_date(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%d")


@pytest.fixture
def jane(ghl):
    ghl.add_contact("contact-1", firstName="Jane", lastName="Doe", email="jane@example.com", phone="+15550100")


@pytest.mark.asyncio
async def test_vanished_appointments_are_deleted(service, db, ghl, jane):
    db.seed("bookings", "keep", clientName="Old Name", date=future_date(3), ghlAppointmentId="evt-1")
    db.seed("bookings", "gone", clientName="Cancelled", date=future_date(5), ghlAppointmentId="evt-gone")
    db.seed("bookings", "archived", clientName="Archived", date=past_date(60), ghlAppointmentId="evt-old")
    db.seed("bookings", "far", clientName="Next Year", date=future_date(200), ghlAppointmentId="evt-far")
    db.seed("bookings", "local", clientName="Website Only", date=future_date(4))
    ghl.calendar_events["cal-service"] = [ghl_event("evt-1")]

    result = await service.sync_from_crm()

    assert result.synced == 1
    assert result.deleted == 3
    assert result.calendars == 1
    assert db.doc("bookings", "gone") is None
    assert db.doc("bookings", "archived") is None
    assert db.doc("bookings", "far") is None
    assert db.doc("bookings", "local") is not None
    kept = db.doc("bookings", "keep")
    assert kept["clientName"] == "Jane Doe"
    assert kept["status"] == "confirmed"
    assert kept["price"] == 450
    assert kept["depositPaid"] is True


@pytest.mark.asyncio
async def test_vanished_appointment_in_legacy_collection_is_deleted(service, db, ghl):
    db.seed("appointments", "a1", scheduledDate=future_date(2), ghlAppointmentId="evt-missing")

    result = await service.sync_from_crm()

    assert result.deleted == 1
    assert db.doc("appointments", "a1") is None


@pytest.mark.asyncio
async def test_new_appointment_is_added_to_bookings(service, db, ghl, jane):
    ghl.calendar_events["cal-service"] = [ghl_event("evt-new", notes="Service: Brows")]

    result = await service.sync_from_crm()

    assert result.synced == 1
    adds = [w for w in db.writes if w[0] == "add"]
    assert len(adds) == 1
    _, collection, doc_id, fields = adds[0]
    assert collection == "bookings"
    assert fields["ghlAppointmentId"] == "evt-new"
    assert fields["clientEmail"] == "jane@example.com"
    assert fields["serviceName"] == "Microblading"
    assert fields["price"] == 0
    assert fields["depositPaid"] is False


@pytest.mark.asyncio
async def test_linked_record_is_updated_in_its_own_collection(service, db, ghl, jane):
    db.seed("appointments", "a1", scheduledDate=future_date(3), ghlAppointmentId="evt-1")
    ghl.calendar_events["cal-service"] = [ghl_event("evt-1", appointmentStatus="showed")]

    await service.sync_from_crm()

    assert db.doc("appointments", "a1")["status"] == "completed"
    assert not [w for w in db.writes if w[0] == "add"]


@pytest.mark.asyncio
async def test_contact_appointments_outside_calendars_are_pulled(service, db, ghl):
    db.seed("bookings", "b1", clientName="Sam", ghlContactId="contact-7", date=future_date(1))
    ghl.contact_appointments["contact-7"] = [ghl_event("evt-off", contact_id="contact-7", calendarId="cal-other")]

    result = await service.sync_from_crm()

    assert result.synced == 1
    assert ("list_contact_appointments", "contact-7") in ghl.calls
    added = [w for w in db.writes if w[0] == "add"]
    assert added[0][3]["ghlAppointmentId"] == "evt-off"


@pytest.mark.asyncio
async def test_event_seen_twice_is_upserted_once(service, db, ghl, jane):
    ghl.calendar_events["cal-service"] = [ghl_event("evt-1")]
    ghl.contact_appointments["contact-1"] = [ghl_event("evt-1")]

    result = await service.sync_from_crm()

    assert result.synced == 1
    assert len([w for w in db.writes if w[0] == "add"]) == 1


@pytest.mark.asyncio
async def test_failed_calendar_skips_deletion(service, db, ghl):
    ghl.calendars = [{"id": "cal-service", "name": "Service"}, {"id": "cal-broken", "name": "Broken"}]
    ghl.failing_calendars.add("cal-broken")
    db.seed("bookings", "b1", date=future_date(2), ghlAppointmentId="evt-on-broken-calendar")

    result = await service.sync_from_crm()

    assert result.deleted == 0
    assert db.doc("bookings", "b1") is not None


@pytest.mark.asyncio
async def test_failed_contact_pass_skips_deletion(service, db, ghl):
    db.seed(
        "bookings", "b1", clientName="Sam", ghlContactId="contact-7", date=future_date(2), ghlAppointmentId="evt-off"
    )
    ghl.contact_appointments["contact-7"] = [ghl_event("evt-off", contact_id="contact-7", calendarId="cal-other")]
    ghl.failing_contact_appointments.add("contact-7")

    result = await service.sync_from_crm()

    assert result.deleted == 0
    assert db.doc("bookings", "b1")["ghlAppointmentId"] == "evt-off"


@pytest.mark.asyncio
async def test_pull_pauses_between_crm_calls(service, db, ghl, jane, monkeypatch):
    pauses = []

    async def record_pause():
        pauses.append(1)

    monkeypatch.setattr(service, "_pause", record_pause)
    db.seed("bookings", "b1", clientName="Sam", ghlContactId="contact-7", date=future_date(1))
    ghl.calendar_events["cal-service"] = [ghl_event("evt-1"), ghl_event("evt-2")]

    await service.sync_from_crm()

    # contact-1 and contact-7 in the contact pass, evt-1 and evt-2 in the upsert pass
    assert len(pauses) == 4


@pytest.mark.asyncio
async def test_calendar_list_failure_aborts(service, db, ghl):
    ghl.calendars = None
    db.seed("bookings", "b1", date=future_date(2), ghlAppointmentId="evt-1")

    with pytest.raises(CRMUnavailableError):
        await service.sync_from_crm()
    assert db.writes == []


@pytest.mark.asyncio
async def test_unknown_contact_is_named_unknown(service, db, ghl):
    ghl.calendar_events["cal-service"] = [ghl_event("evt-1", contact_id="contact-deleted")]

    await service.sync_from_crm()

    added = [w for w in db.writes if w[0] == "add"]
    assert added[0][3]["clientName"] == "Unknown"
    assert added[0][3]["clientEmail"] == ""


@pytest.mark.asyncio
async def test_unparseable_event_counts_as_failed(service, db, ghl, jane):
    ghl.calendar_events["cal-service"] = [ghl_event("evt-bad", startTime="whenever"), ghl_event("evt-good")]

    result = await service.sync_from_crm()

    assert result.synced == 1
    assert result.failed == 1
