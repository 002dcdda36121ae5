"""
Field mapping between website appointment records and GHL appointments.

GHL has no structured place for price or deposit state, so both travel
inside the free-text appointment notes:

    Service: Microblading
    Price: $450
    Deposit: Paid

The regular expressions below are the parsing contract for that text and
must keep reading notes written by older syncs.
"""

import re
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ...config import STUDIO_TIMEZONE

DEFAULT_APPOINTMENT_TIME = "10:00"
APPOINTMENT_DURATION = timedelta(hours=3)

PRICE_PATTERN = re.compile(r"Price:\s*\$?(\d+)", re.IGNORECASE)
DEPOSIT_PAID_MARKER = "deposit: paid"

# Contact appointment endpoint format, always UTC
GHL_SPACE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_SPACE_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")

GHL_TO_LOCAL_STATUS = {
    "new": "pending",
    "confirmed": "confirmed",
    "showed": "completed",
    "noshow": "cancelled",
    "cancelled": "cancelled",
    "invalid": "cancelled",
}


def studio_tz() -> ZoneInfo:
    return ZoneInfo(STUDIO_TIMEZONE)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def map_ghl_status(ghl_status: Optional[str]) -> str:
    """Map a GHL appointment status to the website booking status"""
    if not ghl_status:
        return "pending"
    return GHL_TO_LOCAL_STATUS.get(ghl_status.strip().lower(), "pending")


def map_local_status(status: Optional[str]) -> str:
    """GHL status used when pushing a website booking"""
    return "confirmed" if status == "confirmed" else "new"


def appointment_status_of(event: dict[str, Any]) -> Optional[str]:
    # Some GHL payloads spell the field "appoinmentStatus"
    return event.get("appointmentStatus") or event.get("appoinmentStatus")


def parse_ghl_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a GHL timestamp into an aware UTC datetime.

    Calendar events use ISO-8601 ("2025-11-25T11:00:00.000Z"), contact
    appointments use "2025-11-25 11:00:00" in UTC. Epoch milliseconds are
    accepted as well. Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        try:
            if _SPACE_DATETIME_RE.match(text):
                parsed = datetime.strptime(text, GHL_SPACE_DATETIME_FORMAT)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_price(notes: Optional[str]) -> int:
    if not notes:
        return 0
    match = PRICE_PATTERN.search(notes)
    return int(match.group(1)) if match else 0


def is_deposit_paid(notes: Optional[str]) -> bool:
    return bool(notes) and DEPOSIT_PAID_MARKER in notes.lower()


def extract_service_name(title: Optional[str]) -> str:
    """Service name is the part of "Microblading - Jane Doe" before the first hyphen"""
    if not title:
        return "Appointment"
    head = title.split("-", 1)[0].strip()
    return head or title.strip()


def build_crm_notes(service_name: str, price: Any, notes: Optional[str] = None) -> str:
    return f"Service: {service_name}\nPrice: ${price}\n{notes or ''}".strip()


def _parse_clock(value: str) -> time:
    value = value.strip()
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        # 12h format (HH:MM AM/PM)
        return datetime.strptime(value.upper(), "%I:%M %p").time()


def local_start(record: dict[str, Any], tz: Optional[ZoneInfo] = None) -> Optional[datetime]:
    """
    Start of a website booking as an aware datetime in the studio timezone.

    Bookings store date and time separately; the legacy appointments
    collection names them scheduledDate/scheduledTime.
    """
    date_value = record.get("date") or record.get("scheduledDate")
    if not date_value:
        return None
    time_value = record.get("time") or record.get("scheduledTime") or DEFAULT_APPOINTMENT_TIME

    tz = tz or studio_tz()
    day = datetime.strptime(str(date_value)[:10], "%Y-%m-%d").date()
    return datetime.combine(day, _parse_clock(str(time_value)), tzinfo=tz)


def contact_display_name(contact: Optional[dict[str, Any]]) -> str:
    if not contact:
        return "Unknown"
    if contact.get("name"):
        return contact["name"]
    first = contact.get("firstName") or ""
    last = contact.get("lastName") or ""
    if first and last:
        return f"{first} {last}"
    return "Unknown"


def build_local_record(
    event: dict[str, Any],
    contact: Optional[dict[str, Any]],
    tz: Optional[ZoneInfo] = None,
) -> dict[str, Any]:
    """Website booking fields for a GHL appointment"""
    start = parse_ghl_datetime(event.get("startTime"))
    if start is None:
        raise ValueError(f"GHL appointment {event.get('id')} has no parseable startTime")
    end = parse_ghl_datetime(event.get("endTime")) or start + APPOINTMENT_DURATION

    tz = tz or studio_tz()
    local_begin = start.astimezone(tz)
    local_end = end.astimezone(tz)
    contact = contact or {}
    notes = event.get("notes") or ""
    now = utc_now_iso()

    created = parse_ghl_datetime(event.get("dateAdded"))
    updated = parse_ghl_datetime(event.get("dateUpdated"))

    return {
        "clientName": contact_display_name(contact),
        "clientEmail": contact.get("email") or "",
        "clientPhone": contact.get("phone") or "",
        "artistId": event.get("assignedUserId") or "default-artist",
        "serviceName": extract_service_name(event.get("title")),
        "date": local_begin.strftime("%Y-%m-%d"),
        "time": local_begin.strftime("%H:%M"),
        "endTime": local_end.strftime("%H:%M"),
        "status": map_ghl_status(appointment_status_of(event)),
        "price": extract_price(notes),
        "depositPaid": is_deposit_paid(notes),
        "notes": notes,
        "ghlContactId": event.get("contactId"),
        "ghlAppointmentId": event.get("id"),
        "ghlCalendarId": event.get("calendarId"),
        "lastSyncedAt": now,
        "createdAt": created.isoformat() if created else now,
        "updatedAt": updated.isoformat() if updated else now,
    }
