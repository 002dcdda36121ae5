import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ... import config
from .mapping import APPOINTMENT_DURATION, parse_ghl_datetime

logger = logging.getLogger(__name__)


@dataclass
class AppointmentCreateResult:
    id: Optional[str] = None
    error: Optional[str] = None


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GHLClient:
    """
    Client for the GoHighLevel (LeadConnector) contacts and calendars API.

    Every method issues a single request. Non-2xx responses and transport
    errors are logged and turned into None/empty results so a failing record
    never aborts a batch.
    """

    def __init__(
        self,
        api_key: str,
        location_id: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.location_id = location_id
        self.base_url = (base_url or config.GHL_API_BASE).rstrip("/")
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Version": config.GHL_API_VERSION,
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Optional[httpx.Response]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=config.GHL_REQUEST_TIMEOUT,
            transport=self._transport,
        ) as client:
            try:
                return await client.request(method, path, params=params, json=payload)
            except httpx.HTTPError as e:
                logger.error(f"❌ GHL {method} {path} failed: {e}")
                return None

    @staticmethod
    def _ok(response: Optional[httpx.Response], action: str) -> bool:
        if response is None:
            return False
        if response.is_success:
            return True
        logger.error(f"❌ GHL {action} failed: {response.status_code} {response.text}")
        return False

    # Contacts

    async def search_contacts(self, query: str) -> list[dict[str, Any]]:
        """Search contacts by email or phone"""
        response = await self._request(
            "GET", "/contacts/", params={"locationId": self.location_id, "query": query}
        )
        if not self._ok(response, f"contact search for {query}"):
            return []
        return response.json().get("contacts") or []

    async def create_contact(
        self,
        name: str,
        email: str = "",
        phone: str = "",
        source: str = "Website Sync",
        tags: Optional[list[str]] = None,
    ) -> Optional[str]:
        """Create a contact and return its id"""
        parts = (name or "").split(" ")
        payload: dict[str, Any] = {
            "locationId": self.location_id,
            "firstName": parts[0] or "Unknown",
            "lastName": " ".join(parts[1:]),
            "source": source,
            "tags": tags or [],
        }
        if email:
            payload["email"] = email
        if phone:
            payload["phone"] = phone

        response = await self._request("POST", "/contacts/", payload=payload)
        if not self._ok(response, f"contact create for {name}"):
            return None

        data = response.json()
        contact_id = (data.get("contact") or {}).get("id") or data.get("id")
        logger.info(f"👤 Created GHL contact for {name}: {contact_id}")
        return contact_id

    async def find_or_create_contact(
        self,
        name: str,
        email: str = "",
        phone: str = "",
        source: str = "Website Sync",
        tags: Optional[list[str]] = None,
    ) -> Optional[str]:
        """Match by email, then phone, else create"""
        if email:
            matches = await self.search_contacts(email)
            if matches:
                logger.info(f"👤 Found existing GHL contact for {email}: {matches[0].get('id')}")
                return matches[0].get("id")

        if phone:
            matches = await self.search_contacts(phone)
            if matches:
                logger.info(f"👤 Found existing GHL contact by phone for {name}: {matches[0].get('id')}")
                return matches[0].get("id")

        return await self.create_contact(name, email, phone, source=source, tags=tags)

    async def get_contact(self, contact_id: str) -> Optional[dict[str, Any]]:
        response = await self._request("GET", f"/contacts/{contact_id}")
        if not self._ok(response, f"contact fetch {contact_id}"):
            return None
        return response.json().get("contact")

    # Calendars

    async def list_calendars(self) -> Optional[list[dict[str, Any]]]:
        """Calendars of the location, None when the request failed"""
        response = await self._request("GET", "/calendars/", params={"locationId": self.location_id})
        if not self._ok(response, "calendar list"):
            return None
        return [
            {"id": calendar.get("id"), "name": calendar.get("name")}
            for calendar in response.json().get("calendars") or []
        ]

    async def list_calendar_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> Optional[list[dict[str, Any]]]:
        """Appointments of one calendar between start and end, None when the request failed"""
        response = await self._request(
            "GET",
            "/calendars/events",
            params={
                "locationId": self.location_id,
                "calendarId": calendar_id,
                "startTime": _iso(start),
                "endTime": _iso(end),
            },
        )
        if not self._ok(response, f"event list for calendar {calendar_id}"):
            return None
        return response.json().get("events") or []

    async def list_contact_appointments(
        self, contact_id: str, start: datetime, end: datetime
    ) -> Optional[list[dict[str, Any]]]:
        """
        Appointments attached to a contact, including ones booked through
        opportunities that a calendar query misses. The endpoint has no date
        filter, so the window is applied here.
        """
        response = await self._request("GET", f"/contacts/{contact_id}/appointments")
        if not self._ok(response, f"appointment list for contact {contact_id}"):
            return None

        in_window = []
        for event in response.json().get("events") or []:
            event_start = parse_ghl_datetime(event.get("startTime"))
            if event_start is not None and start <= event_start <= end:
                in_window.append(event)
        return in_window

    async def create_appointment(
        self,
        contact_id: str,
        calendar_id: str,
        title: str,
        start: datetime,
        notes: str = "",
        status: str = "new",
        to_notify: bool = False,
    ) -> AppointmentCreateResult:
        """Book a fixed-length appointment. to_notify=False keeps backfills silent"""
        payload = {
            "locationId": self.location_id,
            "contactId": contact_id,
            "calendarId": calendar_id,
            "title": title,
            "appointmentStatus": status,
            "startTime": _iso(start),
            "endTime": _iso(start + APPOINTMENT_DURATION),
            "notes": notes,
            "toNotify": to_notify,
        }

        response = await self._request("POST", "/calendars/events/appointments", payload=payload)
        if response is None:
            return AppointmentCreateResult(error="Failed to reach GHL")

        if not self._ok(response, f"appointment create for contact {contact_id}"):
            try:
                message = response.json().get("message")
            except (json.JSONDecodeError, ValueError, AttributeError):
                message = None
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            return AppointmentCreateResult(error=message or response.text[:100] or "Failed to create appointment")

        data = response.json()
        appointment_id = data.get("id") or (data.get("event") or {}).get("id")
        logger.info(f"📅 Created GHL appointment {appointment_id} for contact {contact_id}")
        return AppointmentCreateResult(id=appointment_id)
