"""Timetable service — filters, schedules and bookings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from flexkit_gateway.config import Settings
from flexkit_gateway.errors import Forbidden
from flexkit_gateway.services.client_info import parse_upstream_datetime
from flexkit_gateway.services.mindbody_client import MindbodyClient

logger = logging.getLogger(__name__)

SLOT_LENGTH = timedelta(minutes=30)
PRICING_PATH = "/pricing"

PROGRAM_TYPES = {"classes": "Class", "appointments": "Appointment"}


def generate_time_slots(availability: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Cut each availability window into whole 30-minute slots."""
    slots = []
    for window in availability:
        start = parse_upstream_datetime(window.get("StartDateTime"))
        end = parse_upstream_datetime(window.get("EndDateTime"))
        if start is None or end is None:
            continue
        while start + SLOT_LENGTH <= end:
            slots.append(
                {
                    "start": start.isoformat(),
                    "end": (start + SLOT_LENGTH).isoformat(),
                    "available": True,
                }
            )
            start += SLOT_LENGTH
    return slots


class TimetableService:
    """Wraps the schedule and booking endpoints with studio business rules."""

    def __init__(
        self,
        mindbody: MindbodyClient,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._mindbody = mindbody
        self._excluded_locations = set(settings.excluded_location_ids)
        self._class_programs = set(settings.class_program_ids)
        self._late_cancel_window = timedelta(hours=settings.late_cancel_window_hours)
        self._clock = clock

    # ── Filters ──────────────────────────────────────────

    async def get_locations(self) -> list[dict[str, Any]]:
        locations = []
        for location in await self._mindbody.get_locations():
            if location.get("Id") in self._excluded_locations:
                continue
            if not location.get("HasClasses"):
                continue
            locations.append(
                {
                    "id": location["Id"],
                    "name": location.get("Name", ""),
                    "siteId": location.get("SiteID"),
                }
            )
        return locations

    async def get_programs(self, schedule_type: str = "Class") -> list[dict[str, Any]]:
        programs = []
        for program in await self._mindbody.get_programs(schedule_type):
            if schedule_type == "Class" and program.get("Id") not in self._class_programs:
                continue
            programs.append({"id": program["Id"], "name": program.get("Name", "")})
        return programs

    async def get_session_types(self, online_only: bool = True) -> list[dict[str, Any]]:
        return [
            {"id": item["Id"], "name": item.get("Name", "")}
            for item in await self._mindbody.get_session_types(online_only)
        ]

    async def get_filter_options(self, online_only: bool = True) -> dict[str, Any]:
        return {
            "locations": await self.get_locations(),
            "programs": {
                "classes": await self.get_programs("Class"),
                "appointments": await self.get_programs("Appointment"),
            },
            "sessionTypes": await self.get_session_types(online_only),
        }

    # ── Schedule ─────────────────────────────────────────

    async def get_timetable(
        self,
        program_type: str,
        start: str,
        end: str,
        *,
        location_id: int | None = None,
        program_id: int | None = None,
        session_type_id: int | None = None,
        client_id: str | None = None,
    ) -> dict[str, Any]:
        location_ids = [location_id] if location_id else []
        if PROGRAM_TYPES[program_type] == "Class":
            return await self._mindbody.get_class_schedule(
                startDateTime=start,
                endDateTime=end,
                locationIds=location_ids,
                programIds=[program_id] if program_id else [],
                clientId=client_id,
            )

        data = await self._mindbody.get_appointment_times(
            startDateTime=start,
            endDateTime=end,
            locationIds=location_ids,
            sessionTypeIds=[session_type_id] if session_type_id else [],
        )
        if "AppointmentTimes" in data:
            data["TimeSlots"] = generate_time_slots(data["AppointmentTimes"])
        return data

    # ── Classes ──────────────────────────────────────────

    async def book_class(self, client_id: str, class_id: int) -> dict[str, Any]:
        result = await self._mindbody.add_client_to_class(client_id, class_id)
        logger.info("Client %s booked class %s", client_id, class_id)
        return result

    def is_late_cancel(self, starts_at: datetime) -> bool:
        if starts_at.tzinfo is None:
            starts_at = starts_at.replace(tzinfo=UTC)
        return starts_at - self._clock() < self._late_cancel_window

    async def cancel_class(
        self, client_id: str, class_id: int, starts_at: datetime
    ) -> dict[str, Any]:
        late = self.is_late_cancel(starts_at)
        result = await self._mindbody.remove_client_from_class(client_id, class_id, late)
        logger.info(
            "Client %s cancelled class %s (late=%s)", client_id, class_id, late
        )
        return {"late_cancel": late, "result": result}

    # ── Appointments ─────────────────────────────────────

    async def _ensure_entitled(self, client_id: str, session_type_id: int) -> None:
        """Raise :class:`Forbidden` unless a current package has sessions left."""
        services = await self._mindbody.get_client_services(client_id, session_type_id)
        if not services:
            if not await self._mindbody.get_client_services(client_id):
                raise Forbidden(
                    "You don't have any active packages or memberships. "
                    "Please purchase a package to book appointments.",
                    code="no_active_services",
                    extra={"redirect": PRICING_PATH},
                )
            raise Forbidden(
                "Your current package does not allow booking this type of "
                "appointment. Please purchase an appropriate package.",
                code="invalid_service_type",
                extra={"redirect": PRICING_PATH},
            )

        now = self._clock()
        for service in services:
            expires = parse_upstream_datetime(service.get("ExpirationDate"))
            if (service.get("Remaining") or 0) > 0 and expires is not None and expires > now:
                return
        raise Forbidden(
            "You have no remaining sessions in your package. "
            "Please purchase additional sessions to book appointments.",
            code="no_remaining_sessions",
            extra={"redirect": PRICING_PATH},
        )

    async def book_appointment(
        self,
        client_id: str,
        *,
        starts_at: str,
        staff_id: int,
        location_id: int,
        session_type_id: int,
        notes: str | None = None,
    ) -> dict[str, Any]:
        await self._ensure_entitled(client_id, session_type_id)

        booking: dict[str, Any] = {
            "ApplyPayment": False,
            "ClientId": client_id,
            "LocationId": location_id,
            "SessionTypeId": session_type_id,
            "StaffId": staff_id,
            "StaffRequested": True,
            "StartDateTime": starts_at,
            "Test": False,
        }
        if notes:
            booking["Notes"] = notes

        result = await self._mindbody.add_appointment(booking)
        appointment = result.get("Appointment") or {}
        logger.info("Client %s booked appointment %s", client_id, appointment.get("Id"))
        return {"AppointmentId": appointment.get("Id"), "StartDateTime": starts_at}

    async def cancel_appointment(
        self, appointment_id: int, send_email: bool = True, late_cancel: bool = False
    ) -> dict[str, Any]:
        result = await self._mindbody.cancel_appointment(appointment_id, send_email, late_cancel)
        logger.info("Appointment %s cancelled (late=%s)", appointment_id, late_cancel)
        return result
