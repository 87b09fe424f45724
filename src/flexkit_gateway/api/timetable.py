"""Timetable and booking routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from flexkit_gateway.api.dependencies import get_timetable, optional_client, require_client
from flexkit_gateway.api.responses import success
from flexkit_gateway.errors import InvalidRequest
from flexkit_gateway.services.otp_authenticator import AuthenticatedClient
from flexkit_gateway.services.timetable_service import PROGRAM_TYPES, TimetableService

router = APIRouter(prefix="/api", tags=["timetable"])


# ── Request models ───────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ClassBookRequest(_CamelModel):
    class_id: int = Field(alias="classId", gt=0)


class ClassCancelRequest(_CamelModel):
    class_id: int = Field(alias="classId", gt=0)
    start_date_time: datetime = Field(alias="startDateTime")


class AppointmentBookRequest(_CamelModel):
    start_date_time: datetime = Field(alias="startDateTime")
    staff_id: int = Field(alias="staffId", gt=0)
    location_id: int = Field(alias="locationId", gt=0)
    session_type_id: int = Field(alias="sessionTypeId", gt=0)
    notes: str | None = None


class AppointmentCancelRequest(_CamelModel):
    appointment_id: int = Field(alias="appointmentId", gt=0)
    send_email: bool = Field(default=True, alias="sendEmail")
    late_cancel: bool = Field(default=False, alias="lateCancel")


# ── Filters & schedule ───────────────────────────────────


@router.get("/timetable/filters")
async def timetable_filters(
    online_only: bool = Query(True),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    filters = await timetable.get_filter_options(online_only)
    return success(filters, "Filter options retrieved successfully")


@router.get("/timetable/data")
async def timetable_data(
    program_type: str = Query(..., alias="programType"),
    start_date_time: str = Query(..., alias="startDateTime"),
    end_date_time: str = Query(..., alias="endDateTime"),
    session_type_id: int | None = Query(None, alias="sessionTypeId"),
    program_id: int | None = Query(None, alias="programId"),
    location_id: int | None = Query(None, alias="locationId"),
    current: AuthenticatedClient | None = Depends(optional_client),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    if program_type not in PROGRAM_TYPES:
        raise InvalidRequest('programType must be either "classes" or "appointments"')
    if program_type == "appointments" and not session_type_id:
        raise InvalidRequest("sessionTypeId is required for appointments")

    data = await timetable.get_timetable(
        program_type,
        start_date_time,
        end_date_time,
        location_id=location_id,
        program_id=program_id,
        session_type_id=session_type_id,
        client_id=current.identity.id if current else None,
    )
    return success(data, "Timetable data retrieved successfully")


# ── Classes ──────────────────────────────────────────────


@router.post("/class/book")
async def book_class(
    body: ClassBookRequest,
    current: AuthenticatedClient = Depends(require_client),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    result = await timetable.book_class(current.identity.id, body.class_id)
    return success(result, "Class booked successfully")


@router.post("/class/cancel")
async def cancel_class(
    body: ClassCancelRequest,
    current: AuthenticatedClient = Depends(require_client),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    result = await timetable.cancel_class(
        current.identity.id, body.class_id, body.start_date_time
    )
    return success(result, "Class cancelled successfully")


# ── Appointments ─────────────────────────────────────────


@router.post("/appointment/book")
async def book_appointment(
    body: AppointmentBookRequest,
    current: AuthenticatedClient = Depends(require_client),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    result = await timetable.book_appointment(
        current.identity.id,
        starts_at=body.start_date_time.isoformat(),
        staff_id=body.staff_id,
        location_id=body.location_id,
        session_type_id=body.session_type_id,
        notes=body.notes,
    )
    return success(result, "Appointment booked successfully")


@router.post("/appointment/cancel")
async def cancel_appointment(
    body: AppointmentCancelRequest,
    current: AuthenticatedClient = Depends(require_client),
    timetable: TimetableService = Depends(get_timetable),
) -> dict:
    await timetable.cancel_appointment(
        body.appointment_id, body.send_email, body.late_cancel
    )
    return success(message="Appointment cancelled successfully")
