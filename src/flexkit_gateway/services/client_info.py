"""Client info — reshapes Mindbody client records for the app."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from flexkit_gateway.errors import NotFound
from flexkit_gateway.services.mindbody_client import MindbodyClient

logger = logging.getLogger(__name__)

VISITS_LOOKBACK = timedelta(days=3 * 365)
VISITS_LOOKAHEAD = timedelta(days=90)


def parse_upstream_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Unparseable upstream datetime %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _clock_time(value: datetime) -> str:
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{value.hour % 12 or 12}:{value.minute:02d} {suffix}"


def format_client(record: dict[str, Any], fallback_id: str) -> dict[str, Any]:
    return {
        "id": record.get("Id", fallback_id),
        "first_name": record.get("FirstName", ""),
        "last_name": record.get("LastName", ""),
        "email": record.get("Email", ""),
        "mobile_phone": record.get("MobilePhone", ""),
        "home_phone": record.get("HomePhone", ""),
        "work_phone": record.get("WorkPhone", ""),
        "gender": record.get("Gender", ""),
        "status": record.get("Status", ""),
        "creation_date": record.get("CreationDate", ""),
        "birth_date": record.get("BirthDate", ""),
        "referred_by": record.get("ReferredBy", ""),
        "send_promotional_emails": record.get("SendPromotionalEmails", False),
        "address": {
            "line1": record.get("AddressLine1", ""),
            "line2": record.get("AddressLine2", ""),
            "city": record.get("City", ""),
            "state": record.get("State", ""),
            "postal_code": record.get("PostalCode", ""),
            "country": record.get("Country", ""),
        },
        "account_balance": record.get("AccountBalance", 0),
        "credit_card": record.get("ClientCreditCard"),
    }


def process_memberships(items: list[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
    """Flatten services and memberships, flagging expiry.

    ``days_until_expiry`` is ``None`` without an expiration date and ``0``
    once expired.
    """
    processed = []
    for item in items:
        expiration = parse_upstream_datetime(item.get("ExpirationDate"))
        is_expired = expiration is not None and expiration < now
        if expiration is None:
            days_left = None
        elif is_expired:
            days_left = 0
        else:
            days_left = (expiration - now).days
        processed.append(
            {
                "id": item.get("Id"),
                "name": item.get("Name", ""),
                "count": item.get("Count", 0),
                "remaining": item.get("Remaining", 0),
                "active_date": item.get("ActiveDate", ""),
                "expiration_date": item.get("ExpirationDate", ""),
                "payment_date": item.get("PaymentDate", ""),
                "current": item.get("Current", False),
                "product_id": item.get("ProductId", ""),
                "program": item.get("Program") or {},
                "site_id": item.get("SiteId", ""),
                "client_id": item.get("ClientID", ""),
                "is_expired": is_expired,
                "days_until_expiry": days_left,
            }
        )
    return processed


def format_contracts(contracts: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {"active": [], "terminated": []}
    for contract in contracts:
        formatted = {
            "id": contract.get("Id"),
            "name": contract.get("ContractName", ""),
            "start_date": contract.get("StartDate"),
            "end_date": contract.get("EndDate"),
            "agreement_date": contract.get("AgreementDate"),
            "autopay_status": contract.get("AutopayStatus"),
            "auto_renewing": contract.get("AutoRenewing", False),
            "upcoming_payments": [
                {
                    "date": event.get("ScheduleDate"),
                    "amount": event.get("ChargeAmount"),
                    "product_id": event.get("ProductId"),
                }
                for event in contract.get("UpcomingAutopayEvents") or []
            ],
        }
        bucket = "terminated" if contract.get("TerminationDate") else "active"
        grouped[bucket].append(formatted)
    return grouped


def format_visit_status(visit: dict[str, Any]) -> str:
    if visit.get("LateCancelled"):
        return "cancelled"
    if visit.get("Missed"):
        return "missed"
    status = (visit.get("AppointmentStatus") or "").lower()
    if status == "booked":
        return "completed" if visit.get("SignedIn") else "booked"
    if status == "noshow":
        return "no-show"
    if status in ("cancelled", "confirmed"):
        return status
    return status or "unknown"


def build_session_history(visits: list[dict[str, Any]], now: datetime) -> dict[str, Any]:
    """Split visits into upcoming and previous sessions with summary stats.

    A visit is upcoming only when it starts in the future and is still
    ``Booked``.  Upcoming sessions sort soonest first, previous sessions
    most recent first.
    """
    upcoming: list[tuple[datetime, dict[str, Any]]] = []
    previous: list[tuple[datetime, dict[str, Any]]] = []
    session_types: dict[str, dict[str, Any]] = {}

    for visit in visits:
        start = parse_upstream_datetime(visit.get("StartDateTime"))
        if start is None:
            continue
        end = parse_upstream_datetime(visit.get("EndDateTime"))
        kind = "class" if visit.get("ClassId") else "appointment"
        status = format_visit_status(visit)
        name = visit.get("Name", "")

        formatted = {
            "id": visit.get("Id"),
            "date": start.strftime("%Y-%m-%d"),
            "time": _clock_time(start),
            "end_time": _clock_time(end) if end else "",
            "name": name,
            "type": kind,
            "status": status,
            "location": {
                "id": visit.get("LocationId"),
                "name": visit.get("LocationName") or "TBD",
            },
            "staff": {
                "id": visit.get("StaffId"),
                "name": visit.get("StaffName") or "TBD",
            },
            "service": {
                "id": visit.get("ServiceId"),
                "name": visit.get("ServiceName"),
                "product_id": visit.get("ProductId"),
            },
            "can_cancel": not visit.get("LateCancelled") and status != "cancelled",
            "is_late_cancel": bool(visit.get("LateCancelled")),
            "signed_in": bool(visit.get("SignedIn")),
            "missed": bool(visit.get("Missed")),
        }

        entry = session_types.setdefault(name, {"name": name, "type": kind, "count": 0})
        entry["count"] += 1

        if start > now and visit.get("AppointmentStatus") == "Booked":
            upcoming.append((start, formatted))
        else:
            previous.append((start, formatted))

    upcoming.sort(key=lambda pair: pair[0])
    previous.sort(key=lambda pair: pair[0], reverse=True)

    return {
        "upcoming": [item for _, item in upcoming],
        "previous": [item for _, item in previous],
        "stats": {
            "total_sessions": len(visits),
            "upcoming_count": len(upcoming),
            "previous_count": len(previous),
            "session_types": list(session_types.values()),
        },
    }


class ClientInfoService:
    """Assembles the complete profile view for a logged-in client."""

    def __init__(
        self,
        mindbody: MindbodyClient,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._mindbody = mindbody
        self._clock = clock

    async def complete_info(
        self,
        client_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        now = self._clock()
        info = await self._mindbody.get_client_complete_info(client_id)
        record = info.get("Client")
        if not record:
            raise NotFound("Client not found", code="client_not_found")

        items = (info.get("ClientServices") or []) + (info.get("ClientMemberships") or [])
        visits = await self._mindbody.get_client_visits(
            client_id,
            start_date or (now - VISITS_LOOKBACK).strftime("%Y-%m-%d"),
            end_date or (now + VISITS_LOOKAHEAD).strftime("%Y-%m-%d"),
        )
        logger.debug("Client %s has %d visits in range", client_id, len(visits))

        return {
            "client": format_client(record, client_id),
            "memberships": process_memberships(items, now),
            "contracts": format_contracts(info.get("ClientContracts") or []),
            "session_history": build_session_history(visits, now),
        }
