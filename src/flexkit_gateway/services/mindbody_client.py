"""Mindbody API client — async HTTP wrapper around the public v6 API.

Every logical request is counted once against the local rate limiter, then
executed with a bounded fixed-delay retry.  A fresh user token is issued
for every attempt.  TLS verification is never relaxed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from flexkit_gateway.config import Settings
from flexkit_gateway.errors import (
    InvalidRequest,
    RateLimitExceeded,
    UpstreamError,
    UpstreamHttpError,
    UpstreamProtocolError,
    UpstreamTransportError,
    UpstreamUnavailable,
)
from flexkit_gateway.services.rate_limiter import RequestRateLimiter

logger = logging.getLogger(__name__)

USER_AGENT = "FlexKit-Ten/1.0"
TOKEN_ENDPOINT = "/usertoken/issue"
CARD_PAYMENT_TYPES = ("CreditCard", "EFT")


@dataclass
class Identity:
    """Customer record from the booking platform, reduced to what we use."""

    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    site_id: str = ""

    @classmethod
    def from_upstream(cls, record: dict[str, Any], site_id: str = "") -> Identity:
        return cls(
            id=str(record.get("Id", "")),
            first_name=record.get("FirstName") or "",
            last_name=record.get("LastName") or "",
            email=record.get("Email") or "",
            phone=record.get("MobilePhone") or "",
            site_id=site_id,
        )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_public(self) -> dict[str, str]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
        }


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.retryable


def _clean_query(params: dict[str, Any]) -> dict[str, Any]:
    """Drop unset values; httpx repeats list values as ``key=a&key=b``."""
    query: dict[str, Any] = {}
    for key, value in params.items():
        if value is None or value == [] or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        query[key] = value
    return query


class MindbodyClient:
    """Async client for the Mindbody public API.

    Parameters
    ----------
    settings:
        Application settings (credentials, timeouts, retry and rate limits).
    rate_limiter:
        Shared limiter; one is built from *settings* when omitted.
    transport:
        Optional httpx transport, used by tests to fake the upstream.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        rate_limiter: RequestRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._site_id = settings.mindbody_site_id
        self._max_attempts = max(settings.mindbody_max_attempts, 1)
        self._retry_delay = settings.mindbody_retry_delay_seconds
        self._limiter = rate_limiter or RequestRateLimiter(
            per_minute=settings.mindbody_requests_per_minute,
            per_day=settings.mindbody_requests_per_day,
        )
        self._http = httpx.AsyncClient(
            base_url=settings.mindbody_api_base_url.rstrip("/"),
            timeout=settings.mindbody_timeout_seconds,
            headers={
                "Api-Key": settings.mindbody_api_key,
                "SiteId": self._site_id,
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            follow_redirects=True,
            verify=True,
            transport=transport,
        )

    @property
    def site_id(self) -> str:
        return self._site_id

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    # ── Core request pipeline ────────────────────────────

    async def request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        method: str = "GET",
        use_staff_token: bool = False,
    ) -> dict[str, Any]:
        """Call *endpoint* and return the decoded JSON object.

        Raises :class:`RateLimitExceeded` before any network traffic when a
        ceiling is hit, :class:`UpstreamHttpError` for non-retryable HTTP
        failures, and :class:`UpstreamUnavailable` once retries run out.
        """
        self._limiter.acquire()
        method = method.upper()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_fixed(self._retry_delay),
                retry=retry_if_exception(_is_retryable),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    return await self._attempt(endpoint, params or {}, method, use_staff_token)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error(
                "%s %s failed after %d attempts: %s",
                method, endpoint, self._max_attempts, last,
            )
            raise UpstreamUnavailable(
                f"Booking service request failed after {self._max_attempts} attempts"
            ) from last
        raise UpstreamUnavailable()  # pragma: no cover

    async def _attempt(
        self,
        endpoint: str,
        params: dict[str, Any],
        method: str,
        use_staff_token: bool,
    ) -> dict[str, Any]:
        token = await self._issue_token(staff=use_staff_token)
        headers = {"Authorization": token}
        if method == "GET":
            response = await self._send(
                method, endpoint, params=_clean_query(params), headers=headers
            )
        else:
            response = await self._send(method, endpoint, json=params, headers=headers)
        logger.debug("%s %s -> %s", method, endpoint, response.status_code)
        return self._decode(response)

    async def _issue_token(self, *, staff: bool) -> str:
        s = self._settings
        username = s.mindbody_source_name
        password = s.mindbody_password
        if staff and s.mindbody_staff_username:
            username = s.mindbody_staff_username
            password = s.mindbody_staff_password
        response = await self._send(
            "POST", TOKEN_ENDPOINT, json={"Username": username, "Password": password}
        )
        data = self._decode(response)
        token = data.get("AccessToken")
        if not token:
            raise UpstreamProtocolError(
                f"Failed to obtain access token: {data.get('Message', 'no token in response')}"
            )
        return token

    async def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, endpoint, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("Transport error on %s %s: %s", method, endpoint, exc)
            raise UpstreamTransportError(f"Booking service unreachable: {exc}") from exc

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            logger.error(
                "Mindbody HTTP %s on %s", response.status_code, response.request.url.path
            )
            raise UpstreamHttpError(response.status_code, response.text[:2000])
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamProtocolError("Booking service returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamProtocolError("Booking service returned a non-object body")
        return data

    async def test_connection(self) -> bool:
        try:
            await self.request("/site/sites")
        except (UpstreamError, RateLimitExceeded) as exc:
            logger.error("Connection test failed: %s", exc)
            return False
        return True

    # ── Clients ──────────────────────────────────────────

    async def search_clients(self, search_text: str) -> list[dict[str, Any]]:
        data = await self.request("/client/clients", {"searchText": search_text})
        return data.get("Clients") or []

    async def find_client_by_email(self, email: str) -> Identity | None:
        """Exact, case-insensitive email match among the search results."""
        wanted = email.strip().lower()
        for record in await self.search_clients(email):
            if (record.get("Email") or "").strip().lower() == wanted:
                return Identity.from_upstream(record, self._site_id)
        return None

    async def get_client_record(self, client_id: str) -> dict[str, Any] | None:
        data = await self.request("/client/clients", {"clientIds": [client_id]})
        clients = data.get("Clients") or []
        return clients[0] if clients else None

    async def get_client(self, client_id: str) -> Identity | None:
        record = await self.get_client_record(client_id)
        if record is None:
            return None
        return Identity.from_upstream(record, self._site_id)

    async def create_client(self, form: dict[str, Any]) -> dict[str, Any]:
        """Create a client from the registration form fields."""
        client: dict[str, Any] = {
            "FirstName": form["first_name"],
            "LastName": form["last_name"],
            "Email": form["email"],
            "MobilePhone": form.get("phone") or "",
            "LiabilityRelease": bool(form.get("terms_accepted", False)),
            "Country": form.get("country") or "US",
            "ProspectStage": "Member",
        }
        if form.get("date_of_birth"):
            client["BirthDate"] = form["date_of_birth"]
        if form.get("gender"):
            client["Gender"] = str(form["gender"]).capitalize()
        if form.get("hear_about"):
            client["ReferredBy"] = form["hear_about"]
        if form.get("marketing_accepted") is not None:
            client["SendPromotionalEmails"] = bool(form["marketing_accepted"])
            client["SendPromotionalTexts"] = bool(form["marketing_accepted"])
        return await self.request("/client/addclient", {"Client": client}, "POST")

    async def update_client(self, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        payload = {
            "Client": {**fields, "Id": client_id},
            "CrossRegionalUpdate": False,
        }
        return await self.request("/client/updateclient", payload, "POST")

    async def get_client_complete_info(self, client_id: str) -> dict[str, Any]:
        return await self.request(
            "/client/clientcompleteinfo",
            {"clientId": client_id, "limit": 200, "offset": 0},
        )

    async def get_client_visits(
        self, client_id: str, start_date: str, end_date: str
    ) -> list[dict[str, Any]]:
        data = await self.request(
            "/client/clientvisits",
            {
                "clientId": client_id,
                "startDate": start_date,
                "endDate": end_date,
                "limit": 200,
            },
        )
        return data.get("Visits") or []

    async def get_client_schedule(self, client_id: str) -> list[dict[str, Any]]:
        data = await self.request("/client/clientschedule", {"clientId": client_id})
        return data.get("Visits") or []

    async def get_client_services(
        self, client_id: str, session_type_id: int | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"clientId": client_id, "limit": 100, "offset": 0}
        if session_type_id:
            params["sessionTypeId"] = session_type_id
        data = await self.request("/client/clientservices", params, use_staff_token=True)
        return data.get("ClientServices") or []

    # ── Site & schedule ──────────────────────────────────

    async def get_locations(self) -> list[dict[str, Any]]:
        data = await self.request("/site/locations", {"limit": 100, "offset": 0})
        if "Locations" not in data:
            raise UpstreamProtocolError("Locations missing from response")
        return data["Locations"]

    async def get_programs(self, schedule_type: str = "Class") -> list[dict[str, Any]]:
        data = await self.request(
            "/site/programs",
            {"limit": 100, "offset": 0, "scheduleType": schedule_type},
        )
        if "Programs" not in data:
            raise UpstreamProtocolError("Programs missing from response")
        return data["Programs"]

    async def get_session_types(self, online_only: bool = True) -> list[dict[str, Any]]:
        data = await self.request("/site/sessiontypes", {"onlineOnly": online_only})
        if "SessionTypes" not in data:
            raise UpstreamProtocolError("SessionTypes missing from response")
        return data["SessionTypes"]

    async def get_class_schedule(self, **filters: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        params = {
            "startDateTime": now.isoformat(),
            "endDateTime": (now + timedelta(days=30)).isoformat(),
            "locationIds": [],
            "programIds": [],
            "sessionTypeIds": [],
        }
        params.update({k: v for k, v in filters.items() if v is not None})
        return await self.request("/class/classes", params)

    async def get_appointment_times(self, **filters: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        params = {
            "startDateTime": now.isoformat(),
            "endDateTime": (now + timedelta(days=30)).isoformat(),
            "locationIds": [],
            "staffIds": [],
            "sessionTypeIds": [],
        }
        params.update({k: v for k, v in filters.items() if v is not None})
        return await self.request("/appointment/appointmenttimes", params)

    # ── Bookings ─────────────────────────────────────────

    async def add_client_to_class(
        self, client_id: str, class_id: int, send_email: bool = True
    ) -> dict[str, Any]:
        return await self.request(
            "/class/addclienttoclass",
            {"ClientId": client_id, "ClassId": class_id, "SendEmail": send_email},
            "POST",
        )

    async def remove_client_from_class(
        self, client_id: str, class_id: int, late_cancel: bool = False
    ) -> dict[str, Any]:
        return await self.request(
            "/class/removeclientfromclass",
            {"ClientId": client_id, "ClassId": class_id, "LateCancel": late_cancel},
            "POST",
        )

    async def add_appointment(self, booking: dict[str, Any]) -> dict[str, Any]:
        return await self.request(
            "/appointment/addappointment", booking, "POST", use_staff_token=True
        )

    async def cancel_appointment(
        self, appointment_id: int, send_email: bool = True, late_cancel: bool = False
    ) -> dict[str, Any]:
        return await self.request(
            "/appointment/updateappointment",
            {
                "AppointmentId": appointment_id,
                "Execute": "Cancel",
                "SendEmail": send_email,
                "LateCancel": late_cancel,
            },
            "POST",
        )

    # ── Commerce ─────────────────────────────────────────

    async def get_services(self) -> dict[str, Any]:
        return await self.request(
            "/sale/services",
            {"limit": 200, "offset": 0, "sellOnline": True},
            use_staff_token=True,
        )

    async def get_service(self, service_id: int) -> dict[str, Any] | None:
        data = await self.request(
            "/sale/services",
            {"serviceIds": [service_id], "sellOnline": True},
            use_staff_token=True,
        )
        services = data.get("Services") or []
        return services[0] if services else None

    async def get_contracts(self, location_id: int | None = None) -> dict[str, Any]:
        return await self.request(
            "/sale/contracts",
            {
                "limit": 100,
                "offset": 0,
                "locationId": location_id or self._settings.default_location_id,
                "soldOnline": True,
            },
            use_staff_token=True,
        )

    async def get_contract(
        self, contract_id: int, location_id: int | None = None
    ) -> dict[str, Any] | None:
        data = await self.request(
            "/sale/contracts",
            {
                "contractIds": [contract_id],
                "locationId": location_id or self._settings.default_location_id,
                "soldOnline": True,
            },
            use_staff_token=True,
        )
        contracts = data.get("Contracts") or []
        return contracts[0] if contracts else None

    async def get_promotions(self) -> dict[str, Any]:
        return await self.request(
            "/sale/promotions", {"limit": 100, "offset": 0}, use_staff_token=True
        )

    async def purchase_contract(
        self,
        client_id: str,
        contract_id: int,
        location_id: int,
        *,
        payment_type: str = "CreditCard",
        credit_card: dict[str, Any] | None = None,
        promotion_code: str | None = None,
        override_payment_amount: float | None = None,
        discount_amount: float | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ClientId": client_id,
            "LocationId": location_id,
            "ContractId": contract_id,
            "PaymentType": payment_type,
        }
        if promotion_code:
            payload["PromotionCode"] = promotion_code
        if override_payment_amount is not None:
            payload["OverridePaymentAmount"] = override_payment_amount
        if discount_amount is not None:
            payload["DiscountAmount"] = discount_amount

        if payment_type in CARD_PAYMENT_TYPES:
            if not credit_card:
                raise InvalidRequest(
                    "Credit card information is required for CreditCard or EFT payments"
                )
            card = {
                "CreditCardNumber": credit_card.get("number", ""),
                "ExpMonth": int(credit_card.get("exp_month") or 0),
                "ExpYear": int(credit_card.get("exp_year") or 0),
                "BillingName": credit_card.get("billing_name", ""),
                "BillingAddress": credit_card.get("billing_address", ""),
                "BillingCity": credit_card.get("billing_city", ""),
                "BillingState": credit_card.get("billing_state", ""),
                "BillingPostalCode": credit_card.get("billing_postal_code", ""),
            }
            if credit_card.get("cvc"):
                card["CVV"] = credit_card["cvc"]
            payload["CreditCardInfo"] = card

        logger.info("Purchasing contract %s for client %s", contract_id, client_id)
        return await self.request("/sale/purchasecontract", payload, "POST", use_staff_token=True)
