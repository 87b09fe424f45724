"""Shared fixtures: settings, in-memory database, fake Mindbody, app client."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from flexkit_gateway.config import Settings
from flexkit_gateway.database.engine import build_engine, build_session_factory, init_db
from flexkit_gateway.main import create_app
from flexkit_gateway.services.email_service import EmailService
from flexkit_gateway.services.mindbody_client import MindbodyClient

API_PREFIX = "/public/v6"

ALICE = {
    "Id": "100015",
    "FirstName": "Alice",
    "LastName": "Johnson",
    "Email": "Alice@Example.com",
    "MobilePhone": "+15551234567",
}
CAROL = {
    "Id": "100027",
    "FirstName": "Carol",
    "LastName": "Davis",
    "Email": "carol.davis@example.com",
    "MobilePhone": "+442071234567",
}


class FrozenClock:
    """Callable clock returning a fixed, manually advanced UTC datetime."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2030, 1, 15, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class FakeMindbody:
    """Routes httpx requests by path to canned Mindbody responses.

    ``failures[path]`` is a queue of status codes or exceptions served
    before the normal response; ``responses[path]`` overrides the body (a str is sent as raw text).
    """

    def __init__(self) -> None:
        self.clients: list[dict[str, Any]] = [ALICE, CAROL]
        self.failures: dict[str, list[int | Exception]] = {}
        self.responses: dict[str, Any] = {}
        self.calls: list[httpx.Request] = []

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.path == API_PREFIX + path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path.removeprefix(API_PREFIX)

        queue = self.failures.get(path)
        if queue:
            outcome = queue.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return httpx.Response(outcome, text="upstream failure")

        if path in self.responses:
            body = self.responses[path]
            if isinstance(body, str):
                return httpx.Response(200, text=body)
            return httpx.Response(200, json=body)

        if path == "/usertoken/issue":
            return httpx.Response(200, json={"AccessToken": "mb-token-abc"})
        if path == "/client/clients":
            params = request.url.params
            if "searchText" in params:
                text = params["searchText"].lower()
                found = [c for c in self.clients if text in c["Email"].lower()]
            else:
                ids = params.get_list("clientIds")
                found = [c for c in self.clients if c["Id"] in ids]
            return httpx.Response(200, json={"Clients": found})
        if path == "/client/clientschedule":
            return httpx.Response(200, json={"Visits": [{"Id": 1, "Name": "Reformer"}]})
        return httpx.Response(200, json={})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="testing",
        database_url="sqlite+aiosqlite://",
        mindbody_api_key="test-api-key",
        mindbody_site_id="-99",
        mindbody_source_name="flexkit-source",
        mindbody_password="source-pass",
        mindbody_staff_username="staff-user",
        mindbody_staff_password="staff-pass",
        mindbody_retry_delay_seconds=0,
        jwt_secret="test-secret-key-that-is-long-enough-1234",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def fake_upstream() -> FakeMindbody:
    return FakeMindbody()


@pytest_asyncio.fixture
async def mindbody(settings, fake_upstream):
    client = MindbodyClient(settings, transport=httpx.MockTransport(fake_upstream.handler))
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def session_factory(settings):
    """Create tables in a fresh in-memory DB and yield a session factory."""
    engine = build_engine(settings)
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def email_service(settings):
    """Mocked email service — never actually sends emails."""
    svc = EmailService(settings)
    svc.send_otp_email = AsyncMock(return_value="<msg-1@flexkit.app>")
    return svc


def sent_code(email_service) -> str:
    """The OTP passed to the most recent ``send_otp_email`` call."""
    return email_service.send_otp_email.call_args.args[1]


@pytest.fixture
def app(settings, mindbody, email_service, session_factory):
    return create_app(
        settings,
        mindbody=mindbody,
        email_service=email_service,
        session_factory=session_factory,
    )


@pytest_asyncio.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def auth_headers(http, email_service) -> dict[str, str]:
    """Log Alice in through the API and return her bearer header."""
    resp = await http.post("/api/auth/email", json={"email": "alice@example.com"})
    request_id = resp.json()["data"]["request_id"]
    resp = await http.post(
        "/api/auth/verify",
        json={"request_id": request_id, "otp": sent_code(email_service)},
    )
    token = resp.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}
