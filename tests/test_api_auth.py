"""End-to-end tests for the /api/auth routes."""

import time

import pytest

from flexkit_gateway.services.mindbody_client import Identity
from flexkit_gateway.services.token_issuer import TokenIssuer

from conftest import sent_code


async def _request_code(http, email="alice@example.com"):
    return await http.post("/api/auth/email", json={"email": email})


# ──── Test 1: login flow ────────────────────────────────────

@pytest.mark.asyncio
async def test_email_then_verify(http, email_service):
    resp = await _request_code(http)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Verification code sent successfully."
    assert body["data"]["email"] == "alice@example.com"
    assert body["data"]["expires_in"] == 600
    request_id = body["data"]["request_id"]

    resp = await http.post(
        "/api/auth/verify", json={"request_id": request_id, "otp": sent_code(email_service)}
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["client"]["id"] == "100015"
    assert data["client"]["email"] == "Alice@Example.com"
    assert data["token_type"] == "Bearer"
    assert data["expires_in"] == 86400
    assert data["access_token"]
    assert data["schedule"] == [{"Id": 1, "Name": "Reformer"}]


@pytest.mark.asyncio
async def test_verify_by_email(http, email_service):
    await _request_code(http)
    resp = await http.post(
        "/api/auth/verify",
        json={"email": "alice@example.com", "otp": sent_code(email_service)},
    )
    assert resp.status_code == 200
    client = resp.json()["data"]["client"]
    assert client["id"] == "100015"
    assert client["email"] == "Alice@Example.com"


@pytest.mark.asyncio
async def test_verify_survives_schedule_failure(http, email_service, fake_upstream):
    resp = await _request_code(http)
    fake_upstream.failures["/client/clientschedule"] = [500, 500, 500]

    resp = await http.post(
        "/api/auth/verify",
        json={"request_id": resp.json()["data"]["request_id"], "otp": sent_code(email_service)},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["schedule"] == []


@pytest.mark.asyncio
async def test_wrong_code(http, email_service):
    resp = await _request_code(http)
    code = sent_code(email_service)
    wrong = "999999" if code != "999999" else "100000"

    resp = await http.post(
        "/api/auth/verify",
        json={"request_id": resp.json()["data"]["request_id"], "otp": wrong},
    )
    assert resp.status_code == 400
    assert resp.json() == {
        "error": True,
        "message": "Invalid OTP code",
        "status": 400,
        "code": "invalid_otp",
    }


@pytest.mark.asyncio
async def test_unknown_email_is_404(http):
    resp = await _request_code(http, "ghost@example.com")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Client not found"


# ──── Test 2: input validation ──────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, message",
    [
        ({}, "Email is required"),
        ({"email": "   "}, "Email is required"),
        ({"email": "not-an-email"}, "Invalid email format"),
    ],
)
async def test_email_validation(http, payload, message):
    resp = await http.post("/api/auth/email", json=payload)
    assert resp.status_code == 400
    assert resp.json()["message"] == message
    assert resp.json()["code"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, message",
    [
        ({"otp": "123456"}, "Email is required"),
        ({"request_id": "abc"}, "OTP code is required"),
        ({"request_id": "abc", "otp": "12345"}, "OTP code must be 6 digits"),
        ({"request_id": "abc", "otp": "12a456"}, "OTP code must be 6 digits"),
    ],
)
async def test_verify_validation(http, payload, message):
    resp = await http.post("/api/auth/verify", json=payload)
    assert resp.status_code == 400
    assert resp.json()["message"] == message


# ──── Test 3: bearer protection ─────────────────────────────

@pytest.mark.asyncio
async def test_status_anonymous(http):
    resp = await http.get("/api/auth/status")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"authenticated": False, "client": None, "expires_at": None}


@pytest.mark.asyncio
async def test_status_authenticated(http, auth_headers):
    resp = await http.get("/api/auth/status", headers=auth_headers)
    data = resp.json()["data"]
    assert data["authenticated"] is True
    assert data["client"]["id"] == "100015"
    assert data["expires_at"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers, message",
    [
        ({}, "Authentication required"),
        ({"Authorization": "Basic dXNlcjpwYXNz"}, "Authentication required"),
        ({"Authorization": "Bearer garbage"}, "Invalid token"),
        ({"Authorization": "Bearer a.b.c"}, "Invalid token"),
    ],
)
async def test_protected_route_rejects(http, headers, message):
    resp = await http.post("/api/auth/logout", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["message"] == message


@pytest.mark.asyncio
async def test_expired_token_rejected(http, settings, auth_headers):
    stale = TokenIssuer(
        settings.jwt_secret, settings.token_issuer, clock=lambda: time.time() - 7200
    )
    alice = Identity(
        id="100015", first_name="Alice", last_name="Johnson",
        email="Alice@Example.com", phone="+15551234567",
    )
    token = stale.issue(alice, ttl=60)

    resp = await http.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token has expired"
    assert resp.json()["code"] == "token_expired"


@pytest.mark.asyncio
async def test_logout_revokes_token(http, auth_headers):
    resp = await http.post("/api/auth/logout", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Logged out successfully"}

    resp = await http.post("/api/auth/logout", headers=auth_headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "session_revoked"
