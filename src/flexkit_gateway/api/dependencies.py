"""FastAPI dependencies: service lookup and bearer authentication."""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from flexkit_gateway.config import Settings
from flexkit_gateway.errors import AuthRequired
from flexkit_gateway.services.client_info import ClientInfoService
from flexkit_gateway.services.mindbody_client import MindbodyClient
from flexkit_gateway.services.otp_authenticator import (
    AuthenticatedClient,
    OtpAuthenticator,
)
from flexkit_gateway.services.timetable_service import TimetableService

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_mindbody(request: Request) -> MindbodyClient:
    return request.app.state.mindbody


def get_authenticator(request: Request) -> OtpAuthenticator:
    return request.app.state.authenticator


def get_timetable(request: Request) -> TimetableService:
    return request.app.state.timetable


def get_client_info(request: Request) -> ClientInfoService:
    return request.app.state.client_info


async def require_client(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    authenticator: OtpAuthenticator = Depends(get_authenticator),
) -> AuthenticatedClient:
    """Resolve the bearer token or fail with 401."""
    if credentials is None:
        raise AuthRequired()
    return await authenticator.authenticate(credentials.credentials)


async def optional_client(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    authenticator: OtpAuthenticator = Depends(get_authenticator),
) -> AuthenticatedClient | None:
    """Like :func:`require_client`, but anonymous callers get ``None``."""
    if credentials is None:
        return None
    try:
        return await authenticator.authenticate(credentials.credentials)
    except AuthRequired:
        return None
