"""FastAPI application entry point.

Run with ``uvicorn flexkit_gateway.main:create_app --factory`` or the
``flexkit-gateway`` console script.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import TimedRotatingFileHandler

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flexkit_gateway.api import auth, client, commerce, status, timetable
from flexkit_gateway.api.exception_handlers import register_exception_handlers
from flexkit_gateway.config import Settings
from flexkit_gateway.database.engine import build_engine, build_session_factory, init_db
from flexkit_gateway.middleware import RequestLoggingMiddleware
from flexkit_gateway.services.client_info import ClientInfoService
from flexkit_gateway.services.email_service import EmailService
from flexkit_gateway.services.mindbody_client import MindbodyClient
from flexkit_gateway.services.otp_authenticator import OtpAuthenticator
from flexkit_gateway.services.timetable_service import TimetableService
from flexkit_gateway.services.token_issuer import TokenIssuer

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if not settings.log_file:
        return

    root = logging.getLogger()
    path = os.path.abspath(settings.log_file)
    # Repeated app builds share the root logger; attach the file once.
    if any(
        isinstance(h, TimedRotatingFileHandler) and h.baseFilename == path
        for h in root.handlers
    ):
        return
    handler = TimedRotatingFileHandler(path, when="midnight", backupCount=7, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def create_app(
    settings: Settings | None = None,
    *,
    mindbody: MindbodyClient | None = None,
    email_service: EmailService | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Build the application and wire every component explicitly.

    Collaborators passed in are used as-is and left open on shutdown;
    the ones built here are closed by the lifespan hook.
    """
    settings = settings or Settings()
    configure_logging(settings)

    token_issuer = TokenIssuer(
        settings.jwt_secret,
        settings.token_issuer,
        session_ttl=settings.access_token_ttl_seconds,
        otp_ttl=settings.otp_token_ttl_seconds,
    )

    engine = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)

    owns_mindbody = mindbody is None
    mindbody = mindbody or MindbodyClient(settings)
    email_service = email_service or EmailService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s …", settings.app_name)
        if engine is not None:
            await init_db(engine)
            logger.info("Database initialised")
        yield
        logger.info("Shutting down %s …", settings.app_name)
        if owns_mindbody:
            await mindbody.aclose()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="API gateway for the Mindbody booking platform with email OTP login",
        version=status.VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.mindbody = mindbody
    app.state.authenticator = OtpAuthenticator(
        session_factory, mindbody, email_service, token_issuer, settings
    )
    app.state.timetable = TimetableService(mindbody, settings)
    app.state.client_info = ClientInfoService(mindbody)

    register_exception_handlers(app)

    # Starlette runs the last-added middleware first.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    for module in (status, auth, timetable, client, commerce):
        app.include_router(module.router)

    return app


def run() -> None:
    settings = Settings()
    uvicorn.run(
        "flexkit_gateway.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )
