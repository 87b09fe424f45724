"""Service banner and upstream status routes."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from flexkit_gateway.api.dependencies import get_mindbody, get_settings
from flexkit_gateway.api.responses import success
from flexkit_gateway.config import Settings
from flexkit_gateway.services.mindbody_client import MindbodyClient

router = APIRouter(tags=["status"])

VERSION = "1.0.0"


@router.get("/")
async def banner(settings: Settings = Depends(get_settings)) -> dict:
    """Liveness banner."""
    return {
        "status": "success",
        "message": f"{settings.app_name} API is running",
        "version": VERSION,
        "environment": settings.app_env,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/api/status")
async def api_status(mindbody: MindbodyClient = Depends(get_mindbody)) -> dict:
    """Report whether the booking platform is reachable."""
    upstream_ok = await mindbody.test_connection()
    return success(
        {
            "status": "operational" if upstream_ok else "degraded",
            "services": {"database": True, "mindbody_api": upstream_ok},
            "timestamp": datetime.now(UTC).isoformat(),
        },
        "API status check completed",
    )
