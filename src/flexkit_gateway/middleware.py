"""HTTP middleware."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from flexkit_gateway.api.exception_handlers import unhandled_error_handler

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and latency of every request.

    Unexpected errors become the 500 envelope here, inside the CORS
    layer, so browser clients still receive CORS headers on them.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        logger.info(
            "Request received: %s %s (ua=%s)",
            request.method,
            request.url.path,
            request.headers.get("user-agent", "unknown"),
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_error_handler(request, exc)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d in %.1f ms",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response
