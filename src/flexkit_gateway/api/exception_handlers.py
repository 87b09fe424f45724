"""Converts every failure into the JSON error envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flexkit_gateway.api.responses import error_response
from flexkit_gateway.errors import ErrorKind, GatewayError

logger = logging.getLogger(__name__)

_VALUE_ERROR_PREFIX = "Value error, "


def _validation_message(exc: RequestValidationError) -> str:
    """First validation error, phrased for API clients."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = loc[-1] if loc else "request"
    if first.get("type") == "missing":
        return f"{field} is required"
    message = str(first.get("msg", "Invalid value"))
    if message.startswith(_VALUE_ERROR_PREFIX):
        return message[len(_VALUE_ERROR_PREFIX):]
    return f"{field}: {message}"


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status = exc.status_code
    if status >= 500:
        logger.error(
            "%s %s failed: %s (%s)",
            request.method, request.url.path, exc.message, exc.kind.value,
            exc_info=exc.__cause__ is not None,
        )
    else:
        logger.info(
            "%s %s -> %d %s", request.method, request.url.path, status, exc.message
        )
    headers = None
    if exc.kind is ErrorKind.RATE_LIMITED and "retry_after" in exc.extra:
        headers = {"Retry-After": str(exc.extra["retry_after"])}
    return error_response(status, exc.message, code=exc.code, extra=exc.extra, headers=headers)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = _validation_message(exc)
    logger.info("%s %s -> 400 %s", request.method, request.url.path, message)
    return error_response(400, message, code=ErrorKind.VALIDATION.value)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        message = "Route not found"
    elif exc.status_code == 405:
        message = "Method not allowed"
    else:
        message = str(exc.detail)
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
