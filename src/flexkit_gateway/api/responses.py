"""JSON envelopes shared by every route."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse


def success(data: Any = None, message: str = "Success") -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def error_response(
    status: int,
    message: str,
    *,
    code: str | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": True, "message": message, "status": status}
    if code:
        body["code"] = code
    if extra and extra.get("redirect"):
        body["redirect"] = extra["redirect"]
    return JSONResponse(status_code=status, content=body, headers=headers)
