"""
academy_api.api.responses

Uniform JSON envelope for every endpoint.

Responsibilities:
- Build success envelopes (`{status, message, data, meta}` or `{success, message, data}`).
- Define `ApiError`, the exception routers and services raise for expected failures.
- Install exception handlers that render errors in the same envelope.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Literal

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from academy_api.observability.logging import get_logger

log = get_logger(__name__)

Envelope = Literal["status", "success"]


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        errors: dict[str, list[str]] | None = None,
        code: str | None = None,
        data: Any = None,
        envelope: Envelope = "status",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors
        self.code = code
        self.data = data
        self.envelope = envelope


def success(
    data: Any = None,
    *,
    message: str | None = None,
    meta: dict[str, Any] | None = None,
    status_code: int = 200,
    envelope: Envelope = "status",
) -> JSONResponse:
    body: dict[str, Any] = {"success": True} if envelope == "success" else {"status": "success"}
    if message is not None:
        body["message"] = message
    body["data"] = data
    if meta is not None:
        body["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_body(
    message: str,
    *,
    errors: dict[str, list[str]] | None = None,
    code: str | None = None,
    data: Any = None,
    envelope: Envelope = "status",
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False} if envelope == "success" else {"status": "error"}
    body["message"] = message
    if errors:
        body["errors"] = errors
    if code:
        body["error"] = code
    if data is not None:
        body["data"] = data
    return body


def validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    # Collapse pydantic's error list into {"field.path": ["message", ...]}.
    grouped: dict[str, list[str]] = defaultdict(list)
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        grouped[".".join(loc) or "request"].append(str(err.get("msg", "Invalid value")))
    return dict(grouped)


async def _api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            error_body(
                exc.message,
                errors=exc.errors,
                code=exc.code,
                data=exc.data,
                envelope=exc.envelope,
            )
        ),
    )


async def _http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("Validation failed", errors=validation_errors(exc)),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


# --- Module Notes -----------------------------------------------------------
# Analytics widgets keep the `{success: bool}` flavour of the envelope; everything
# else uses `{status: "success" | "error"}`.
