"""
academy_api.observability.middleware

Per-request logging context and access log.

Responsibilities:
- Accept or mint an `x-request-id` and echo it on the response.
- Bind request id, method, path and the selected environment for every log event.
- Emit one `request_completed` event with status and duration (health checks excluded).
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from academy_api.observability.logging import get_logger

log = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"
ENVIRONMENT_HEADER = "x-environment-id"
HEALTH_PATHS = frozenset({"/healthz", "/readyz"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        if environment_id := request.headers.get(ENVIRONMENT_HEADER):
            context["environment_id"] = environment_id
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        try:
            response = await call_next(request)
            if request.url.path not in HEALTH_PATHS:
                log.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
