"""
academy_api.observability.logging

structlog setup for the academy API.

Responsibilities:
- Render events as JSON (or console output for local work) tagged with the service name.
- Mask credentials before they reach any sink.
- Keep chatty client libraries at WARNING.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Event keys whose values are never written out.
SENSITIVE_KEYS = frozenset(
    {"password", "token", "access_token", "secret", "authorization", "signature", "api_key"}
)
QUIET_LIBRARIES = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def _redact(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _service(service_name: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def configure_logging(*, service_name: str, level: str, json_logs: bool = True) -> None:
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _service(service_name),
            _redact,
            structlog.processors.dict_tracebacks if json_logs else structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# Request id, method, path and tenant are bound per request in
# `observability.middleware` and merged into every event here.
