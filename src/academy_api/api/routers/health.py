"""
academy_api.api.routers.health

Liveness and readiness checks.

Responsibilities:
- `/healthz`: the process answers, with the running version.
- `/readyz`: the database answers and the archive storage root is writable.
"""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_200_OK, HTTP_503_SERVICE_UNAVAILABLE

from academy_api import __version__
from academy_api.api.deps import db_session, settings_dep
from academy_api.observability.logging import get_logger
from academy_api.settings import Settings

log = get_logger(__name__)

router = APIRouter()


def _storage_check(root: Path) -> str:
    # The root is created lazily by the first archival run.
    target = root if root.exists() else root.parent
    return "ok" if os.access(target, os.W_OK) else "read_only"


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.get("/readyz")
async def readyz(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    checks = {"database": "ok", "archive_storage": _storage_check(Path(settings.archive_storage_root))}
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("readiness_database_failed", error=str(e))
        checks["database"] = "unavailable"

    ready = all(state == "ok" for state in checks.values())
    return JSONResponse(
        status_code=HTTP_200_OK if ready else HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
