"""
academy_api.api.app

FastAPI app factory for the academy API.

Responsibilities:
- Build the FastAPI application and register routers, middleware and error handlers.
- Initialize and dispose shared infrastructure (DB engine/session factory, outbound HTTP client).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

import httpx
from fastapi import FastAPI

from academy_api import __version__
from academy_api.api.responses import install_error_handlers
from academy_api.api.routers.analytics_widgets import router as analytics_widgets_router
from academy_api.api.routers.certificates import router as certificates_router
from academy_api.api.routers.chat import router as chat_router
from academy_api.api.routers.chat_analytics import router as chat_analytics_router
from academy_api.api.routers.chat_archival import router as chat_archival_router
from academy_api.api.routers.chat_search import router as chat_search_router
from academy_api.api.routers.courses import router as courses_router
from academy_api.api.routers.dev_auth import router as dev_auth_router
from academy_api.api.routers.digital_products import router as digital_products_router
from academy_api.api.routers.enrollments import router as enrollments_router
from academy_api.api.routers.environments import router as environments_router
from academy_api.api.routers.feedback import router as feedback_router
from academy_api.api.routers.health import router as health_router
from academy_api.api.routers.live_sessions import router as live_sessions_router
from academy_api.api.routers.livekit_webhooks import router as livekit_webhooks_router
from academy_api.api.routers.orders import router as orders_router
from academy_api.api.routers.quizzes import router as quizzes_router
from academy_api.api.routers.seller_panel import router as seller_panel_router
from academy_api.api.routers.teams import router as teams_router
from academy_api.db.init_db import init_db
from academy_api.db.session import create_engine, create_sessionmaker
from academy_api.observability.logging import configure_logging, get_logger
from academy_api.observability.middleware import RequestContextMiddleware
from academy_api.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings, http_transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    configure_logging(
        service_name=settings.service_name, level=settings.log_level, json_logs=settings.log_json
    )

    app = FastAPI(
        title="Academy API",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    install_error_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(environments_router)
    app.include_router(courses_router)
    app.include_router(enrollments_router)
    app.include_router(quizzes_router)
    app.include_router(feedback_router)
    app.include_router(certificates_router)
    app.include_router(orders_router)
    app.include_router(digital_products_router)
    app.include_router(live_sessions_router)
    app.include_router(livekit_webhooks_router)
    app.include_router(chat_router)
    app.include_router(chat_search_router)
    app.include_router(chat_archival_router)
    app.include_router(chat_analytics_router)
    app.include_router(teams_router)
    app.include_router(seller_panel_router)
    app.include_router(analytics_widgets_router)

    @app.on_event("startup")
    async def _startup() -> None:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        # One pooled client for every outbound integration; tests inject a mock transport.
        app.state.http = httpx.AsyncClient(transport=http_transport)
        if settings.env in ("dev", "test"):
            # Prod uses Alembic migrations.
            await init_db(engine)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        http = getattr(app.state, "http", None)
        if http is not None:
            await http.aclose()
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()
        log.info("shutdown")

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; business rules live in services and repositories.
