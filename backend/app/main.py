# app/main.py
from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router
from app.routers.plans import router as plans_router
from app.db.session import init_db
from app.observability.logging import configure_logging
from app.observability.middleware import (
    domain_error_handler,
    register_request_middleware,
    unhandled_exception_handler,
)
from app.observability.metrics import router as observability_router
from app.scheduler.setup import init_scheduler, shutdown_scheduler
from app.services.errors import DomainError
from app.config import get_settings

configure_logging()

DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Daily Metrics", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400
    )

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    register_request_middleware(app)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.on_event("startup")
    async def _startup() -> None:
        # Ensure tables exist on brand-new dev databases; migrations own real ones.
        if settings.ENV == "dev":
            try:
                init_db()
            except Exception:
                structlog.get_logger(__name__).exception("startup.create_tables_failed")
        await init_scheduler(app)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await shutdown_scheduler()

    # Public routers
    app.include_router(health_router)
    app.include_router(observability_router)

    # Authenticated routers resolve the caller via get_current_user_id per endpoint
    app.include_router(metrics_router)
    app.include_router(plans_router)

    return app


app = create_app()
