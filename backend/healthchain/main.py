"""
HealthChain EMR Backend - FastAPI Application Entry Point

Electronic medical records API for clinical staff, patients and
administrators.

Run with:
    uvicorn healthchain.main:app --app-dir backend
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from .core.config import settings
from .core.database import SessionLocal, engine, init_db, wait_for_database
from .core.exceptions import register_exception_handlers
from .core.logging_config import configure_logging
from .core.middleware import RateLimitMiddleware, ResponseTimeMiddleware
from .core.responses import envelope
from .api import (
    health_router,
    auth_router,
    users_router,
    patients_router,
    visits_router,
    appointments_router,
    lab_orders_router,
    prescriptions_router,
    medications_router,
    documents_router,
    notifications_router,
    consent_router,
    admin_consent_router,
    external_requesters_router,
    admin_external_requesters_router,
    ai_insights_router,
    monitoring_router,
    settings_router,
    audit_logs_router,
    compliance_router,
    role_permissions_router,
)
from .models.user import User
from .services.cache import get_cache


logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

def _check_secrets() -> None:
    """Refuse to start in production with the development secrets."""
    insecure = settings.insecure_secrets
    if insecure and settings.is_production:
        logger.critical(f"Insecure secrets in production: {', '.join(insecure)}. Refusing to start.")
        sys.exit(1)
    elif insecure:
        logger.warning(f"Dev-default secrets in use: {', '.join(insecure)}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Configures logging, waits for the database, creates tables and reports
    the cache state.
    """
    configure_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
    _check_secrets()

    wait_for_database()
    init_db()

    cache = get_cache()
    if cache.is_connected:
        logger.info("Redis cache connected")
    else:
        logger.info("Redis cache not available - operating without cache")

    db = SessionLocal()
    try:
        if db.query(User).count() == 0:
            logger.warning(
                "No users found. Create the first admin with: "
                "python backend/scripts/setup_admin.py --email admin@hospital.com"
            )
    finally:
        db.close()

    yield

    logger.info("Shutting down...")
    engine.dispose()


# =============================================================================
# Application Factory
# =============================================================================

def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Electronic medical records API: patients, visits, appointments, "
            "lab orders, prescriptions, consent management and administration."
        ),
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(ResponseTimeMiddleware)

    cors_origins = settings.cors_origins_list
    allow_all = "*" in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else cors_origins,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-Response-Time",
        ],
    )

    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
        trust_forwarded_for=settings.trust_forwarded_for,
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(patients_router)
    app.include_router(visits_router)
    app.include_router(appointments_router)
    app.include_router(lab_orders_router)
    app.include_router(prescriptions_router)
    app.include_router(medications_router)
    app.include_router(documents_router)
    app.include_router(notifications_router)
    app.include_router(consent_router)
    app.include_router(admin_consent_router)
    app.include_router(external_requesters_router)
    app.include_router(admin_external_requesters_router)
    app.include_router(ai_insights_router)
    app.include_router(monitoring_router)
    app.include_router(settings_router)
    app.include_router(audit_logs_router)
    app.include_router(compliance_router)
    app.include_router(role_permissions_router)

    @app.get("/", tags=["Root"])
    async def root():
        return envelope(data={
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs": "/docs" if settings.is_development else "disabled",
        })

    return app


app = create_application()


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "healthchain.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
