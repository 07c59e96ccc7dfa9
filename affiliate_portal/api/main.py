"""Horizon affiliate portal API. FastAPI application over the event store."""
from __future__ import annotations

import logging

from affiliate_portal.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from affiliate_portal.db.engine import async_session, engine, get_session
from affiliate_portal.db.repository import EventStore
from affiliate_portal.db.tables import Base
from affiliate_portal.middleware.request_id import RequestIDMiddleware
from affiliate_portal.services.affiliate_links import LinkProvisioningError
from affiliate_portal.services.commission_tiers import ConfigurationError, validate_tiers
from affiliate_portal.services.dashboard import StatsUnavailable
from affiliate_portal.services.notifier import notifier
from affiliate_portal.services.tracking import TrackingStorageError, UnknownAffiliateCode

APP_VERSION = "0.1.0"

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Visitor IPs and user agents stay out of Sentry
        send_default_pii=False,
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and check the tier ladder on startup."""
    from affiliate_portal.startup_checks import validate_settings
    validate_settings()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

    # A broken ladder is reported here but not fatal: the commission
    # endpoints answer 500 configuration_error until it is fixed.
    async with async_session() as session:
        try:
            validate_tiers(await EventStore(session).fetch_tiers())
        except ConfigurationError as exc:
            logger.warning("Commission tiers unusable: %s", exc)

    yield

    logger.info("Shutting down, draining connections...")
    notifier.reset()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Horizon Affiliate API",
    version=APP_VERSION,
    description="Affiliate links, click tracking, dashboard statistics and commission tiers",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID tracing
app.add_middleware(RequestIDMiddleware)


from affiliate_portal.api.affiliates import router as affiliates_router
from affiliate_portal.api.leaderboard import router as leaderboard_router
from affiliate_portal.api.tracking import router as tracking_router

app.include_router(tracking_router)
app.include_router(affiliates_router)
app.include_router(leaderboard_router)


@app.get("/")
async def root():
    return {"app": "Horizon Affiliates", "version": APP_VERSION}


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Deep health check. Validates DB connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        db_status = "error"
    status = "ok" if db_status == "connected" else "degraded"
    return {"status": status, "db": db_status, "version": APP_VERSION}


# --- Structured Error Responses ---

def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean, structured validation errors instead of raw Pydantic output."""
    errors = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"]) if err.get("loc") else "unknown"
        errors.append({"field": field, "message": err["msg"]})
    return JSONResponse(status_code=422, content={
        "error": "validation_error",
        "message": "Invalid request data",
        "details": errors,
    })


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    """Consistent error envelope for all HTTP errors."""
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.detail if isinstance(exc.detail, str) else "error",
        "message": exc.detail,
    })


@app.exception_handler(UnknownAffiliateCode)
async def unknown_code_handler(request: Request, exc: UnknownAffiliateCode):
    logger.info("Click for unknown affiliate code %r", exc.code)
    return _error(400, "invalid_affiliate_code", "Invalid affiliate code")


@app.exception_handler(TrackingStorageError)
async def tracking_storage_handler(request: Request, exc: TrackingStorageError):
    logger.error("Click storage failed: %s", exc, exc_info=exc.__cause__)
    return _error(500, "tracking_failed", "Failed to record click")


@app.exception_handler(StatsUnavailable)
async def stats_unavailable_handler(request: Request, exc: StatsUnavailable):
    logger.error("Stats unavailable on %s: %s", request.url.path, exc, exc_info=exc.__cause__)
    return _error(503, "stats_unavailable", "Statistics are temporarily unavailable. Please try again.")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Commission configuration error: %s", exc)
    return _error(500, "configuration_error", "Commission tiers are misconfigured")


@app.exception_handler(LinkProvisioningError)
async def link_provisioning_handler(request: Request, exc: LinkProvisioningError):
    logger.error("%s", exc)
    return _error(500, "link_provisioning_failed", "Could not create an affiliate link")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions. Never leaks stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Something went wrong. Please try again.")
