"""
ChoreCal FastAPI Application
HTTP entry points for the Google Calendar sync engine.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chorecal.api import cron, health, integrations
from chorecal.core.config import settings
from chorecal.core.logging import configure_logging
from chorecal.core.sentry import init_sentry
from chorecal.database import close_db, init_db

configure_logging()
logger = logging.getLogger(__name__)

INSECURE_SECRET_KEYS = ("CHANGE-THIS-IN-PRODUCTION-REQUIRED", "secret", "changeme")


def validate_security_settings() -> None:
    """
    Validate critical security settings at startup.
    Raises RuntimeError if insecure configuration detected in production.
    """
    is_production = settings.environment.lower() in ("production", "prod")
    errors = []

    if settings.secret_key in INSECURE_SECRET_KEYS or len(settings.secret_key) < 32:
        msg = "SECRET_KEY is insecure or too short (minimum 32 characters required)"
        if is_production:
            errors.append(msg)
        else:
            logger.warning(f"SECURITY WARNING: {msg}")

    if is_production and settings.debug:
        errors.append("DEBUG mode must be disabled in production (set DEBUG=false)")

    if is_production and not settings.cron_secret:
        logger.warning("SECURITY WARNING: CRON_SECRET is not set; the cron endpoint rejects all calls")

    if errors:
        for error in errors:
            logger.error(f"SECURITY ERROR: {error}")
        raise RuntimeError(f"Cannot start in production with insecure configuration: {'; '.join(errors)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.

    Startup validates settings, enables Sentry and, in debug mode, creates
    tables. Shutdown closes database connections.
    """
    logger.info(f"Starting ChoreCal API (environment={settings.environment}, version={settings.app_version})")

    validate_security_settings()

    if init_sentry("api"):
        logger.info("Sentry error tracking enabled")

    if settings.debug:
        try:
            await init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")

    yield

    logger.info("Shutting down ChoreCal API...")
    await close_db()


app = FastAPI(
    title="ChoreCal API",
    description="Syncs ChorePulse household tasks to family members' Google Calendars.",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(integrations.router)
app.include_router(cron.router)
