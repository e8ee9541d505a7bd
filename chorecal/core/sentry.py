"""
Sentry Error Tracking Configuration
Centralized Sentry SDK initialization for the API process and Celery workers.
"""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from chorecal.core.config import settings

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("authorization", "cookie", "access_token", "refresh_token", "code")


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """
    Process events before sending to Sentry.

    Drops health check noise and redacts OAuth material from requests.
    """
    request = event.get("request")
    if request is None:
        return event

    if request.get("url", "").endswith("/health"):
        return None

    headers = request.get("headers") or {}
    for header in list(headers):
        if header.lower() in SENSITIVE_KEYS:
            headers[header] = "[REDACTED]"

    query = request.get("query_string")
    if isinstance(query, str) and ("code=" in query or "state=" in query):
        request["query_string"] = "[REDACTED]"

    return event


def init_sentry(service: str = "api") -> bool:
    """
    Initialize Sentry SDK.

    Args:
        service: "api" for the FastAPI process, "worker" for Celery.

    Returns:
        bool: True if Sentry was initialized successfully, False otherwise.
    """
    if not settings.sentry_dsn:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return False

    integrations: list = [
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        SqlalchemyIntegration(),
    ]
    if service == "worker":
        integrations.append(CeleryIntegration())
    else:
        integrations.extend(
            [
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
            ]
        )

    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment or settings.environment,
            release=f"chorecal@{settings.app_version}",
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=integrations,
            before_send=before_send,
            send_default_pii=False,
            attach_stacktrace=True,
            max_breadcrumbs=50,
        )
        sentry_sdk.set_tag("service", service)
        sentry_sdk.set_tag("app_name", settings.app_name)

        logger.info(
            f"Sentry initialized for {service} "
            f"(env={settings.sentry_environment or settings.environment})"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def capture_exception(
    error: Exception,
    user_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> str | None:
    """
    Capture an exception and send to Sentry.

    Args:
        error: The exception to capture
        user_id: Optional user ID for context
        extra: Optional extra data to attach

    Returns:
        Event ID if captured, None otherwise
    """
    with sentry_sdk.new_scope() as scope:
        if user_id:
            scope.set_user({"id": user_id})

        if extra:
            for key, value in extra.items():
                scope.set_extra(key, value)

        return sentry_sdk.capture_exception(error)
