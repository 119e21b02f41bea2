"""
Sentry initialization and error monitoring configuration.

Captures:
- Python exceptions
- FastAPI errors
- Celery task failures
- Aggregated notification delivery failures

Notification channel configs carry credentials (webhook URLs, API tokens,
user keys); every event is scrubbed before it leaves the process.
"""

import logging
import re
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.core.config import settings

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = [
    "webhook_url",
    "api_token",
    "user_key",
    "token",
    "authorization",
    "password",
    "secret",
    "api_key",
]

# Discord webhook URLs embed their secret in the path
_DISCORD_WEBHOOK = re.compile(r"https://(?:\w+\.)?discord(?:app)?\.com/api/webhooks/\S+")


def init_sentry():
    """
    Initialize Sentry error monitoring.

    Only initializes if SENTRY_DSN is configured.
    """
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured - error monitoring disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"streamwatch-sentinel@{settings.APP_VERSION}",
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            CeleryIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        sample_rate=1.0,
        send_default_pii=False,
        max_breadcrumbs=50,
        before_send=filter_sensitive_data,
    )

    logger.info(f"Sentry initialized - environment: {settings.ENVIRONMENT}")


def _redact(obj):
    if isinstance(obj, dict):
        for key in list(obj.keys()):
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
                obj[key] = REDACTED
            else:
                obj[key] = _redact(obj[key])
        return obj
    if isinstance(obj, list):
        return [_redact(item) for item in obj]
    if isinstance(obj, str):
        return _DISCORD_WEBHOOK.sub(REDACTED, obj)
    return obj


def filter_sensitive_data(event, hint):
    """
    Scrub channel credentials from a Sentry event.

    Args:
        event: Sentry event dict
        hint: Additional context

    Returns:
        The redacted event
    """
    for section in ("extra", "contexts", "request", "breadcrumbs"):
        if event.get(section):
            event[section] = _redact(event[section])

    if event.get("logentry"):
        event["logentry"] = _redact(event["logentry"])

    if isinstance(event.get("message"), str):
        event["message"] = _redact(event["message"])

    return event
