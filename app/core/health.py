"""
Health check utilities for monitoring application components.

Checks:
- Database connectivity
- Redis connectivity (Celery broker)
- Notification channels (how many are enabled, how many fail validation)
- Violation activity (last recorded violation)
"""

import logging
from datetime import datetime
from typing import Dict, Any

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
import redis

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.models.channel_config import ChannelConfigError, parse_channel_config
from app.models.notification_channel import NotificationChannel
from app.models.rule_violation import RuleViolation

logger = logging.getLogger(__name__)


async def check_database(session_factory=None) -> Dict[str, Any]:
    """
    Check database connectivity.

    Returns:
        Dict with status, latency, and error (if any)
    """
    session_factory = session_factory or AsyncSessionLocal
    start_time = datetime.utcnow()

    try:
        async with session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except OperationalError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }


def check_redis() -> Dict[str, Any]:
    """
    Check Redis connectivity (Celery broker).

    Returns:
        Dict with status, latency, and error (if any)
    """
    start_time = datetime.utcnow()

    try:
        redis_client = redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=2)
        redis_client.ping()
        redis_client.close()

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }


async def check_notification_channels(session_factory=None) -> Dict[str, Any]:
    """
    Validate every enabled channel's stored config.

    A misconfigured channel does not block the others, so this is a warning
    rather than an outage.
    """
    session_factory = session_factory or AsyncSessionLocal

    try:
        async with session_factory() as session:
            result = await session.execute(
                select(NotificationChannel).where(NotificationChannel.enabled.is_(True))
            )
            channels = result.scalars().all()
    except OperationalError as e:
        logger.error(f"Notification channel check failed: {e}")
        return {"status": "unknown", "error": str(e)}

    invalid = []
    for channel in channels:
        try:
            parse_channel_config(channel.channel_type, channel.config)
        except ChannelConfigError:
            invalid.append(channel.name)

    if not channels:
        return {"status": "unknown", "enabled_channels": 0, "message": "No notification channels enabled"}

    return {
        "status": "warning" if invalid else "healthy",
        "enabled_channels": len(channels),
        "invalid_channels": invalid,
    }


async def check_last_violation(session_factory=None) -> Dict[str, Any]:
    """
    Report when the last violation was recorded.

    Returns:
        Dict with status and seconds since the last violation
    """
    session_factory = session_factory or AsyncSessionLocal

    try:
        async with session_factory() as session:
            result = await session.execute(select(func.max(RuleViolation.created_at)))
            last_violation = result.scalar()
    except OperationalError as e:
        logger.error(f"Last violation check failed: {e}")
        return {"status": "unknown", "error": str(e)}

    if not last_violation:
        return {"status": "unknown", "message": "No violations recorded yet"}

    seconds_since = (datetime.utcnow() - last_violation).total_seconds()
    return {
        "status": "healthy",
        "seconds_since_last": round(seconds_since, 0),
        "last_violation": last_violation.isoformat(),
    }


async def get_health_metrics(session_factory=None, include_redis: bool = True) -> Dict[str, Any]:
    """
    Get health metrics for all components.

    Returns:
        Dict with overall status and component-specific metrics
    """
    metrics = {
        "database": await check_database(session_factory),
        "notification_channels": await check_notification_channels(session_factory),
        "last_violation": await check_last_violation(session_factory),
    }
    if include_redis:
        metrics["redis"] = check_redis()

    if any(status.get("status") == "unhealthy" for status in metrics.values()):
        overall_status = "unhealthy"
    elif any(status.get("status") == "warning" for status in metrics.values()):
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "timestamp": datetime.utcnow().isoformat(),
        "components": metrics,
    }
