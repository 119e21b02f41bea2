"""
Celery tasks for alert delivery.

Best-effort: one attempt per channel, failures are logged and reported to
Sentry but the task itself never retries.
"""

import logging

from app.core.celery_app import celery_app
from app.core.celery_utils import run_async_task
from app.core.database import AsyncSessionLocal
from app.models.rule import Rule
from app.models.rule_violation import RuleViolation
from app.models.violation import ViolationEvent
from app.modules.notifications.channels import ChannelDirectory
from app.modules.notifications.dispatcher import NotificationDispatcher, NotificationError

logger = logging.getLogger(__name__)


async def deliver_violation(violation_id: int, session_factory=None, dispatcher=None) -> dict:
    """
    Notify every enabled channel linked to the violation's rule.

    Returns:
        Dict with status ("sent", "partial", "no_channels", "not_found"),
        number of channels and failures
    """
    session_factory = session_factory or AsyncSessionLocal
    dispatcher = dispatcher or NotificationDispatcher()

    async with session_factory() as session:
        violation = await session.get(RuleViolation, violation_id)
        if violation is None:
            logger.warning(
                f"Violation {violation_id} not found - skipping notifications",
                extra={"violation_id": violation_id},
            )
            return {"status": "not_found", "violation_id": violation_id}
        rule = await session.get(Rule, violation.rule_id)

    rule_name = rule.name if rule else f"Rule {violation.rule_id}"
    event = ViolationEvent.from_violation(violation, rule_name)
    channels = await ChannelDirectory(session_factory).channels_for_rule(violation.rule_id)

    if not channels:
        return {"status": "no_channels", "violation_id": violation_id, "channels": 0}

    try:
        await dispatcher.notify(event, channels)
    except NotificationError as e:
        return {
            "status": "partial",
            "violation_id": violation_id,
            "channels": len(channels),
            "failures": dict(e.failures),
        }

    return {"status": "sent", "violation_id": violation_id, "channels": len(channels)}


@celery_app.task(name="app.tasks.notifications.send_violation_notifications")
def send_violation_notifications(violation_id: int):
    """
    Deliver alerts for a recorded violation.

    Enqueued by ViolationService right after the violation commits.

    Usage:
        send_violation_notifications.delay(violation.id)
    """
    logger.info(
        f"Sending notifications for violation {violation_id}",
        extra={"violation_id": violation_id},
    )
    return run_async_task(deliver_violation(violation_id))
