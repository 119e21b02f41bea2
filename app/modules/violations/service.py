"""
Violation pipeline: dedup, record, then hand off alert delivery.

Rule evaluators call ViolationService.handle() with a candidate. Network I/O
for alerts happens in a Celery task so evaluation is never blocked on it.
"""

import logging
from datetime import timedelta
from typing import Optional

import sentry_sdk

from app.core.config import settings
from app.models.rule_violation import RuleViolation
from app.models.violation import ViolationCandidate
from app.modules.violations.recorder import ViolationRecorder, penalty_for
from app.tasks.notifications import send_violation_notifications

logger = logging.getLogger(__name__)


class ViolationService:
    """
    Entry point for rule evaluators.

    Usage:
        service = ViolationService()
        violation = await service.handle(candidate, dedup_window=timedelta(minutes=30))
        if violation is None:
            pass  # duplicate inside the window
    """

    def __init__(self, recorder: Optional[ViolationRecorder] = None, enqueue_notifications: bool = True):
        self.recorder = recorder or ViolationRecorder()
        self.enqueue_notifications = enqueue_notifications

    async def handle(
        self,
        candidate: ViolationCandidate,
        dedup_window: Optional[timedelta] = None,
        score_penalty: Optional[int] = None,
    ) -> Optional[RuleViolation]:
        """
        Record a violation unless an equivalent one is already in the window.

        Args:
            candidate: Violation proposed by a rule evaluator
            dedup_window: Suppression window (default VIOLATION_COOLDOWN_MINUTES)
            score_penalty: Trust penalty (default by severity)

        Returns:
            The recorded violation, or None if it was a duplicate

        A failure to enqueue alert delivery is logged and reported, never
        raised: the violation and its score change are already committed.
        """
        if dedup_window is None:
            dedup_window = timedelta(minutes=settings.VIOLATION_COOLDOWN_MINUTES)
        if score_penalty is None:
            score_penalty = penalty_for(candidate.severity)

        if await self.recorder.exists_recent(
            candidate.rule_id, candidate.user_name, candidate.session_key, dedup_window
        ):
            logger.debug(
                f"Duplicate violation suppressed - rule={candidate.rule_id} user={candidate.user_name}",
                extra={
                    "rule_id": candidate.rule_id,
                    "user_name": candidate.user_name,
                    "session_key": candidate.session_key,
                },
            )
            return None

        violation = await self.recorder.record(candidate, score_penalty)
        if violation is None:
            return None

        if self.enqueue_notifications:
            try:
                send_violation_notifications.delay(violation.id)
            except Exception as e:
                # Violation is already committed; alerts are best-effort
                logger.error(
                    f"Failed to enqueue notifications for violation {violation.id}: {str(e)}",
                    extra={"violation_id": violation.id, "rule_id": violation.rule_id},
                )
                sentry_sdk.capture_exception(e)

        return violation
