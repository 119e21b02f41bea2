"""
Violation recorder - dedup, persist and score rule violations.

The rules engine proposes violation candidates; this module decides whether
a candidate is a repeat of something already recorded and, if not, writes
the violation and its trust score penalty in one transaction.

Invariants:
- A violation row never exists without its trust score decrement (and vice versa)
- A non-empty session key yields at most one violation per rule and user
- The violation log is append-only
- Storage errors propagate; nothing is partially applied
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.models.rule_violation import RuleViolation, Severity
from app.models.violation import ViolationCandidate
from app.modules.trust.ledger import TrustLedger

logger = logging.getLogger(__name__)


class InvalidViolationError(ValueError):
    """Raised when a violation cannot be recorded as given."""
    pass


def penalty_for(severity: str) -> int:
    """
    Default trust penalty for a severity level.

    Unknown severities carry no penalty.
    """
    penalties = {
        Severity.CRITICAL.value: settings.TRUST_DECREMENT_CRITICAL,
        Severity.WARNING.value: settings.TRUST_DECREMENT_WARNING,
        Severity.INFO.value: settings.TRUST_DECREMENT_INFO,
    }
    return penalties.get(str(getattr(severity, "value", severity)), 0)


class ViolationRecorder:
    """
    Single writer of the violation log and the trust score ledger.

    Usage:
        recorder = ViolationRecorder()
        if not await recorder.exists_recent(rule_id, "alice", session_key, timedelta(minutes=15)):
            violation = await recorder.record(candidate, score_penalty=10)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        ledger: Optional[TrustLedger] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.ledger = ledger or TrustLedger(self.session_factory)

    async def exists_recent(
        self,
        rule_id: int,
        user_name: str,
        session_key: Optional[str],
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Check whether an equivalent violation was recorded within `window`.

        With a session key, only violations carrying the same key match, so
        two different sessions never suppress each other. Without one, any
        violation of the rule for the user inside the window matches.
        """
        since = (now or datetime.utcnow()) - window
        conditions = [
            RuleViolation.rule_id == rule_id,
            RuleViolation.user_name == user_name,
            RuleViolation.occurred_at >= since,
        ]
        if session_key:
            conditions.append(RuleViolation.session_key == session_key)

        async with self.session_factory() as session:
            result = await session.execute(select(exists().where(*conditions)))
            return bool(result.scalar())

    async def record(self, candidate: ViolationCandidate, score_penalty: int) -> Optional[RuleViolation]:
        """
        Insert the violation and decrement the user's trust score atomically.

        A concurrent writer may have recorded the same (rule, user, session
        key) between the dedup check and this insert. The unique index
        rejects the second row and nothing is applied.

        Args:
            candidate: Violation proposed by a rule evaluator
            score_penalty: Points to subtract from the user's trust score

        Returns:
            The persisted RuleViolation (with id), or None if the session
            already has a violation of this rule

        Raises:
            InvalidViolationError: Negative penalty
            SQLAlchemyError: Storage failure (transaction rolled back)
        """
        if score_penalty < 0:
            raise InvalidViolationError("score_penalty must not be negative")

        violation = RuleViolation(
            rule_id=candidate.rule_id,
            user_name=candidate.user_name,
            severity=candidate.severity.value,
            message=candidate.message,
            details=candidate.details,
            confidence_score=candidate.confidence_score,
            session_key=candidate.session_key,
            occurred_at=candidate.occurred_at,
            created_at=datetime.utcnow(),
        )

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(violation)
                    await session.flush()
                    await self.ledger.apply_decrement(
                        session, candidate.user_name, score_penalty, candidate.occurred_at
                    )
        except IntegrityError:
            if not candidate.session_key or not await self._session_recorded(candidate):
                raise
            logger.info(
                f"Session already has a violation - rule={candidate.rule_id} user={candidate.user_name}",
                extra={
                    "rule_id": candidate.rule_id,
                    "user_name": candidate.user_name,
                    "session_key": candidate.session_key,
                },
            )
            return None

        logger.info(
            f"Violation recorded - rule={candidate.rule_id} user={candidate.user_name} "
            f"severity={violation.severity} confidence={candidate.confidence_score:.1f}",
            extra={
                "violation_id": violation.id,
                "rule_id": candidate.rule_id,
                "user_name": candidate.user_name,
                "severity": violation.severity,
                "score_penalty": score_penalty,
            },
        )
        return violation

    async def _session_recorded(self, candidate: ViolationCandidate) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    exists().where(
                        RuleViolation.rule_id == candidate.rule_id,
                        RuleViolation.user_name == candidate.user_name,
                        RuleViolation.session_key == candidate.session_key,
                    )
                )
            )
            return bool(result.scalar())

    async def recent_for_user(self, user_name: str, limit: int = 50) -> List[RuleViolation]:
        """Most recent violations for a user, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(RuleViolation)
                .where(RuleViolation.user_name == user_name)
                .order_by(RuleViolation.occurred_at.desc(), RuleViolation.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_for_user(self, user_name: str, since: datetime) -> int:
        """Number of violations for a user since a point in time."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(RuleViolation.id)).where(
                    RuleViolation.user_name == user_name,
                    RuleViolation.occurred_at >= since,
                )
            )
            return result.scalar() or 0
