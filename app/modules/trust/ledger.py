"""
Trust score ledger.

Per-user reputation that starts at 100 and decays with each recorded
violation. Reads never create rows; the first decrement materializes the
row. Decrements are a single INSERT ... ON CONFLICT DO UPDATE so concurrent
violations for the same user serialize in the database.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import AsyncSessionLocal, upsert_insert
from app.models.trust_score import DEFAULT_TRUST_SCORE, UserTrustScore

logger = logging.getLogger(__name__)


class TrustLedger:
    """
    Reads and decrements user trust scores.

    Usage:
        ledger = TrustLedger()
        score = await ledger.get_or_init("alice")   # score=100 if never seen
        await ledger.decrement("alice", 10)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def get_or_init(self, user_name: str) -> UserTrustScore:
        """
        Return the user's score row, or an unsaved default of 100.

        Nothing is written when the user has no row yet.
        """
        async with self.session_factory() as session:
            score = await session.get(UserTrustScore, user_name)

        return score if score is not None else UserTrustScore.default_for(user_name)

    async def apply_decrement(
        self,
        session: AsyncSession,
        user_name: str,
        amount: int,
        at: Optional[datetime] = None,
    ) -> None:
        """
        Decrement inside the caller's transaction.

        Used by the violation recorder so the violation insert and the score
        change commit together. Does not commit.
        """
        at = at or datetime.utcnow()
        now = datetime.utcnow()
        table = UserTrustScore.__table__

        stmt = upsert_insert(session, table).values(
            user_name=user_name,
            score=DEFAULT_TRUST_SCORE - amount,
            violation_count=1,
            last_violation_at=at,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_name"],
            set_={
                "score": table.c.score - amount,
                "violation_count": table.c.violation_count + 1,
                "last_violation_at": at,
                "updated_at": now,
            },
        )
        await session.execute(stmt)

    async def decrement(self, user_name: str, amount: int, at: Optional[datetime] = None) -> UserTrustScore:
        """
        Subtract `amount` from the user's score and count one violation.

        Creates the row seeded at 100 if it does not exist. No floor is
        applied; scores may go negative.

        Returns:
            The score row after the update
        """
        async with self.session_factory() as session:
            await self.apply_decrement(session, user_name, amount, at)
            await session.commit()
            updated = await session.get(UserTrustScore, user_name, populate_existing=True)

        logger.info(
            f"Trust score for {user_name} decremented by {amount} to {updated.score}",
            extra={"user_name": user_name, "amount": amount, "score": updated.score},
        )
        return updated

