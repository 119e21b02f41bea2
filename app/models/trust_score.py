"""
UserTrustScore model - decaying per-user reputation.

Starts at 100 and only goes down through violation decrements. There is no
floor: a negative score signals severe distrust.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime

from app.core.database import Base

DEFAULT_TRUST_SCORE = 100


class UserTrustScore(Base):
    """Trust score row, materialized on the first violation."""

    __tablename__ = "user_trust_scores"

    user_name = Column(String, primary_key=True)
    score = Column(Integer, nullable=False, default=DEFAULT_TRUST_SCORE)
    violation_count = Column(Integer, nullable=False, default=0)
    last_violation_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserTrustScore {self.user_name} score={self.score} violations={self.violation_count}>"

    @classmethod
    def default_for(cls, user_name: str) -> "UserTrustScore":
        """Unsaved default for a user with no recorded violations."""
        return cls(
            user_name=user_name,
            score=DEFAULT_TRUST_SCORE,
            violation_count=0,
            last_violation_at=None,
            updated_at=datetime.utcnow(),
        )

    @property
    def is_negative(self) -> bool:
        return self.score < 0
