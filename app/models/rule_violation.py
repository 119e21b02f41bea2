"""
RuleViolation model - append-only log of anomalies raised by rules.

Every row is paired with a trust score decrement written in the same
transaction (see app.modules.violations.recorder).
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, Index, Text, text
from sqlalchemy.orm import relationship

from app.core.database import Base, JSONType


class Severity(str, Enum):
    """
    Violation severity.

    - INFO: worth knowing, low trust impact
    - WARNING: likely account sharing
    - CRITICAL: near-certain abuse
    """
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RuleViolation(Base):
    """
    Recorded rule violation.

    Immutable after insert. session_key correlates the violation with the
    streaming session that raised it and drives session-based dedup. A
    non-empty session_key raises at most one violation per (rule, user);
    the partial unique index enforces this under concurrent writers.
    """

    __tablename__ = "rule_violations"
    __table_args__ = (
        Index(
            "uq_rule_violations_session",
            "rule_id",
            "user_name",
            "session_key",
            unique=True,
            postgresql_where=text("session_key <> ''"),
            sqlite_where=text("session_key <> ''"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_id = Column(Integer, ForeignKey("rules.id", ondelete="CASCADE"), nullable=False, index=True)
    user_name = Column(String, nullable=False, index=True)
    severity = Column(String, nullable=False, index=True)  # 'info' | 'warning' | 'critical'
    message = Column(Text, nullable=False)
    details = Column(JSONType, nullable=False, default=dict)
    confidence_score = Column(Float, nullable=False, default=0.0)  # 0-100
    session_key = Column(String, nullable=False, default="", index=True)
    occurred_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    rule = relationship("Rule", back_populates="violations")

    def __repr__(self):
        return f"<RuleViolation rule={self.rule_id} user={self.user_name} ({self.severity}) at {self.occurred_at}>"
