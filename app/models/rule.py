"""
Rule model and rule-to-channel links.

Rules are managed elsewhere; this service only needs their identity, name
and the notification channels subscribed to them.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Table
from sqlalchemy.orm import relationship

from app.core.database import Base, JSONType


rule_notifications = Table(
    "rule_notifications",
    Base.metadata,
    Column("rule_id", Integer, ForeignKey("rules.id", ondelete="CASCADE"), primary_key=True),
    Column("channel_id", Integer, ForeignKey("notification_channels.id", ondelete="CASCADE"), primary_key=True),
)


class Rule(Base):
    """Detection rule definition (evaluated by the external rules engine)."""

    __tablename__ = "rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    rule_type = Column(String, nullable=False, index=True)  # 'impossible_travel', 'concurrent_streams', ...
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    config = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    channels = relationship("NotificationChannel", secondary=rule_notifications, back_populates="rules")
    violations = relationship("RuleViolation", back_populates="rule", passive_deletes=True)

    def __repr__(self):
        return f"<Rule {self.id} {self.name} ({self.rule_type})>"
