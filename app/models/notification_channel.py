"""
NotificationChannel model - configured alert destinations.

The config column holds a type-specific JSON blob; it is decoded and
validated by app.models.channel_config right before delivery.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from sqlalchemy.orm import relationship

from app.core.database import Base, JSONType
from app.models.rule import rule_notifications


class ChannelType(str, Enum):
    """Supported notification channel kinds."""
    DISCORD = "discord"
    WEBHOOK = "webhook"
    PUSHOVER = "pushover"
    NTFY = "ntfy"


class NotificationChannel(Base):
    """
    Alert destination linked to zero or more rules.

    Disabled channels stay linked; they are skipped at fan-out time.
    """

    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    channel_type = Column(String, nullable=False, index=True)  # see ChannelType
    config = Column(JSONType, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    rules = relationship("Rule", secondary=rule_notifications, back_populates="channels")

    def __repr__(self):
        return f"<NotificationChannel {self.name} ({self.channel_type})>"
