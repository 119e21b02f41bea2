"""
WatchHistory model - completed streaming sessions.

Written by the history ingester; read here to count how often a user
streamed from an IP address.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Index

from app.core.database import Base


class WatchHistory(Base):
    """One finished playback session."""

    __tablename__ = "watch_history"
    __table_args__ = (
        Index("ix_watch_history_user_ip", "user_name", "ip_address"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_name = Column(String, nullable=False, index=True)
    ip_address = Column(String, nullable=False, default="")
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    stopped_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<WatchHistory {self.user_name}@{self.ip_address} {self.started_at}>"
