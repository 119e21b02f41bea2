"""
HouseholdLocation model - places a user is known to stream from.

One row per (user, IP). Auto-learned rows start untrusted; only an operator
flips the trusted flag.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, UniqueConstraint

from app.core.database import Base


class HouseholdLocation(Base):
    """
    Physical location empirically associated with a user's normal usage.

    Trusted locations are what geo-restriction and impossible-travel
    evaluators treat as safe.
    """

    __tablename__ = "household_locations"
    __table_args__ = (
        UniqueConstraint("user_name", "ip_address", name="uq_household_user_ip"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_name = Column(String, nullable=False, index=True)
    ip_address = Column(String, nullable=False, default="")
    city = Column(String, nullable=False, default="")
    country = Column(String, nullable=False, default="")
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)

    auto_learned = Column(Boolean, nullable=False, default=False)
    trusted = Column(Boolean, nullable=False, default=False, index=True)
    session_count = Column(Integer, nullable=False, default=0)  # Never decreases

    first_seen = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_seen = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        flag = "trusted" if self.trusted else "untrusted"
        return f"<HouseholdLocation {self.user_name}@{self.ip_address} {flag} sessions={self.session_count}>"
