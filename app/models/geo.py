"""
Geo cache model - IP address to location lookups.

Rows are never deleted; freshness is decided at read time from cached_at.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, String, Float, DateTime

from app.core.database import Base


class GeoCacheEntry(Base):
    """Cached geo resolution for a single IP address."""

    __tablename__ = "ip_geo_cache"

    ip = Column(String, primary_key=True)
    latitude = Column(Float, default=0.0, nullable=False)
    longitude = Column(Float, default=0.0, nullable=False)
    city = Column(String, default="", nullable=False)
    country = Column(String, default="", nullable=False)
    cached_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<GeoCacheEntry {self.ip} {self.city}, {self.country}>"

    def to_result(self) -> "GeoResult":
        return GeoResult.model_validate(self)


class GeoResult(BaseModel):
    """Geographic attributes resolved for an IP address."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    ip: str
    latitude: float = 0.0
    longitude: float = 0.0
    city: Optional[str] = ""
    country: Optional[str] = ""
