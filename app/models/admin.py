"""
Pydantic request/response schemas for the admin API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TrustScoreResponse(BaseModel):
    """Trust score for a user (virtual default of 100 if never penalized)."""

    model_config = ConfigDict(from_attributes=True)

    user_name: str
    score: int
    violation_count: int
    last_violation_at: Optional[datetime] = None


class HouseholdLocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_name: str
    ip_address: str
    city: str
    country: str
    latitude: float
    longitude: float
    auto_learned: bool
    trusted: bool
    session_count: int
    first_seen: datetime
    last_seen: datetime


class HouseholdUpdateRequest(BaseModel):
    trusted: bool


class RecalculateRequest(BaseModel):
    min_sessions: Optional[int] = Field(None, ge=1, description="Defaults to HOUSEHOLD_MIN_SESSIONS")


class RecalculateResponse(BaseModel):
    created: int


class ChannelTestResponse(BaseModel):
    status: str
