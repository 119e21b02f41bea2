"""
User trust and household location admin endpoints.

Operators use these to review auto-learned locations and decide which ones
to trust. Nothing here changes trust scores.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import get_session_factory
from app.models.admin import (
    HouseholdLocationResponse,
    HouseholdUpdateRequest,
    RecalculateRequest,
    RecalculateResponse,
    TrustScoreResponse,
)
from app.modules.household.learner import HouseholdLearner
from app.modules.trust.ledger import TrustLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["households"])


@router.get("/users/{user_name}/trust-score", response_model=TrustScoreResponse)
async def get_trust_score(
    user_name: str,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Current trust score; users without violations report the default of 100."""
    score = await TrustLedger(session_factory).get_or_init(user_name)
    return TrustScoreResponse.model_validate(score)


@router.get("/users/{user_name}/households", response_model=List[HouseholdLocationResponse])
async def list_households(
    user_name: str,
    trusted_only: bool = False,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    learner = HouseholdLearner(session_factory)
    if trusted_only:
        locations = await learner.list_trusted(user_name)
    else:
        locations = await learner.list_all(user_name)
    return [HouseholdLocationResponse.model_validate(location) for location in locations]


@router.patch("/households/{location_id}", response_model=HouseholdLocationResponse)
async def update_household(
    location_id: int,
    update: HouseholdUpdateRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Mark a household location trusted or untrusted.

    Raises:
        HTTPException 404: Unknown location
    """
    location = await HouseholdLearner(session_factory).set_trusted(location_id, update.trusted)
    if location is None:
        raise HTTPException(status_code=404, detail=f"Household location {location_id} not found")
    return HouseholdLocationResponse.model_validate(location)


@router.post("/households/recalculate", response_model=RecalculateResponse)
async def recalculate_households(
    request: Optional[RecalculateRequest] = Body(None),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Re-learn household locations from the full watch history.

    Runs inline; the nightly Celery beat job does the same thing.
    """
    min_sessions = request.min_sessions if request else None
    created = await HouseholdLearner(session_factory).recalculate_all(min_sessions)
    return RecalculateResponse(created=created)
