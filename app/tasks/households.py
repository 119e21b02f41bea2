"""
Celery tasks for household location learning.
"""

import logging

from app.core.celery_app import celery_app
from app.core.celery_utils import run_async_task
from app.core.config import settings
from app.modules.household.learner import HouseholdLearner

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.households.learn_household_location")
def learn_household_location(user_name: str, ip_address: str):
    """
    Consider one finished session for household promotion.

    Enqueued by session ingestion when a stream stops.
    """
    if not settings.HOUSEHOLD_AUTO_LEARN:
        return {"status": "disabled"}

    created = run_async_task(
        HouseholdLearner().consider_session(user_name, ip_address, settings.HOUSEHOLD_MIN_SESSIONS)
    )
    return {"status": "created" if created else "unchanged", "user_name": user_name}


@celery_app.task(name="app.tasks.households.recalculate_household_locations")
def recalculate_household_locations(min_sessions: int = 0):
    """
    Re-learn household locations from the full watch history.

    Schedule:
        crontab(hour='4', minute='0')
    """
    if not settings.HOUSEHOLD_AUTO_LEARN:
        logger.info("Household auto-learning disabled - skipping recalculation")
        return {"status": "disabled", "created": 0}

    logger.info("Starting household location recalculation")
    created = run_async_task(HouseholdLearner().recalculate_all(min_sessions or None))
    return {"status": "success", "created": created}
