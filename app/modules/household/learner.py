"""
Household location learning from session history.

An IP becomes a known household location for a user once the user has
streamed from it at least `session_threshold` times. Auto-learned locations
start untrusted; an operator decides whether to trust them, and re-learning
never reverts that decision.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal, upsert_insert
from app.models.household import HouseholdLocation
from app.models.watch_history import WatchHistory
from app.modules.geo.cache import GeoCache, GeoLookup

logger = logging.getLogger(__name__)


class HouseholdLearner:
    """
    Promotes frequently used IPs into household locations.

    Usage:
        learner = HouseholdLearner(geo_lookup=maxmind.lookup)
        created = await learner.consider_session("alice", "1.1.1.1", session_threshold=10)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        geo_cache: Optional[GeoCache] = None,
        geo_lookup: Optional[GeoLookup] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.geo_cache = geo_cache or GeoCache(self.session_factory)
        self.geo_lookup = geo_lookup

    async def _count_sessions(self, session: AsyncSession, user_name: str, ip: str) -> int:
        result = await session.execute(
            select(func.count(WatchHistory.id)).where(
                WatchHistory.user_name == user_name,
                WatchHistory.ip_address == ip,
            )
        )
        return result.scalar() or 0

    async def consider_session(self, user_name: str, ip: str, session_threshold: int) -> bool:
        """
        Learn (user, ip) as a household location once it has enough sessions.

        Args:
            user_name: Media server user
            ip: Client IP of the session
            session_threshold: Minimum sessions from this IP before promotion

        Returns:
            True only when a new household row was created
        """
        if not ip:
            return False

        async with self.session_factory() as session:
            session_count = await self._count_sessions(session, user_name, ip)

        if session_count < session_threshold:
            return False

        geo = await self.geo_cache.lookup(ip, self.geo_lookup)
        now = datetime.utcnow()

        async with self.session_factory() as session:
            insert_stmt = upsert_insert(session, HouseholdLocation.__table__).values(
                user_name=user_name,
                ip_address=ip,
                city=(geo.city or "") if geo else "",
                country=(geo.country or "") if geo else "",
                latitude=geo.latitude if geo else 0.0,
                longitude=geo.longitude if geo else 0.0,
                auto_learned=True,
                trusted=False,
                session_count=session_count,
                first_seen=now,
                last_seen=now,
                created_at=now,
            ).on_conflict_do_nothing(index_elements=["user_name", "ip_address"])
            result = await session.execute(insert_stmt)
            created = result.rowcount == 1

            if not created:
                # Existing row: refresh bookkeeping, leave trusted alone
                await session.execute(
                    update(HouseholdLocation)
                    .where(
                        HouseholdLocation.user_name == user_name,
                        HouseholdLocation.ip_address == ip,
                    )
                    .values(
                        session_count=case(
                            (HouseholdLocation.session_count < session_count, session_count),
                            else_=HouseholdLocation.session_count,
                        ),
                        last_seen=now,
                    )
                )
            await session.commit()

        if created:
            logger.info(
                f"Auto-learned household location for user {user_name} from IP {ip} ({session_count} sessions)",
                extra={"user_name": user_name, "ip": ip, "session_count": session_count},
            )
        return created

    async def list_all(self, user_name: str) -> List[HouseholdLocation]:
        """All household locations for a user, most recently seen first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(HouseholdLocation)
                .where(HouseholdLocation.user_name == user_name)
                .order_by(HouseholdLocation.last_seen.desc(), HouseholdLocation.id)
            )
            return list(result.scalars().all())

    async def list_trusted(self, user_name: str) -> List[HouseholdLocation]:
        """Trusted household locations (the safe set for geo rules)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(HouseholdLocation)
                .where(
                    HouseholdLocation.user_name == user_name,
                    HouseholdLocation.trusted.is_(True),
                )
                .order_by(HouseholdLocation.last_seen.desc(), HouseholdLocation.id)
            )
            return list(result.scalars().all())

    async def set_trusted(self, location_id: int, trusted: bool) -> Optional[HouseholdLocation]:
        """
        Operator promotion or demotion of a household location.

        Returns:
            The updated location, or None if it does not exist
        """
        async with self.session_factory() as session:
            location = await session.get(HouseholdLocation, location_id)
            if location is None:
                return None
            location.trusted = trusted
            await session.commit()

        logger.info(
            f"Household location {location_id} marked {'trusted' if trusted else 'untrusted'}",
            extra={"location_id": location_id, "user_name": location.user_name, "trusted": trusted},
        )
        return location

    async def recalculate_all(self, min_sessions: Optional[int] = None) -> int:
        """
        Learn every (user, ip) pair in history that meets the threshold.

        A failure on one pair is logged and skipped.

        Returns:
            Number of newly created household locations
        """
        if not min_sessions or min_sessions <= 0:
            min_sessions = settings.HOUSEHOLD_MIN_SESSIONS

        async with self.session_factory() as session:
            result = await session.execute(
                select(WatchHistory.user_name, WatchHistory.ip_address)
                .where(WatchHistory.ip_address != "")
                .group_by(WatchHistory.user_name, WatchHistory.ip_address)
                .having(func.count(WatchHistory.id) >= min_sessions)
            )
            pairs = result.all()

        created = 0
        for user_name, ip in pairs:
            try:
                if await self.consider_session(user_name, ip, min_sessions):
                    created += 1
            except Exception as e:
                logger.error(
                    f"Failed to auto-learn household for {user_name}/{ip}: {e}",
                    extra={"user_name": user_name, "ip": ip, "error": str(e)},
                )

        logger.info(
            f"Household recalculation complete: {created} new locations from {len(pairs)} candidates",
            extra={"created_count": created, "candidates": len(pairs), "min_sessions": min_sessions},
        )
        return created
