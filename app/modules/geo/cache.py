"""
Geo resolution cache backed by the ip_geo_cache table.

Avoids repeated external GeoIP lookups:
- Reads only return rows younger than the freshness window (30 days)
- Writes are upserts by IP (last write wins)
- Nothing is ever deleted; stale rows simply behave as misses
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal, upsert_insert
from app.models.geo import GeoCacheEntry, GeoResult

logger = logging.getLogger(__name__)

# External lookup used on cache miss (e.g. a MaxMind reader wrapper)
GeoLookup = Callable[[str], Awaitable[Optional[GeoResult]]]


class GeoCache:
    """
    Time-bounded IP -> GeoResult cache.

    Usage:
        cache = GeoCache()
        geo = await cache.resolve("1.1.1.1")
        if geo is None:
            geo = await resolver.lookup("1.1.1.1")
            await cache.store(geo)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        ttl: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.ttl = ttl or timedelta(days=settings.GEO_CACHE_TTL_DAYS)

    def _fresh_since(self, now: Optional[datetime] = None) -> datetime:
        return (now or datetime.utcnow()) - self.ttl

    async def resolve(self, ip: str, now: Optional[datetime] = None) -> Optional[GeoResult]:
        """
        Return the cached result for an IP if it is still fresh.

        Returns:
            GeoResult, or None on miss or expiry
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(GeoCacheEntry).where(
                    GeoCacheEntry.ip == ip,
                    GeoCacheEntry.cached_at > self._fresh_since(now),
                )
            )
            entry = result.scalar_one_or_none()

        return entry.to_result() if entry else None

    async def resolve_batch(self, ips: Iterable[str], now: Optional[datetime] = None) -> Dict[str, GeoResult]:
        """
        Return fresh cached results for a set of IPs.

        Missing keys are cache misses that need external resolution.
        """
        wanted = {ip for ip in ips if ip}
        if not wanted:
            return {}

        async with self.session_factory() as session:
            result = await session.execute(
                select(GeoCacheEntry).where(
                    GeoCacheEntry.ip.in_(wanted),
                    GeoCacheEntry.cached_at > self._fresh_since(now),
                )
            )
            entries = result.scalars().all()

        return {entry.ip: entry.to_result() for entry in entries}

    async def store(self, geo: GeoResult) -> None:
        """Upsert a resolution and restart its freshness clock."""
        values = {
            "ip": geo.ip,
            "latitude": geo.latitude,
            "longitude": geo.longitude,
            "city": geo.city or "",
            "country": geo.country or "",
            "cached_at": datetime.utcnow(),
        }

        async with self.session_factory() as session:
            stmt = upsert_insert(session, GeoCacheEntry.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["ip"],
                set_={key: stmt.excluded[key] for key in values if key != "ip"},
            )
            await session.execute(stmt)
            await session.commit()

    async def lookup(self, ip: str, fetch: Optional[GeoLookup] = None) -> Optional[GeoResult]:
        """
        Cache-aside resolution: cached value, else fetch and write back.

        A failing or empty external lookup is logged and treated as "no geo
        data"; it never raises to the caller.
        """
        cached = await self.resolve(ip)
        if cached is not None or fetch is None:
            return cached

        try:
            geo = await fetch(ip)
        except Exception as e:
            logger.warning(f"Geo lookup failed for {ip}: {e}", extra={"ip": ip})
            return None

        if geo is not None:
            await self.store(geo)
        return geo
