"""
Unit tests for HouseholdLearner.

Covers promotion at the session threshold, idempotent re-learning,
operator trust decisions and full-history recalculation.

Run tests:
    pytest tests/unit/test_household_learner.py -v
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.models.geo import GeoResult
from app.models.watch_history import WatchHistory
from app.modules.household.learner import HouseholdLearner


PARIS = GeoResult(ip="1.1.1.1", latitude=48.8566, longitude=2.3522, city="Paris", country="FR")


async def add_sessions(session_factory, user_name, ip, count):
    start = datetime.utcnow() - timedelta(days=30)
    async with session_factory() as session:
        for i in range(count):
            session.add(WatchHistory(
                user_name=user_name,
                ip_address=ip,
                started_at=start + timedelta(hours=i),
                stopped_at=start + timedelta(hours=i, minutes=45),
            ))
        await session.commit()


@pytest.fixture
def geo_lookup():
    return AsyncMock(return_value=PARIS)


@pytest.fixture
def learner(session_factory, geo_lookup):
    return HouseholdLearner(session_factory, geo_lookup=geo_lookup)


class TestConsiderSession:

    @pytest.mark.asyncio
    async def test_promotion_exactly_at_threshold(self, learner, session_factory):
        """Sessions 1..12 from one IP: created only at the 10th."""
        outcomes = []
        for _ in range(12):
            await add_sessions(session_factory, "alice", "1.1.1.1", 1)
            outcomes.append(await learner.consider_session("alice", "1.1.1.1", session_threshold=10))

        assert outcomes == [False] * 9 + [True, False, False]

        locations = await learner.list_all("alice")
        assert len(locations) == 1
        location = locations[0]
        assert location.auto_learned is True
        assert location.trusted is False
        assert location.session_count == 12
        assert location.city == "Paris"
        assert location.country == "FR"

    @pytest.mark.asyncio
    async def test_session_count_at_creation(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)

        assert await learner.consider_session("alice", "1.1.1.1", 10) is True

        location = (await learner.list_all("alice"))[0]
        assert location.session_count == 10
        assert location.first_seen == location.last_seen

    @pytest.mark.asyncio
    async def test_below_threshold_writes_nothing(self, learner, session_factory, geo_lookup):
        await add_sessions(session_factory, "alice", "1.1.1.1", 9)

        assert await learner.consider_session("alice", "1.1.1.1", 10) is False

        assert await learner.list_all("alice") == []
        geo_lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_ip_is_noop(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "", 20)

        assert await learner.consider_session("alice", "", 1) is False
        assert await learner.list_all("alice") == []

    @pytest.mark.asyncio
    async def test_sessions_counted_per_user(self, learner, session_factory):
        await add_sessions(session_factory, "bob", "1.1.1.1", 15)
        await add_sessions(session_factory, "alice", "1.1.1.1", 5)

        assert await learner.consider_session("alice", "1.1.1.1", 10) is False
        assert await learner.consider_session("bob", "1.1.1.1", 10) is True

    @pytest.mark.asyncio
    async def test_relearning_keeps_operator_trust(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await learner.consider_session("alice", "1.1.1.1", 10)
        location = (await learner.list_all("alice"))[0]
        await learner.set_trusted(location.id, True)

        await add_sessions(session_factory, "alice", "1.1.1.1", 3)
        assert await learner.consider_session("alice", "1.1.1.1", 10) is False

        location = (await learner.list_all("alice"))[0]
        assert location.trusted is True
        assert location.session_count == 13

    @pytest.mark.asyncio
    async def test_session_count_never_decreases(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 12)
        await learner.consider_session("alice", "1.1.1.1", 10)

        # A lower threshold call with the same history must not shrink the count
        await learner.consider_session("alice", "1.1.1.1", 5)

        assert (await learner.list_all("alice"))[0].session_count == 12

    @pytest.mark.asyncio
    async def test_geo_failure_still_learns(self, session_factory):
        learner = HouseholdLearner(
            session_factory, geo_lookup=AsyncMock(side_effect=RuntimeError("lookup down"))
        )
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)

        assert await learner.consider_session("alice", "1.1.1.1", 10) is True

        location = (await learner.list_all("alice"))[0]
        assert location.city == ""
        assert location.latitude == 0.0

    @pytest.mark.asyncio
    async def test_geo_result_cached(self, learner, session_factory, geo_lookup):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await add_sessions(session_factory, "bob", "1.1.1.1", 10)

        await learner.consider_session("alice", "1.1.1.1", 10)
        await learner.consider_session("bob", "1.1.1.1", 10)

        geo_lookup.assert_awaited_once_with("1.1.1.1")


class TestListing:

    @pytest.mark.asyncio
    async def test_trusted_is_subset_of_all(self, learner, session_factory):
        for ip in ("1.1.1.1", "2.2.2.2", "3.3.3.3"):
            await add_sessions(session_factory, "alice", ip, 10)
            await learner.consider_session("alice", ip, 10)
        locations = await learner.list_all("alice")
        await learner.set_trusted(locations[0].id, True)

        trusted = await learner.list_trusted("alice")

        assert len(locations) == 3
        assert [loc.id for loc in trusted] == [locations[0].id]
        assert {loc.id for loc in trusted} <= {loc.id for loc in locations}

    @pytest.mark.asyncio
    async def test_ordered_most_recent_first(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await learner.consider_session("alice", "1.1.1.1", 10)
        await add_sessions(session_factory, "alice", "2.2.2.2", 10)
        await learner.consider_session("alice", "2.2.2.2", 10)

        # Touch the first one again so it becomes the most recent
        await add_sessions(session_factory, "alice", "1.1.1.1", 1)
        await learner.consider_session("alice", "1.1.1.1", 10)

        ips = [loc.ip_address for loc in await learner.list_all("alice")]
        assert ips == ["1.1.1.1", "2.2.2.2"]

    @pytest.mark.asyncio
    async def test_unknown_user_has_no_locations(self, learner):
        assert await learner.list_all("nobody") == []
        assert await learner.list_trusted("nobody") == []


class TestSetTrusted:

    @pytest.mark.asyncio
    async def test_promote_and_demote(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await learner.consider_session("alice", "1.1.1.1", 10)
        location_id = (await learner.list_all("alice"))[0].id

        promoted = await learner.set_trusted(location_id, True)
        assert promoted.trusted is True

        demoted = await learner.set_trusted(location_id, False)
        assert demoted.trusted is False
        assert await learner.list_trusted("alice") == []

    @pytest.mark.asyncio
    async def test_unknown_location(self, learner):
        assert await learner.set_trusted(999, True) is None


class TestRecalculateAll:

    @pytest.mark.asyncio
    async def test_creates_all_qualifying_pairs(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await add_sessions(session_factory, "alice", "2.2.2.2", 3)
        await add_sessions(session_factory, "bob", "3.3.3.3", 11)
        await add_sessions(session_factory, "carol", "", 50)

        created = await learner.recalculate_all(10)

        assert created == 2
        assert len(await learner.list_all("alice")) == 1
        assert len(await learner.list_all("bob")) == 1
        assert await learner.list_all("carol") == []

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)

        assert await learner.recalculate_all(10) == 1
        assert await learner.recalculate_all(10) == 0

    @pytest.mark.asyncio
    async def test_default_threshold(self, learner, session_factory):
        await add_sessions(session_factory, "alice", "1.1.1.1", 9)

        assert await learner.recalculate_all() == 0

        await add_sessions(session_factory, "alice", "1.1.1.1", 1)
        assert await learner.recalculate_all() == 1

    @pytest.mark.asyncio
    async def test_failure_on_one_pair_is_skipped(self, learner, session_factory, mocker):
        await add_sessions(session_factory, "alice", "1.1.1.1", 10)
        await add_sessions(session_factory, "bob", "2.2.2.2", 10)

        original = learner.consider_session

        async def flaky(user_name, ip, threshold):
            if user_name == "alice":
                raise RuntimeError("database hiccup")
            return await original(user_name, ip, threshold)

        mocker.patch.object(learner, "consider_session", side_effect=flaky)

        assert await learner.recalculate_all(10) == 1
        assert await learner.list_all("alice") == []
