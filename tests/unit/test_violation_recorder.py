"""
Unit tests for ViolationRecorder.

Tests:
- Dedup by session key and by time window
- Atomic violation insert + trust score decrement
- One violation per (rule, user, session key), also under concurrent writers
- Penalty defaults by severity

Run tests:
    pytest tests/unit/test_violation_recorder.py -v
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from app.models.rule_violation import RuleViolation, Severity
from app.modules.trust.ledger import TrustLedger
from app.modules.violations.recorder import (
    InvalidViolationError,
    ViolationRecorder,
    penalty_for,
)

WINDOW = timedelta(minutes=15)


@pytest.fixture
def recorder(session_factory):
    return ViolationRecorder(session_factory)


async def count_violations(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(func.count(RuleViolation.id)))
        return result.scalar()


class TestPenaltyFor:

    def test_defaults(self):
        assert penalty_for(Severity.CRITICAL) == 20
        assert penalty_for(Severity.WARNING) == 10
        assert penalty_for(Severity.INFO) == 5

    def test_plain_strings(self):
        assert penalty_for("critical") == 20

    def test_unknown_severity(self):
        assert penalty_for("catastrophic") == 0


class TestRecord:

    @pytest.mark.asyncio
    async def test_persists_violation_and_decrements_score(self, recorder, make_candidate):
        violation = await recorder.record(make_candidate(), score_penalty=10)

        assert violation.id is not None
        assert violation.severity == "warning"
        assert violation.session_key == "s1"

        score = await recorder.ledger.get_or_init("alice")
        assert score.score == 90
        assert score.violation_count == 1

    @pytest.mark.asyncio
    async def test_score_tracks_recorded_violations(self, recorder, make_candidate):
        await recorder.record(make_candidate(session_key="s1"), score_penalty=10)
        await recorder.record(make_candidate(session_key="s2"), score_penalty=5)

        score = await recorder.ledger.get_or_init("alice")

        assert score.score == 85
        assert score.violation_count == 2

    @pytest.mark.asyncio
    async def test_last_violation_at_is_occurrence_time(self, recorder, make_candidate):
        occurred = datetime(2025, 3, 14, 9, 26, 53)

        await recorder.record(make_candidate(occurred_at=occurred), score_penalty=10)

        score = await recorder.ledger.get_or_init("alice")
        assert score.last_violation_at == occurred

    @pytest.mark.asyncio
    async def test_negative_penalty_rejected(self, recorder, make_candidate, session_factory):
        with pytest.raises(InvalidViolationError):
            await recorder.record(make_candidate(), score_penalty=-5)

        assert await count_violations(session_factory) == 0

    @pytest.mark.asyncio
    async def test_score_failure_rolls_back_violation(self, session_factory, make_candidate, mocker):
        """No violation row may exist without its score decrement."""
        ledger = TrustLedger(session_factory)
        mocker.patch.object(
            ledger, "apply_decrement",
            side_effect=OperationalError("UPDATE user_trust_scores", {}, Exception("disk I/O error")),
        )
        recorder = ViolationRecorder(session_factory, ledger=ledger)

        with pytest.raises(OperationalError):
            await recorder.record(make_candidate(), score_penalty=10)

        assert await count_violations(session_factory) == 0
        assert (await ledger.get_or_init("alice")).violation_count == 0

    @pytest.mark.asyncio
    async def test_same_session_recorded_once(self, recorder, make_candidate, session_factory):
        """A session key that already has a violation of the rule is a no-op, even past the window."""
        first = await recorder.record(
            make_candidate(session_key="s1", occurred_at=datetime.utcnow() - timedelta(days=1)),
            score_penalty=10,
        )

        second = await recorder.record(make_candidate(session_key="s1"), score_penalty=10)

        assert first is not None
        assert second is None
        assert await count_violations(session_factory) == 1
        score = await recorder.ledger.get_or_init("alice")
        assert score.score == 90
        assert score.violation_count == 1

    @pytest.mark.asyncio
    async def test_empty_session_key_not_unique(self, recorder, make_candidate, session_factory):
        await recorder.record(make_candidate(session_key=""), score_penalty=10)
        await recorder.record(make_candidate(session_key=""), score_penalty=10)

        assert await count_violations(session_factory) == 2

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, recorder, make_candidate, mocker):
        mocker.patch.object(
            recorder.ledger, "apply_decrement",
            side_effect=IntegrityError("INSERT INTO user_trust_scores", {}, Exception("NOT NULL constraint failed")),
        )

        with pytest.raises(IntegrityError):
            await recorder.record(make_candidate(session_key="s9"), score_penalty=10)

    @pytest.mark.asyncio
    async def test_concurrent_same_session_recorded_once(self, concurrent_session_factory, make_candidate):
        recorder = ViolationRecorder(concurrent_session_factory)

        results = await asyncio.gather(
            *(recorder.record(make_candidate(session_key="s1"), score_penalty=10) for _ in range(5))
        )

        assert sum(1 for violation in results if violation is not None) == 1
        assert await count_violations(concurrent_session_factory) == 1
        score = await recorder.ledger.get_or_init("alice")
        assert score.score == 90
        assert score.violation_count == 1

    @pytest.mark.asyncio
    async def test_details_round_trip(self, recorder, make_candidate):
        violation = await recorder.record(
            make_candidate(details={"streams": 3, "ips": ["1.1.1.1", "2.2.2.2"]}),
            score_penalty=10,
        )

        stored = (await recorder.recent_for_user("alice"))[0]
        assert stored.id == violation.id
        assert stored.details == {"streams": 3, "ips": ["1.1.1.1", "2.2.2.2"]}


class TestExistsRecent:

    @pytest.mark.asyncio
    async def test_same_session_key_is_duplicate(self, recorder, make_candidate):
        await recorder.record(make_candidate(session_key="s1"), score_penalty=10)

        assert await recorder.exists_recent(1, "alice", "s1", WINDOW) is True

    @pytest.mark.asyncio
    async def test_different_session_key_is_not_duplicate(self, recorder, make_candidate):
        await recorder.record(make_candidate(session_key="s1"), score_penalty=10)

        assert await recorder.exists_recent(1, "alice", "s2", WINDOW) is False

    @pytest.mark.asyncio
    async def test_empty_session_key_matches_any_violation(self, recorder, make_candidate):
        await recorder.record(make_candidate(session_key="s1"), score_penalty=10)

        assert await recorder.exists_recent(1, "alice", "", WINDOW) is True
        assert await recorder.exists_recent(1, "alice", None, WINDOW) is True

    @pytest.mark.asyncio
    async def test_outside_window(self, recorder, make_candidate):
        await recorder.record(
            make_candidate(session_key="", occurred_at=datetime.utcnow() - timedelta(minutes=20)),
            score_penalty=10,
        )

        assert await recorder.exists_recent(1, "alice", "", WINDOW) is False
        assert await recorder.exists_recent(1, "alice", "", timedelta(minutes=30)) is True

    @pytest.mark.asyncio
    async def test_other_rule_or_user_not_matched(self, recorder, make_candidate):
        await recorder.record(make_candidate(), score_penalty=10)

        assert await recorder.exists_recent(2, "alice", "s1", WINDOW) is False
        assert await recorder.exists_recent(1, "bob", "s1", WINDOW) is False

    @pytest.mark.asyncio
    async def test_explicit_now(self, recorder, make_candidate):
        occurred = datetime(2025, 3, 14, 9, 0, 0)
        await recorder.record(make_candidate(occurred_at=occurred), score_penalty=10)

        assert await recorder.exists_recent(1, "alice", "s1", WINDOW, now=occurred + timedelta(minutes=10)) is True
        assert await recorder.exists_recent(1, "alice", "s1", WINDOW, now=occurred + timedelta(minutes=16)) is False


class TestReadAccessors:

    @pytest.mark.asyncio
    async def test_recent_for_user_newest_first(self, recorder, make_candidate):
        now = datetime.utcnow()
        for minutes_ago in (30, 10, 20):
            await recorder.record(
                make_candidate(session_key=f"s{minutes_ago}", occurred_at=now - timedelta(minutes=minutes_ago)),
                score_penalty=1,
            )

        recent = await recorder.recent_for_user("alice", limit=2)

        assert [v.session_key for v in recent] == ["s10", "s20"]

    @pytest.mark.asyncio
    async def test_count_for_user_since(self, recorder, make_candidate):
        now = datetime.utcnow()
        await recorder.record(make_candidate(session_key="s1", occurred_at=now - timedelta(days=2)), score_penalty=1)
        await recorder.record(make_candidate(session_key="s2", occurred_at=now - timedelta(hours=1)), score_penalty=1)
        await recorder.record(make_candidate(user_name="bob"), score_penalty=1)

        assert await recorder.count_for_user("alice", since=now - timedelta(days=1)) == 1
        assert await recorder.count_for_user("alice", since=now - timedelta(days=7)) == 2
