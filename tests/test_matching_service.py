"""Tests for MatchingService — group matching, instant match, atomicity."""
import asyncio
import random
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from matchup.database import build_engine, build_session_factory
from matchup.services.errors import ParticipantNotFoundError, StorageUnavailableError
from matchup.services.matching_service import MatchingService


@pytest.fixture
def matching_service(session_factory, clock):
    return MatchingService(session_factory, rng=random.Random(42), clock=clock)


def _assert_edges_consistent(group):
    by_id = {p.id: p for p in group.values()}
    for p in group.values():
        assert p.matched_to_id != p.id
        if p.matched_to_id is not None:
            assert p.matched_to_id in by_id


class TestRunMatching:

    @pytest.mark.asyncio
    async def test_acme_scenario(self, matching_service, add_participant, fetch_group):
        """P1(m), P2(f), P3(m) past reveal: P1 -> P2, everybody assigned."""
        await add_participant("P1", "male")
        await add_participant("P2", "female")
        await add_participant("P3", "male")

        assigned = await matching_service.run_matching("acme")

        group = await fetch_group()
        assert assigned == 3
        assert group["P1"].matched_to_id == group["P2"].id
        assert group["P2"].matched_to_id in (group["P1"].id, group["P3"].id)
        assert group["P3"].matched_to_id in (group["P1"].id, group["P2"].id)
        _assert_edges_consistent(group)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 99])
    async def test_injective_and_opposite_when_available(
        self, session_factory, clock, add_participant, fetch_group, seed
    ):
        for i, gender in enumerate(["male", "female", "female", "male", "male", "female"]):
            await add_participant(f"p{i}", gender)
        service = MatchingService(session_factory, rng=random.Random(seed), clock=clock)

        assert await service.run_matching("acme") == 6

        group = await fetch_group()
        by_id = {p.id: p for p in group.values()}
        targets = [p.matched_to_id for p in group.values()]
        assert len(set(targets)) == len(targets)
        for p in group.values():
            assert by_id[p.matched_to_id].gender != p.gender

    @pytest.mark.asyncio
    async def test_edge_symmetry(self, matching_service, add_participant, fetch_group):
        for i, gender in enumerate(["male", "female", "male", "female"]):
            await add_participant(f"p{i}", gender)

        await matching_service.run_matching("acme")

        group = await fetch_group()
        by_id = {p.id: p for p in group.values()}
        for p in group.values():
            assert by_id[p.matched_to_id].matched_by_id == p.id

    @pytest.mark.asyncio
    async def test_other_gender_fallback(self, matching_service, add_participant, fetch_group):
        for name in ("o1", "o2", "o3"):
            await add_participant(name, "other")

        assert await matching_service.run_matching("acme") == 3

        group = await fetch_group()
        assert all(p.matched_to_id is not None for p in group.values())
        _assert_edges_consistent(group)

    @pytest.mark.asyncio
    async def test_idempotent(self, matching_service, add_participant, fetch_group):
        for i, gender in enumerate(["male", "female", "other"]):
            await add_participant(f"p{i}", gender)

        assert await matching_service.run_matching("acme") == 3
        before = {name: (p.matched_to_id, p.matched_by_id) for name, p in (await fetch_group()).items()}

        assert await matching_service.run_matching("acme") == 0
        after = {name: (p.matched_to_id, p.matched_by_id) for name, p in (await fetch_group()).items()}
        assert before == after

    @pytest.mark.asyncio
    async def test_waits_for_reveal_time(self, matching_service, add_participant, fetch_group, clock):
        await add_participant("early", "male")
        await add_participant("late", "female", signup_time=clock.now - timedelta(hours=1))

        assert await matching_service.run_matching("acme") == 1

        group = await fetch_group()
        assert group["early"].matched_to_id == group["late"].id
        assert group["late"].matched_to_id is None
        assert group["late"].matched_by_id == group["early"].id

        clock.advance(hours=24)
        assert await matching_service.run_matching("acme") == 1
        group = await fetch_group()
        assert group["late"].matched_to_id == group["early"].id

    @pytest.mark.asyncio
    async def test_single_member_group(self, matching_service, add_participant, fetch_group):
        await add_participant("alone", "female")
        assert await matching_service.run_matching("acme") == 0
        assert (await fetch_group())["alone"].matched_to_id is None

    @pytest.mark.asyncio
    async def test_unknown_group(self, matching_service):
        assert await matching_service.run_matching("nobody") == 0

    @pytest.mark.asyncio
    async def test_group_key_is_normalised(self, matching_service, add_participant):
        await add_participant("a", "male")
        await add_participant("b", "female")
        assert await matching_service.run_matching(" ACME-2026 ") == 2

    @pytest.mark.asyncio
    async def test_groups_are_isolated(self, matching_service, add_participant, fetch_group):
        await add_participant("a", "male", group_key="acme")
        await add_participant("b", "female", group_key="globex")

        assert await matching_service.run_matching("acme") == 0
        assert (await fetch_group("acme"))["a"].matched_to_id is None

    @pytest.mark.asyncio
    async def test_earlier_assignments_survive_a_later_failure(
        self, session_factory, clock, add_participant, fetch_group
    ):
        class FailsSecondTime:
            calls = 0

            def choice(self, seq):
                self.calls += 1
                if self.calls == 2:
                    raise RuntimeError("boom")
                return seq[0]

        await add_participant("a", "male")
        await add_participant("b", "female")
        await add_participant("c", "other")
        service = MatchingService(session_factory, rng=FailsSecondTime(), clock=clock)

        with pytest.raises(RuntimeError):
            await service.run_matching("acme")

        group = await fetch_group()
        assert group["a"].matched_to_id == group["b"].id
        assert group["b"].matched_by_id == group["a"].id
        assert group["b"].matched_to_id is None


class TestInstantMatch:

    @pytest.mark.asyncio
    async def test_bypasses_reveal_time(self, matching_service, add_participant, fetch_group, clock, t0):
        clock.now = t0 + timedelta(hours=1)
        me = await add_participant("me", "female")
        other = await add_participant("other", "male")

        counterpart = await matching_service.try_instant_match(me.id)

        assert counterpart is not None
        assert counterpart.id == other.id
        group = await fetch_group()
        assert group["me"].matched_to_id == other.id
        assert group["other"].matched_by_id == me.id
        assert group["me"].match_viewed is False

    @pytest.mark.asyncio
    async def test_returns_existing_match(self, matching_service, add_participant, fetch_group):
        me = await add_participant("me", "female")
        await add_participant("m1", "male")
        await add_participant("m2", "male")

        first = await matching_service.try_instant_match(me.id)
        second = await matching_service.try_instant_match(me.id)

        assert first.id == second.id
        assert (await fetch_group())["me"].matched_to_id == first.id

    @pytest.mark.asyncio
    async def test_no_candidate(self, matching_service, add_participant, fetch_group):
        me = await add_participant("me", "female")
        assert await matching_service.try_instant_match(me.id) is None
        assert (await fetch_group())["me"].matched_to_id is None

    @pytest.mark.asyncio
    async def test_retry_after_group_grows(self, matching_service, add_participant):
        me = await add_participant("me", "female")
        assert await matching_service.try_instant_match(me.id) is None

        newcomer = await add_participant("newcomer", "male")
        counterpart = await matching_service.try_instant_match(me.id)
        assert counterpart.id == newcomer.id

    @pytest.mark.asyncio
    async def test_unknown_participant(self, matching_service):
        with pytest.raises(ParticipantNotFoundError):
            await matching_service.try_instant_match(uuid.uuid4())


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_triggers_assign_each_participant_once(
        self, matching_service, add_participant, fetch_group
    ):
        people = []
        for i in range(8):
            people.append(await add_participant(f"p{i}", "male" if i % 2 else "female"))

        results = await asyncio.gather(
            matching_service.run_matching("acme"),
            matching_service.run_matching("acme"),
            matching_service.try_instant_match(people[3].id),
            matching_service.run_matching("acme"),
        )

        run_counts = [r for r in results if isinstance(r, int)]
        instant_assigned = results[2] is not None
        group = await fetch_group()
        assert all(p.matched_to_id is not None for p in group.values())
        # Every participant was newly assigned exactly once across all callers.
        assert sum(run_counts) in (len(people), len(people) - 1)
        if sum(run_counts) == len(people) - 1:
            assert instant_assigned
        _assert_edges_consistent(group)

    @pytest.mark.asyncio
    async def test_concurrent_runs_agree_with_serial_idempotence(
        self, matching_service, add_participant, fetch_group
    ):
        for i in range(5):
            await add_participant(f"p{i}", "other")

        counts = await asyncio.gather(*(matching_service.run_matching("acme") for _ in range(4)))

        assert sum(counts) == 5
        assert await matching_service.run_matching("acme") == 0


class TestStorageFailures:

    @pytest.mark.asyncio
    async def test_unreachable_database_is_retryable(self, tmp_path, clock):
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}")
        service = MatchingService(build_session_factory(engine), clock=clock)
        try:
            with pytest.raises(StorageUnavailableError):
                await service.run_matching("acme")
            with pytest.raises(StorageUnavailableError):
                await service.try_instant_match(uuid.uuid4())
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_exhausted_pool_is_retryable(self, db_engine, tmp_path, clock):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'matchup.db'}",
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=0.1,
        )
        service = MatchingService(build_session_factory(engine), clock=clock)
        try:
            async with engine.connect():
                with pytest.raises(StorageUnavailableError):
                    await service.run_matching("acme")
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_failure_after_claim_leaves_no_half_edge(
        self, db_engine, clock, add_participant, fetch_group
    ):
        class FailsOnThirdExecute(AsyncSession):
            """load_group, the claim on matched_to_id, then the matched_by write."""

            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                self.executed = 0

            async def execute(self, *args, **kwargs):
                self.executed += 1
                if self.executed == 3:
                    raise OperationalError("UPDATE participants", {}, Exception("disk I/O error"))
                return await super().execute(*args, **kwargs)

        await add_participant("a", "male")
        await add_participant("b", "female")
        failing = async_sessionmaker(db_engine, class_=FailsOnThirdExecute, expire_on_commit=False)
        service = MatchingService(failing, rng=random.Random(0), clock=clock)

        with pytest.raises(StorageUnavailableError):
            await service.run_matching("acme")

        for p in (await fetch_group()).values():
            assert p.matched_to_id is None
            assert p.matched_at is None
            assert p.matched_by_id is None
