"""Shared pytest fixtures for Matchup tests."""
import os

# matchup.database builds its module-level engine from the environment at
# import time; point it somewhere harmless before anything imports it.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.matchup-test.db")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from matchup.database import Base, build_engine, build_session_factory
from matchup.models.participant import Participant

T0 = datetime(2026, 2, 14, 9, 0, tzinfo=timezone.utc)
REVEAL_DELAY = timedelta(hours=24)


class FrozenClock:
    """Callable clock the services can be handed instead of ``utcnow``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FirstChoice:
    """Deterministic random source: always the first candidate."""

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def first_choice():
    return FirstChoice()


@pytest.fixture
def clock():
    """Starts one hour after every default reveal time."""
    return FrozenClock(T0 + REVEAL_DELAY + timedelta(hours=1))


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'matchup.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def add_participant(session_factory):
    """Insert a participant with explicit timestamps.

    Each call signs up one second after the previous one so that signup
    order (and therefore matching order) follows call order.
    """
    counter = {"n": 0}

    async def _add(name, gender, group_key="acme", signup_time=None, **fields):
        if signup_time is None:
            signup_time = T0 + timedelta(seconds=counter["n"])
        counter["n"] += 1
        participant = Participant(
            id=uuid.uuid4(),
            name=name,
            contact_handle=fields.pop("contact_handle", "+44 7700 900123"),
            gender=gender,
            group_key=group_key,
            signup_time=signup_time,
            reveal_time=fields.pop("reveal_time", signup_time + REVEAL_DELAY),
            match_viewed=fields.pop("match_viewed", False),
            **fields,
        )
        async with session_factory() as session:
            session.add(participant)
            await session.commit()
        return participant

    return _add


@pytest.fixture
def fetch_group(session_factory):
    """Reload a group keyed by participant name."""

    async def _load(group_key="acme"):
        async with session_factory() as session:
            rows = (
                await session.execute(
                    select(Participant).where(Participant.group_key == group_key)
                )
            ).scalars().all()
        return {p.name: p for p in rows}

    return _load
