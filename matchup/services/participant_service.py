"""
Matchup — Participant store.

CRUD-only access to participant records plus the derived group view used by
the admin console.  Nothing in here writes match edges; that is the job of
``MatchingService``, ``RevealService`` and ``ShuffleService``.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchup.models.participant import GENDERS, Participant
from matchup.services.errors import ParticipantNotFoundError, storage_errors
from matchup.utils.clock import Clock, utcnow

logger = structlog.get_logger("matchup.participant_service")

_NON_LETTERS = re.compile(r"[^a-z]")
_NON_DIGITS = re.compile(r"\D")


def normalize_group_key(name: str) -> str:
    """Lowercase the group name and drop everything that is not a-z."""
    return _NON_LETTERS.sub("", (name or "").lower())


def whatsapp_link(contact_handle: str) -> str:
    return f"https://wa.me/{_NON_DIGITS.sub('', contact_handle)}"


def match_status(participant: Participant) -> str:
    """Admin status label: ``awaiting``, ``viewed`` or ``matched``."""
    if participant.matched_to_id is None and participant.matched_by_id is None:
        return "awaiting"
    if participant.match_viewed:
        return "viewed"
    return "matched"


@dataclass(frozen=True)
class GroupSummary:
    key: str
    member_count: int
    matched_count: int
    viewed_count: int
    awaiting_count: int

    @property
    def can_shuffle(self) -> bool:
        return self.matched_count > 0 and self.viewed_count < self.matched_count


class ParticipantService:
    """Registration and read access for participants and groups."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reveal_delay: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.reveal_delay = reveal_delay
        self.clock = clock

    async def register(
        self,
        name: str,
        contact_handle: str,
        gender: str,
        group_name: str,
    ) -> Participant:
        """Create a participant with ``reveal_time = signup_time + delay``.

        Raises
        ------
        ValueError
            If the gender is unknown or the group name has no letters.
        """
        if gender not in GENDERS:
            raise ValueError(f"Unknown gender {gender!r}; expected one of {GENDERS}")
        group_key = normalize_group_key(group_name)
        if not group_key:
            raise ValueError("Group name must contain at least one letter.")

        signup_time = self.clock()
        participant = Participant(
            id=uuid.uuid4(),
            name=name.strip(),
            contact_handle=contact_handle.strip(),
            gender=gender,
            group_key=group_key,
            signup_time=signup_time,
            reveal_time=signup_time + self.reveal_delay,
            match_viewed=False,
        )

        with storage_errors("register"):
            async with self.session_factory() as session:
                session.add(participant)
                await session.commit()

        logger.info(
            "participant_registered",
            participant_id=str(participant.id),
            group_key=group_key,
            reveal_time=participant.reveal_time.isoformat(),
        )
        return participant

    async def get(self, participant_id: uuid.UUID) -> Participant:
        with storage_errors("get_participant"):
            async with self.session_factory() as session:
                participant = await session.get(Participant, participant_id)
        if participant is None:
            raise ParticipantNotFoundError(participant_id)
        return participant

    async def list_group(self, group_key: str) -> list[Participant]:
        """Members of a group in signup order; unknown groups are empty."""
        stmt = (
            select(Participant)
            .where(Participant.group_key == normalize_group_key(group_key))
            .order_by(Participant.signup_time, Participant.id)
        )
        with storage_errors("list_group"):
            async with self.session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())

    async def names_by_id(self, ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not ids:
            return {}
        stmt = select(Participant.id, Participant.name).where(Participant.id.in_(ids))
        with storage_errors("names_by_id"):
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()
        return {row.id: row.name for row in rows}

    async def list_groups(self, group_key: Optional[str] = None) -> list[GroupSummary]:
        """Summaries for every group that currently has members, ordered by
        size (largest first) then key."""
        stmt = select(
            Participant.group_key,
            Participant.matched_to_id,
            Participant.matched_by_id,
            Participant.match_viewed,
        )
        if group_key is not None:
            stmt = stmt.where(Participant.group_key == normalize_group_key(group_key))

        with storage_errors("list_groups"):
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()

        counts: dict[str, list[int]] = {}
        for row in rows:
            bucket = counts.setdefault(row.group_key, [0, 0, 0, 0])
            bucket[0] += 1
            if row.matched_to_id is not None:
                bucket[1] += 1
            if row.match_viewed:
                bucket[2] += 1
            if row.matched_to_id is None and row.matched_by_id is None:
                bucket[3] += 1

        summaries = [
            GroupSummary(
                key=key,
                member_count=members,
                matched_count=matched,
                viewed_count=viewed,
                awaiting_count=awaiting,
            )
            for key, (members, matched, viewed, awaiting) in counts.items()
        ]
        summaries.sort(key=lambda s: (-s.member_count, s.key))
        return summaries
