"""
Matchup — Reveal gate.

Per-participant visibility state, derived lazily from the stored record and
the clock; there is no background timer.

    pending ──assign──▶ assigned_hidden ──clock passes reveal_time──▶
    assigned_revealed ──owner reads match──▶ viewed

``viewed`` is the only transition that writes.  It is what protects an
assignment from ``ShuffleService``.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchup.models.participant import Participant
from matchup.services.errors import ParticipantNotFoundError, storage_errors
from matchup.services.locking import group_lock
from matchup.utils.clock import Clock, as_utc, utcnow

logger = structlog.get_logger("matchup.reveal_service")


class RevealState(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED_HIDDEN = "assigned_hidden"
    ASSIGNED_REVEALED = "assigned_revealed"
    VIEWED = "viewed"

    @property
    def is_visible(self) -> bool:
        return self in (RevealState.ASSIGNED_REVEALED, RevealState.VIEWED)


def reveal_state(participant: Participant, now: datetime) -> RevealState:
    if participant.matched_to_id is None:
        return RevealState.PENDING
    if participant.match_viewed:
        return RevealState.VIEWED
    if as_utc(now) < as_utc(participant.reveal_time):
        return RevealState.ASSIGNED_HIDDEN
    return RevealState.ASSIGNED_REVEALED


@dataclass(frozen=True)
class MatchDetails:
    participant: Participant
    matched_to: Optional[Participant]
    matched_by: Optional[Participant]
    state: RevealState


class RevealService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def get_match_details(self, participant_id: uuid.UUID) -> MatchDetails:
        """Return both ends of the participant's edges.

        Reading an assignment after its reveal time marks it viewed.  Before
        the reveal time the read has no side effect.
        """
        now = self.clock()
        log = logger.bind(participant_id=str(participant_id))

        with storage_errors("get_match_details"):
            async with self.session_factory() as session:
                participant = await session.get(Participant, participant_id)
                if participant is None:
                    raise ParticipantNotFoundError(participant_id)

                state = reveal_state(participant, now)
                if state is RevealState.ASSIGNED_REVEALED:
                    # Serialise with shuffles so the edge being locked in is
                    # the one the owner is about to see.
                    async with group_lock(session, participant.group_key):
                        await session.refresh(participant)
                        if reveal_state(participant, now) is RevealState.ASSIGNED_REVEALED:
                            await session.execute(
                                update(Participant)
                                .where(
                                    Participant.id == participant.id,
                                    Participant.matched_to_id.is_not(None),
                                    Participant.match_viewed.is_(False),
                                )
                                .values(match_viewed=True, viewed_at=now)
                            )
                            log.info(
                                "match_viewed",
                                matched_to=str(participant.matched_to_id),
                            )
                        await session.commit()
                    state = reveal_state(participant, now)

                matched_to = (
                    await session.get(Participant, participant.matched_to_id)
                    if participant.matched_to_id is not None
                    else None
                )
                matched_by = (
                    await session.get(Participant, participant.matched_by_id)
                    if participant.matched_by_id is not None
                    else None
                )

        log.debug("match_details_read", state=state.value)
        return MatchDetails(
            participant=participant,
            matched_to=matched_to,
            matched_by=matched_by,
            state=state,
        )
