"""
Matchup — Matching engine.

Assigns a ``matched_to`` edge to every eligible participant of a group using
the tiered assignment policy.  Each participant is assigned in its own
transaction:

  1. take the group lock (see ``matchup.services.locking``)
  2. re-read the whole group inside that transaction
  3. skip the participant if it is already assigned (or not yet due)
  4. pick a candidate, compare-and-set ``matched_to_id`` on the participant
     and write ``matched_by_id`` on the candidate
  5. commit

A failure while assigning one participant rolls back only that
participant's edge; earlier commits in the same ``run_matching`` call stand.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime
from typing import Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchup.models.participant import Participant
from matchup.services.assignment_policy import RandomSource, select_candidate
from matchup.services.errors import ParticipantNotFoundError, storage_errors
from matchup.services.locking import group_lock
from matchup.services.participant_service import normalize_group_key
from matchup.utils.clock import Clock, as_utc, utcnow

logger = structlog.get_logger("matchup.matching_service")


async def load_group(session: AsyncSession, group_key: str) -> list[Participant]:
    """All members of ``group_key`` in signup order."""
    stmt = (
        select(Participant)
        .where(Participant.group_key == group_key)
        .order_by(Participant.signup_time, Participant.id)
    )
    return list((await session.execute(stmt)).scalars().all())


class MatchingService:
    """Group matching engine.

    Dependencies are injected at construction so that the service can be
    tested against a throwaway database with a seeded random source and a
    frozen clock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rng: Optional[RandomSource] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.rng: RandomSource = rng if rng is not None else random.Random()
        self.clock = clock

    # ── Public API ────────────────────────────────────────────────────────

    async def run_matching(self, group_key: str) -> int:
        """Assign every unassigned participant of the group whose reveal
        time has passed.

        Returns
        -------
        int
            Number of participants newly assigned by this call.  Unknown or
            empty groups, and groups where everybody is already assigned,
            yield ``0``.
        """
        group_key = normalize_group_key(group_key)
        log = logger.bind(group_key=group_key)
        now = self.clock()

        with storage_errors("run_matching"):
            async with self.session_factory() as session:
                stmt = (
                    select(Participant.id)
                    .where(
                        Participant.group_key == group_key,
                        Participant.matched_to_id.is_(None),
                        Participant.reveal_time <= now,
                    )
                    .order_by(Participant.signup_time, Participant.id)
                )
                due_ids: Sequence[uuid.UUID] = (await session.execute(stmt)).scalars().all()

        if not due_ids:
            log.info("run_matching_nothing_due")
            return 0

        assigned = 0
        for participant_id in due_ids:
            counterpart = await self._assign_one(
                participant_id, group_key, now=now, enforce_reveal=True
            )
            if counterpart is not None:
                assigned += 1

        log.info("run_matching_complete", due=len(due_ids), assigned=assigned)
        return assigned

    async def try_instant_match(self, participant_id: uuid.UUID) -> Optional[Participant]:
        """Assign ``participant_id`` immediately, ignoring its reveal time.

        Returns the counterpart, or ``None`` when the group has nobody else
        in it.  A participant that is already assigned gets its existing
        counterpart back; nothing is rewritten.
        """
        log = logger.bind(participant_id=str(participant_id))
        participant = await self._get(participant_id)

        if participant.matched_to_id is None:
            counterpart = await self._assign_one(
                participant.id,
                participant.group_key,
                now=self.clock(),
                enforce_reveal=False,
            )
            if counterpart is not None:
                log.info("instant_match_assigned", matched_to=str(counterpart.id))
                return counterpart
            # Either no candidate, or a concurrent writer won the race.
            participant = await self._get(participant_id)

        if participant.matched_to_id is None:
            log.info("instant_match_no_candidate", group_key=participant.group_key)
            return None

        log.info("instant_match_existing", matched_to=str(participant.matched_to_id))
        return await self._get_optional(participant.matched_to_id)

    # ── Assignment step ───────────────────────────────────────────────────

    async def _assign_one(
        self,
        participant_id: uuid.UUID,
        group_key: str,
        *,
        now: datetime,
        enforce_reveal: bool,
    ) -> Optional[Participant]:
        """Assign a single participant under the group lock.

        Returns the counterpart if an edge was written by this call and
        ``None`` for every kind of no-op (already assigned, not yet due,
        no candidate, lost compare-and-set).
        """
        log = logger.bind(participant_id=str(participant_id), group_key=group_key)

        with storage_errors("assign"):
            async with self.session_factory() as session:
                async with group_lock(session, group_key):
                    members = await load_group(session, group_key)
                    participant = next((m for m in members if m.id == participant_id), None)

                    if participant is None or participant.matched_to_id is not None:
                        log.debug("assign_skipped_already_assigned")
                        return None
                    if enforce_reveal and as_utc(participant.reveal_time) > as_utc(now):
                        log.debug("assign_skipped_not_due")
                        return None

                    selection = select_candidate(participant, members, self.rng)
                    if selection is None:
                        log.info("assign_no_candidate", group_size=len(members))
                        return None

                    candidate = selection.candidate
                    claimed = await session.execute(
                        update(Participant)
                        .where(
                            Participant.id == participant.id,
                            Participant.matched_to_id.is_(None),
                        )
                        .values(matched_to_id=candidate.id, matched_at=now)
                    )
                    if claimed.rowcount != 1:
                        await session.rollback()
                        log.info("assignment_conflict")
                        return None

                    await session.execute(
                        update(Participant)
                        .where(Participant.id == candidate.id)
                        .values(matched_by_id=participant.id)
                    )
                    await session.commit()

        log.info(
            "participant_assigned",
            matched_to=str(candidate.id),
            tier=int(selection.tier),
        )
        return candidate

    # ── Private helpers ──────────────────────────────────────────────────

    async def _get_optional(self, participant_id: uuid.UUID) -> Optional[Participant]:
        with storage_errors("get_participant"):
            async with self.session_factory() as session:
                return await session.get(Participant, participant_id)

    async def _get(self, participant_id: uuid.UUID) -> Participant:
        participant = await self._get_optional(participant_id)
        if participant is None:
            raise ParticipantNotFoundError(participant_id)
        return participant
