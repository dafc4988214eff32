"""
Matchup — Shuffle coordinator.

Re-randomises the assignments of every group member who has not viewed their
match yet.  The whole shuffle is a single transaction under the group lock:
either every cleared edge is reassigned or nothing changes.

Members that have viewed keep their ``matched_to_id`` untouched.  Their
``matched_by_id`` may change, because it only mirrors whoever currently
points at them.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchup.models.participant import Participant
from matchup.services.assignment_policy import RandomSource, select_candidate
from matchup.services.errors import storage_errors
from matchup.services.locking import group_lock
from matchup.services.matching_service import load_group
from matchup.services.participant_service import normalize_group_key
from matchup.utils.clock import Clock, as_utc, utcnow

logger = structlog.get_logger("matchup.shuffle_service")

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def repair_matched_by(members: Sequence[Participant]) -> None:
    """Point every ``matched_by_id`` at a member that still targets it.

    The current value is kept when it is still valid; otherwise the most
    recent remaining claimer wins, or the pointer is cleared.
    """
    claimers: dict[uuid.UUID, list[Participant]] = {}
    for member in members:
        if member.matched_to_id is not None:
            claimers.setdefault(member.matched_to_id, []).append(member)

    for member in members:
        pointing = claimers.get(member.id, [])
        if any(c.id == member.matched_by_id for c in pointing):
            continue
        if pointing:
            latest = max(
                pointing,
                key=lambda c: as_utc(c.matched_at) if c.matched_at is not None else _NEVER,
            )
            member.matched_by_id = latest.id
        else:
            member.matched_by_id = None


class ShuffleService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rng: Optional[RandomSource] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.rng: RandomSource = rng if rng is not None else random.Random()
        self.clock = clock

    async def shuffle(self, group_key: str) -> int:
        """Clear and reassign every unviewed member of ``group_key``.

        Returns
        -------
        int
            Members that received a new ``matched_to`` edge.  Members left
            without a candidate stay pending and are not counted.
        """
        group_key = normalize_group_key(group_key)
        log = logger.bind(group_key=group_key)
        now = self.clock()

        with storage_errors("shuffle"):
            async with self.session_factory() as session:
                async with group_lock(session, group_key):
                    members = await load_group(session, group_key)
                    unviewed = [m for m in members if not m.match_viewed]
                    if not unviewed:
                        log.info("shuffle_nothing_to_do", group_size=len(members))
                        return 0

                    for member in unviewed:
                        member.matched_to_id = None
                        member.matched_at = None
                    repair_matched_by(members)

                    reassigned = 0
                    for member in unviewed:
                        selection = select_candidate(member, members, self.rng)
                        if selection is None:
                            log.info("shuffle_no_candidate", participant_id=str(member.id))
                            continue
                        candidate = selection.candidate
                        member.matched_to_id = candidate.id
                        member.matched_at = now
                        candidate.matched_by_id = member.id
                        reassigned += 1
                        log.debug(
                            "shuffle_reassigned",
                            participant_id=str(member.id),
                            matched_to=str(candidate.id),
                            tier=int(selection.tier),
                        )

                    await session.commit()

        log.info(
            "shuffle_complete",
            group_size=len(members),
            cleared=len(unviewed),
            reassigned=reassigned,
        )
        return reassigned
