"""
Matchup — Assignment policy.

Pure selection of one match for a participant out of the rest of their group.
Tiers are tried in order and the first non-empty one wins:

  1. opposite gender and unclaimed
  2. any unclaimed candidate
  3. any candidate, collisions allowed
  4. nobody else in the group -> no match

"Unclaimed" means no member of the group currently points at the candidate
with ``matched_to_id``.  Selection inside the winning tier is uniform through
the injected random source, so a seeded ``random.Random`` makes outcomes
reproducible.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from matchup.models.participant import Participant

_OPPOSITE_GENDER: dict[str, str] = {
    "male": "female",
    "female": "male",
}


class RandomSource(Protocol):
    def choice(self, seq: Sequence[Participant]) -> Participant: ...


class Tier(enum.IntEnum):
    OPPOSITE_UNCLAIMED = 1
    UNCLAIMED = 2
    ANY = 3


@dataclass(frozen=True)
class Selection:
    candidate: Participant
    tier: Tier


def opposite_gender(gender: str) -> Optional[str]:
    """``other`` has no opposite."""
    return _OPPOSITE_GENDER.get(gender)


def claimed_ids(members: Sequence[Participant]) -> set[uuid.UUID]:
    return {m.matched_to_id for m in members if m.matched_to_id is not None}


def candidate_tiers(
    participant: Participant,
    candidates: Sequence[Participant],
) -> list[tuple[Tier, list[Participant]]]:
    """Return the three tiers for ``participant`` in preference order."""
    pool = [c for c in candidates if c.id != participant.id]
    claimed = claimed_ids(pool)
    unclaimed = [c for c in pool if c.id not in claimed]

    wanted = opposite_gender(participant.gender)
    opposite = [c for c in unclaimed if wanted is not None and c.gender == wanted]

    return [
        (Tier.OPPOSITE_UNCLAIMED, opposite),
        (Tier.UNCLAIMED, unclaimed),
        (Tier.ANY, pool),
    ]


def select_candidate(
    participant: Participant,
    candidates: Sequence[Participant],
    rng: RandomSource,
) -> Optional[Selection]:
    """Pick a match for ``participant`` or return ``None`` when the pool is
    empty.  ``candidates`` may include the participant; it is filtered out."""
    for tier, pool in candidate_tiers(participant, candidates):
        if pool:
            return Selection(candidate=rng.choice(pool), tier=tier)
    return None
