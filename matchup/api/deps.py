"""
Matchup — Service providers for FastAPI dependency injection.

Services are built lazily once per process on top of the shared session
factory.  Tests swap them out through ``app.dependency_overrides``.
"""

from __future__ import annotations

import random

from matchup.config import get_settings
from matchup.database import async_session_factory
from matchup.services.matching_service import MatchingService
from matchup.services.participant_service import ParticipantService
from matchup.services.reveal_service import RevealService
from matchup.services.shuffle_service import ShuffleService

# ── Service singletons ────────────────────────────────────────────────────────

_rng: random.Random | None = None
_participant_service: ParticipantService | None = None
_matching_service: MatchingService | None = None
_reveal_service: RevealService | None = None
_shuffle_service: ShuffleService | None = None


def _get_rng() -> random.Random:
    global _rng
    if _rng is None:
        _rng = random.Random(get_settings().MATCH_RANDOM_SEED)
    return _rng


def get_participant_service() -> ParticipantService:
    global _participant_service
    if _participant_service is None:
        _participant_service = ParticipantService(
            async_session_factory,
            reveal_delay=get_settings().reveal_delay,
        )
    return _participant_service


def get_matching_service() -> MatchingService:
    global _matching_service
    if _matching_service is None:
        _matching_service = MatchingService(async_session_factory, rng=_get_rng())
    return _matching_service


def get_reveal_service() -> RevealService:
    global _reveal_service
    if _reveal_service is None:
        _reveal_service = RevealService(async_session_factory)
    return _reveal_service


def get_shuffle_service() -> ShuffleService:
    global _shuffle_service
    if _shuffle_service is None:
        _shuffle_service = ShuffleService(async_session_factory, rng=_get_rng())
    return _shuffle_service
