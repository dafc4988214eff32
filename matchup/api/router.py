"""
Matchup — Main API Router

Aggregates all sub-routers under a single prefix so that ``matchup.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from matchup.api import groups, participants

router = APIRouter()

router.include_router(participants.router, prefix="/participants", tags=["Participants"])
router.include_router(groups.router, prefix="/groups", tags=["Groups"])
