"""
Matchup — Groups API

Operator console: group summaries, member listing, and the Match / Shuffle
actions.  Unknown groups are simply empty; they never produce a 404.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from matchup.api.deps import (
    get_matching_service,
    get_participant_service,
    get_shuffle_service,
)
from matchup.schemas.group import (
    GroupMatchResponse,
    GroupMemberResponse,
    GroupShuffleResponse,
    GroupSummaryResponse,
)
from matchup.services.matching_service import MatchingService
from matchup.services.participant_service import (
    ParticipantService,
    match_status,
    normalize_group_key,
)
from matchup.services.shuffle_service import ShuffleService

logger = structlog.get_logger("matchup.api.groups")

router = APIRouter()


@router.get(
    "/",
    response_model=list[GroupSummaryResponse],
    summary="List groups with match statistics",
)
async def list_groups(
    participants: ParticipantService = Depends(get_participant_service),
) -> list[GroupSummaryResponse]:
    summaries = await participants.list_groups()
    return [
        GroupSummaryResponse(
            key=s.key,
            member_count=s.member_count,
            matched_count=s.matched_count,
            viewed_count=s.viewed_count,
            awaiting_count=s.awaiting_count,
            can_shuffle=s.can_shuffle,
        )
        for s in summaries
    ]


@router.get(
    "/{group_key}/participants",
    response_model=list[GroupMemberResponse],
    summary="List a group's members with their match status",
)
async def list_group_participants(
    group_key: str,
    participants: ParticipantService = Depends(get_participant_service),
) -> list[GroupMemberResponse]:
    members = await participants.list_group(group_key)

    # Edges may point outside the listing only if data was edited by hand.
    names = {m.id: m.name for m in members}
    dangling = {
        ref
        for m in members
        for ref in (m.matched_to_id, m.matched_by_id)
        if ref is not None and ref not in names
    }
    names.update(await participants.names_by_id(dangling))

    return [
        GroupMemberResponse(
            id=m.id,
            name=m.name,
            contact_handle=m.contact_handle,
            gender=m.gender,
            signup_time=m.signup_time,
            reveal_time=m.reveal_time,
            status=match_status(m),
            matched_to_id=m.matched_to_id,
            matched_to_name=names.get(m.matched_to_id) if m.matched_to_id else None,
            matched_by_id=m.matched_by_id,
            matched_by_name=names.get(m.matched_by_id) if m.matched_by_id else None,
        )
        for m in members
    ]


@router.post(
    "/{group_key}/match",
    response_model=GroupMatchResponse,
    summary="Assign every due, unassigned member of the group",
)
async def match_group(
    group_key: str,
    matching: MatchingService = Depends(get_matching_service),
) -> GroupMatchResponse:
    assigned = await matching.run_matching(group_key)
    logger.info("admin_match", group_key=normalize_group_key(group_key), assigned=assigned)
    return GroupMatchResponse(group_key=normalize_group_key(group_key), assigned=assigned)


@router.post(
    "/{group_key}/shuffle",
    response_model=GroupShuffleResponse,
    summary="Reshuffle matches of members who have not viewed theirs",
)
async def shuffle_group(
    group_key: str,
    shuffler: ShuffleService = Depends(get_shuffle_service),
) -> GroupShuffleResponse:
    reassigned = await shuffler.shuffle(group_key)
    logger.info("admin_shuffle", group_key=normalize_group_key(group_key), reassigned=reassigned)
    return GroupShuffleResponse(group_key=normalize_group_key(group_key), reassigned=reassigned)
