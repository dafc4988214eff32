"""
Matchup — Participants API

Participant-facing triggers: signup, match details, countdown completion and
the instant-match button.  Every call names the participant explicitly; the
service keeps no notion of a logged-in user.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from matchup.api.deps import (
    get_matching_service,
    get_participant_service,
    get_reveal_service,
)
from matchup.models.participant import Participant
from matchup.schemas.participant import (
    InstantMatchResponse,
    MatchDetailsResponse,
    MatchPartner,
    ParticipantCreate,
    ParticipantResponse,
)
from matchup.services.errors import ParticipantNotFoundError, StorageUnavailableError
from matchup.services.matching_service import MatchingService
from matchup.services.participant_service import ParticipantService, whatsapp_link
from matchup.services.reveal_service import MatchDetails, RevealService

logger = structlog.get_logger("matchup.api.participants")

router = APIRouter()


def _partner(participant: Optional[Participant]) -> Optional[MatchPartner]:
    if participant is None:
        return None
    return MatchPartner(
        id=participant.id,
        name=participant.name,
        gender=participant.gender,
        contact_handle=participant.contact_handle,
        whatsapp_link=whatsapp_link(participant.contact_handle),
    )


def _details_response(details: MatchDetails) -> MatchDetailsResponse:
    """Counterparts stay hidden until the reveal gate opens."""
    visible = details.state.is_visible
    return MatchDetailsResponse(
        participant_id=details.participant.id,
        state=details.state.value,
        status="revealed" if visible else "waiting",
        reveal_time=details.participant.reveal_time,
        matched_to=_partner(details.matched_to) if visible else None,
        matched_by=_partner(details.matched_by) if visible else None,
    )


def _not_found(exc: ParticipantNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Sign up
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a participant into a group",
)
async def register_participant(
    payload: ParticipantCreate,
    participants: ParticipantService = Depends(get_participant_service),
    matching: MatchingService = Depends(get_matching_service),
) -> Participant:
    """Create the participant, then give the group's due members a match.

    The matching pass is a best-effort trigger: the registration stands even
    if it fails, and the countdown-complete trigger will retry it.
    """
    participant = await participants.register(
        name=payload.name,
        contact_handle=payload.contact_handle,
        gender=payload.gender,
        group_name=payload.group_name,
    )

    try:
        await matching.run_matching(participant.group_key)
    except StorageUnavailableError:
        logger.warning(
            "signup_matching_deferred",
            participant_id=str(participant.id),
            group_key=participant.group_key,
        )

    return participant


# ──────────────────────────────────────────────────────────────────────────────
# GET /{participant_id} — Participant record
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{participant_id}",
    response_model=ParticipantResponse,
    summary="Get participant by ID",
)
async def get_participant(
    participant_id: uuid.UUID,
    participants: ParticipantService = Depends(get_participant_service),
) -> Participant:
    try:
        return await participants.get(participant_id)
    except ParticipantNotFoundError as exc:
        raise _not_found(exc) from exc


# ──────────────────────────────────────────────────────────────────────────────
# GET /{participant_id}/match — Match details (marks viewed once revealed)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{participant_id}/match",
    response_model=MatchDetailsResponse,
    summary="Get the participant's match",
)
async def get_match(
    participant_id: uuid.UUID,
    reveal: RevealService = Depends(get_reveal_service),
) -> MatchDetailsResponse:
    try:
        details = await reveal.get_match_details(participant_id)
    except ParticipantNotFoundError as exc:
        raise _not_found(exc) from exc
    return _details_response(details)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{participant_id}/countdown-complete — Countdown finished on the client
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{participant_id}/countdown-complete",
    response_model=MatchDetailsResponse,
    summary="Run matching for the participant's group, then return the match",
)
async def countdown_complete(
    participant_id: uuid.UUID,
    participants: ParticipantService = Depends(get_participant_service),
    matching: MatchingService = Depends(get_matching_service),
    reveal: RevealService = Depends(get_reveal_service),
) -> MatchDetailsResponse:
    log = logger.bind(participant_id=str(participant_id))
    try:
        participant = await participants.get(participant_id)
        assigned = await matching.run_matching(participant.group_key)
        details = await reveal.get_match_details(participant_id)
    except ParticipantNotFoundError as exc:
        raise _not_found(exc) from exc

    log.info("countdown_complete", assigned=assigned, state=details.state.value)
    return _details_response(details)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{participant_id}/instant-match — Skip the wait for the assignment
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{participant_id}/instant-match",
    response_model=InstantMatchResponse,
    summary="Try to get a match right now",
)
async def instant_match(
    participant_id: uuid.UUID,
    matching: MatchingService = Depends(get_matching_service),
) -> InstantMatchResponse:
    """The counterpart is returned directly to the caller.  The stored
    assignment still follows the normal reveal gate."""
    try:
        counterpart = await matching.try_instant_match(participant_id)
    except ParticipantNotFoundError as exc:
        raise _not_found(exc) from exc

    if counterpart is None:
        return InstantMatchResponse(
            matched=False,
            message=(
                "There are no available matches in your group right now. You will "
                "be matched as soon as there is a suitable user available for you."
            ),
        )
    return InstantMatchResponse(
        matched=True,
        match=_partner(counterpart),
        message=f"You've been instantly matched with {counterpart.name}!",
    )
