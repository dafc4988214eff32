from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

from matchup.services.participant_service import normalize_group_key

Gender = Literal["male", "female", "other"]


class ParticipantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    contact_handle: str = Field(min_length=3, max_length=32, description="WhatsApp number")
    gender: Gender
    group_name: str = Field(min_length=1, max_length=64)

    @field_validator("group_name")
    @classmethod
    def group_must_have_letters(cls, v: str) -> str:
        if not normalize_group_key(v):
            raise ValueError("Group name must contain at least one letter")
        return v


class ParticipantResponse(BaseModel):
    id: UUID
    name: str
    contact_handle: str
    gender: Gender
    group_key: str
    signup_time: datetime
    reveal_time: datetime
    match_viewed: bool

    model_config = {"from_attributes": True}


class MatchPartner(BaseModel):
    """What a participant gets to see about their match once revealed."""
    id: UUID
    name: str
    gender: Gender
    contact_handle: str
    whatsapp_link: str


class MatchDetailsResponse(BaseModel):
    participant_id: UUID
    state: Literal["pending", "assigned_hidden", "assigned_revealed", "viewed"]
    status: Literal["waiting", "revealed"]
    reveal_time: datetime
    matched_to: Optional[MatchPartner] = None
    matched_by: Optional[MatchPartner] = None


class InstantMatchResponse(BaseModel):
    matched: bool
    match: Optional[MatchPartner] = None
    message: str
