from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional


class GroupSummaryResponse(BaseModel):
    key: str
    member_count: int
    matched_count: int
    viewed_count: int
    awaiting_count: int
    can_shuffle: bool

    model_config = {"from_attributes": True}


class GroupMemberResponse(BaseModel):
    id: UUID
    name: str
    contact_handle: str
    gender: str
    signup_time: datetime
    reveal_time: datetime
    status: Literal["awaiting", "matched", "viewed"]
    matched_to_id: Optional[UUID] = None
    matched_to_name: Optional[str] = None
    matched_by_id: Optional[UUID] = None
    matched_by_name: Optional[str] = None


class GroupMatchResponse(BaseModel):
    group_key: str
    assigned: int


class GroupShuffleResponse(BaseModel):
    group_key: str
    reassigned: int
