"""
Matchup — Participant model.

A participant row carries both ends of the match graph: ``matched_to_id`` is
the outgoing edge written by the matching engine, ``matched_by_id`` the
inverse pointer on the target.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from matchup.database import Base

GENDERS: tuple[str, ...] = ("male", "female", "other")


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        CheckConstraint(
            "gender IN ('male', 'female', 'other')", name="ck_participant_gender"
        ),
        CheckConstraint(
            "matched_to_id IS NULL OR matched_to_id <> id",
            name="ck_participant_no_self_match",
        ),
        Index("idx_participants_group_signup", "group_key", "signup_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    contact_handle: Mapped[str] = mapped_column(
        String, nullable=False, comment="WhatsApp number as entered"
    )
    gender: Mapped[str] = mapped_column(String, nullable=False)
    group_key: Mapped[str] = mapped_column(String, index=True, nullable=False)
    signup_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    reveal_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # ── Match graph ────────────────────────────────────────────────
    matched_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    matched_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True,
    )
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    match_viewed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    viewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Participant {self.name!r} group={self.group_key!r} "
            f"matched_to={self.matched_to_id}>"
        )
