"""Initial schema — participants table.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── participants ────────────────────────────────────────────────
    op.create_table(
        "participants",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column(
            "contact_handle",
            sa.String,
            nullable=False,
            comment="WhatsApp number as entered",
        ),
        sa.Column("gender", sa.String, nullable=False),
        sa.Column("group_key", sa.String, nullable=False),
        sa.Column("signup_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reveal_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "matched_to_id",
            sa.Uuid,
            sa.ForeignKey("participants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "matched_by_id",
            sa.Uuid,
            sa.ForeignKey("participants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "match_viewed",
            sa.Boolean,
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "gender IN ('male', 'female', 'other')",
            name="ck_participant_gender",
        ),
        sa.CheckConstraint(
            "matched_to_id IS NULL OR matched_to_id <> id",
            name="ck_participant_no_self_match",
        ),
    )
    op.create_index("ix_participants_group_key", "participants", ["group_key"])
    op.create_index("ix_participants_matched_to_id", "participants", ["matched_to_id"])
    op.create_index(
        "idx_participants_group_signup",
        "participants",
        ["group_key", "signup_time"],
    )


def downgrade() -> None:
    op.drop_index("idx_participants_group_signup", table_name="participants")
    op.drop_index("ix_participants_matched_to_id", table_name="participants")
    op.drop_index("ix_participants_group_key", table_name="participants")
    op.drop_table("participants")
