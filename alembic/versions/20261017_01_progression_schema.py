"""Progression snapshot and audit trail schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_01_progression_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "progressions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("total_experience", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("experience", sa.JSON(), nullable=False),
        sa.Column("hearts", sa.JSON(), nullable=False),
        sa.Column("currency", sa.JSON(), nullable=False),
        sa.Column("streak", sa.JSON(), nullable=False),
        sa.Column("inventory", sa.JSON(), nullable=False),
        sa.Column("active_boosts", sa.JSON(), nullable=False),
        sa.Column("achievements", sa.JSON(), nullable=False),
        sa.Column("counters", sa.JSON(), nullable=False),
        sa.Column("snapshot_created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("snapshot_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_progressions_account_id", "progressions", ["account_id"], unique=True)

    op.create_table(
        "progression_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "progression_id",
            sa.String(length=36),
            sa.ForeignKey("progressions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_progression_audit_events_account", "progression_audit_events", ["account_id"])


def downgrade() -> None:
    op.drop_index("ix_progression_audit_events_account", table_name="progression_audit_events")
    op.drop_table("progression_audit_events")
    op.drop_index("ix_progressions_account_id", table_name="progressions")
    op.drop_table("progressions")
