"""Nudges table.

Revision ID: 001
Revises:
Create Date: 2026-10-19

One row per (user, task) nudge. A row is pending while triggered_at is
NULL; canceling deletes it.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "nudges",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("delivery_time", sa.DateTime(), nullable=False),
        sa.Column("triggered_at", sa.DateTime(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "task_id", name="uq_nudges_user_task"),
        sa.CheckConstraint(
            "(triggered_at IS NULL) = (message IS NULL)",
            name="ck_nudges_triggered_message",
        ),
    )
    # Pending range scans: ready_for_user, ready_since, list ordering
    op.create_index(
        "ix_nudges_user_delivery", "nudges", ["user_id", "delivery_time"]
    )
    # Feed cursor scans; unique so per-user trigger stamps never tie
    op.create_index(
        "ix_nudges_user_triggered",
        "nudges",
        ["user_id", "triggered_at"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_nudges_user_triggered", table_name="nudges")
    op.drop_index("ix_nudges_user_delivery", table_name="nudges")
    op.drop_table("nudges")
