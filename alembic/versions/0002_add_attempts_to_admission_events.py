"""add attempts and last_error to admission_events

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-20 09:00:00.000000

This migration lets the relay job give up on events that keep failing:
1. attempts counts failed deliveries, last_error keeps the latest failure
2. The undispatched index is rebuilt on (attempts, created_at) to match the
   relay query, which serves fresh events before ones that already failed
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | Sequence[str] | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add delivery attempt tracking to the outbox."""
    op.add_column(
        "admission_events",
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
    )
    op.add_column(
        "admission_events",
        sa.Column("last_error", sa.Text(), nullable=True),
    )

    op.drop_index("ix_admission_events_undispatched", table_name="admission_events")
    op.create_index(
        "ix_admission_events_undispatched",
        "admission_events",
        ["attempts", "created_at"],
        postgresql_where=sa.text("dispatched_at IS NULL"),
    )


def downgrade() -> None:
    """Remove delivery attempt tracking from the outbox."""
    op.drop_index("ix_admission_events_undispatched", table_name="admission_events")
    op.create_index(
        "ix_admission_events_undispatched",
        "admission_events",
        ["created_at"],
        postgresql_where=sa.text("dispatched_at IS NULL"),
    )

    op.drop_column("admission_events", "last_error")
    op.drop_column("admission_events", "attempts")
