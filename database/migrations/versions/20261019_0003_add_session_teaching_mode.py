"""add class session numbering and teaching mode

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0003"
down_revision = "20261019_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "scheduled_sessions",
        sa.Column("session_number", sa.Integer(), nullable=False, server_default="1"),
    )
    op.add_column(
        "scheduled_sessions",
        sa.Column("teaching_mode", sa.String(length=20), nullable=False, server_default="physical"),
    )
    # Online sessions are not held in a venue.
    op.alter_column("scheduled_sessions", "venue_id", existing_type=sa.Integer(), nullable=True)
    op.add_column(
        "scheduling_failures",
        sa.Column("session_number", sa.Integer(), nullable=False, server_default="1"),
    )


def downgrade() -> None:
    op.drop_column("scheduling_failures", "session_number")
    op.execute("DELETE FROM scheduled_sessions WHERE venue_id IS NULL")
    op.alter_column("scheduled_sessions", "venue_id", existing_type=sa.Integer(), nullable=False)
    op.drop_column("scheduled_sessions", "teaching_mode")
    op.drop_column("scheduled_sessions", "session_number")
