"""create scheduling batch, session and failure tables

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Shared by three tables, so created once up front.
    timetable_kind = postgresql.ENUM("class_timetable", "exam_timetable", name="timetable_kind", create_type=False)
    batch_status = postgresql.ENUM(
        "running",
        "completed",
        "cancelled",
        "aborted",
        name="batch_status",
        create_type=False,
    )
    failure_status = postgresql.ENUM(
        "pending",
        "resolved",
        "retried",
        "ignored",
        name="failure_status",
        create_type=False,
    )
    timetable_kind.create(op.get_bind(), checkfirst=True)
    batch_status.create(op.get_bind(), checkfirst=True)
    failure_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "scheduling_batches",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("kind", timetable_kind, nullable=False),
        sa.Column("status", batch_status, nullable=False, server_default="running"),
        sa.Column("retried_from_batch_id", sa.String(length=36), nullable=True),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("placed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("triggered_by", sa.String(length=100), nullable=True),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_scheduling_batches_semester_kind", "scheduling_batches", ["semester_id", "kind"])
    op.create_index("ix_scheduling_batches_retried_from_batch_id", "scheduling_batches", ["retried_from_batch_id"])

    op.create_table(
        "scheduled_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("kind", timetable_kind, nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("unit_code", sa.String(length=50), nullable=False),
        sa.Column("class_ids", sa.JSON(), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("school_id", sa.Integer(), nullable=True),
        sa.Column("day", sa.String(length=20), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=True),
        sa.Column("time_slot_id", sa.Integer(), nullable=True),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("venue_code", sa.String(length=50), nullable=False),
        sa.Column("lecturer_code", sa.String(length=50), nullable=True),
        sa.Column("student_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credit_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_scheduled_sessions_batch_id", "scheduled_sessions", ["batch_id"])
    op.create_index("ix_scheduled_sessions_lecturer_code", "scheduled_sessions", ["lecturer_code"])
    op.create_index("ix_scheduled_sessions_semester_kind", "scheduled_sessions", ["semester_id", "kind"])
    op.create_index("ix_scheduled_sessions_venue_day", "scheduled_sessions", ["venue_id", "day", "session_date"])

    op.create_table(
        "scheduling_failures",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("kind", timetable_kind, nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("school_id", sa.Integer(), nullable=True),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("unit_code", sa.String(length=50), nullable=False),
        sa.Column("unit_name", sa.String(length=255), nullable=False),
        sa.Column("class_ids", sa.JSON(), nullable=False),
        sa.Column("class_names", sa.Text(), nullable=False, server_default=""),
        sa.Column("student_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lecturer_code", sa.String(length=50), nullable=True),
        sa.Column("attempted_date", sa.Date(), nullable=True),
        sa.Column("attempted_day", sa.String(length=20), nullable=True),
        sa.Column("attempted_start_time", sa.String(length=5), nullable=True),
        sa.Column("attempted_end_time", sa.String(length=5), nullable=True),
        sa.Column("assigned_slot_number", sa.Integer(), nullable=True),
        sa.Column("attempted_venue_code", sa.String(length=50), nullable=True),
        sa.Column("failure_kind", sa.String(length=40), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=False),
        sa.Column("conflict_details", sa.JSON(), nullable=False),
        sa.Column("status", failure_status, nullable=False, server_default="pending"),
        sa.Column("retry_of_id", sa.String(length=36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=100), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_scheduling_failures_batch_id", "scheduling_failures", ["batch_id"])
    op.create_index("ix_scheduling_failures_failure_kind", "scheduling_failures", ["failure_kind"])
    op.create_index("ix_scheduling_failures_status", "scheduling_failures", ["status"])
    op.create_index("ix_scheduling_failures_batch_status", "scheduling_failures", ["batch_id", "status"])
    op.create_index(
        "ix_scheduling_failures_program_semester",
        "scheduling_failures",
        ["program_id", "semester_id"],
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=True),
        sa.Column("semester_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_semester_id", "activity_logs", ["semester_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_semester_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_scheduling_failures_program_semester", table_name="scheduling_failures")
    op.drop_index("ix_scheduling_failures_batch_status", table_name="scheduling_failures")
    op.drop_index("ix_scheduling_failures_status", table_name="scheduling_failures")
    op.drop_index("ix_scheduling_failures_failure_kind", table_name="scheduling_failures")
    op.drop_index("ix_scheduling_failures_batch_id", table_name="scheduling_failures")
    op.drop_table("scheduling_failures")
    op.drop_index("ix_scheduled_sessions_venue_day", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_semester_kind", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_lecturer_code", table_name="scheduled_sessions")
    op.drop_index("ix_scheduled_sessions_batch_id", table_name="scheduled_sessions")
    op.drop_table("scheduled_sessions")
    op.drop_index("ix_scheduling_batches_retried_from_batch_id", table_name="scheduling_batches")
    op.drop_index("ix_scheduling_batches_semester_kind", table_name="scheduling_batches")
    op.drop_table("scheduling_batches")
    sa.Enum(name="failure_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="batch_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="timetable_kind").drop(op.get_bind(), checkfirst=True)
