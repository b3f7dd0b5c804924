"""create catalog tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    enrollment_status = sa.Enum("enrolled", "dropped", "completed", name="enrollment_status")
    venue_type = sa.Enum("classroom", "examroom", name="venue_type")
    learning_mode = sa.Enum("physical", "online", name="learning_mode")

    op.create_table(
        "semesters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("intake_type", sa.String(length=50), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("school_code", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_semesters_school_code", "semesters", ["school_code"])

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("credit_hours", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("school_id", sa.Integer(), nullable=True),
    )
    op.create_index("ix_units_code", "units", ["code"])
    op.create_index("ix_units_program_id", "units", ["program_id"])
    op.create_index("ix_units_school_id", "units", ["school_id"])

    op.create_table(
        "school_classes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("section", sa.String(length=50), nullable=True),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("school_id", sa.Integer(), nullable=True),
    )
    op.create_index("ix_school_classes_semester_id", "school_classes", ["semester_id"])
    op.create_index("ix_school_classes_program_id", "school_classes", ["program_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_code", sa.String(length=50), nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("status", enrollment_status, nullable=False, server_default="enrolled"),
        sa.UniqueConstraint("student_code", "unit_id", "semester_id", name="uq_enrollments_student_unit_semester"),
    )
    op.create_index("ix_enrollments_student_code", "enrollments", ["student_code"])
    op.create_index("ix_enrollments_class_id", "enrollments", ["class_id"])
    op.create_index("ix_enrollments_unit_id", "enrollments", ["unit_id"])
    op.create_index("ix_enrollments_semester_id", "enrollments", ["semester_id"])

    op.create_table(
        "unit_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=True),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("lecturer_code", sa.String(length=50), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("unit_id", "semester_id", "class_id", name="uq_unit_assignments_unit_semester_class"),
    )
    op.create_index("ix_unit_assignments_unit_id", "unit_assignments", ["unit_id"])
    op.create_index("ix_unit_assignments_lecturer_semester", "unit_assignments", ["lecturer_code", "semester_id"])
    op.create_index("ix_unit_assignments_semester_active", "unit_assignments", ["semester_id", "is_active"])

    op.create_table(
        "lecturer_workload_limits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("lecturer_code", sa.String(length=50), nullable=False),
        sa.Column("semester_id", sa.Integer(), nullable=False),
        sa.Column("max_units", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("max_credit_hours", sa.Integer(), nullable=False, server_default="18"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "lecturer_code",
            "semester_id",
            name="uq_lecturer_workload_limits_lecturer_semester",
        ),
    )
    op.create_index("ix_lecturer_workload_limits_lecturer_code", "lecturer_workload_limits", ["lecturer_code"])

    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("type", venue_type, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_venues_code", "venues", ["code"], unique=True)

    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("day", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("status", learning_mode, nullable=False, server_default="physical"),
    )


def downgrade() -> None:
    op.drop_table("time_slots")
    op.drop_index("ix_venues_code", table_name="venues")
    op.drop_table("venues")
    op.drop_index("ix_lecturer_workload_limits_lecturer_code", table_name="lecturer_workload_limits")
    op.drop_table("lecturer_workload_limits")
    op.drop_index("ix_unit_assignments_semester_active", table_name="unit_assignments")
    op.drop_index("ix_unit_assignments_lecturer_semester", table_name="unit_assignments")
    op.drop_index("ix_unit_assignments_unit_id", table_name="unit_assignments")
    op.drop_table("unit_assignments")
    op.drop_index("ix_enrollments_semester_id", table_name="enrollments")
    op.drop_index("ix_enrollments_unit_id", table_name="enrollments")
    op.drop_index("ix_enrollments_class_id", table_name="enrollments")
    op.drop_index("ix_enrollments_student_code", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_school_classes_program_id", table_name="school_classes")
    op.drop_index("ix_school_classes_semester_id", table_name="school_classes")
    op.drop_table("school_classes")
    op.drop_index("ix_units_school_id", table_name="units")
    op.drop_index("ix_units_program_id", table_name="units")
    op.drop_index("ix_units_code", table_name="units")
    op.drop_table("units")
    op.drop_index("ix_semesters_school_code", table_name="semesters")
    op.drop_table("semesters")
    sa.Enum(name="learning_mode").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="venue_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="enrollment_status").drop(op.get_bind(), checkfirst=True)
