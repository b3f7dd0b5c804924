import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.scheduling_batch import TimetableKind


class FailureStatus(str, Enum):
    pending = "pending"
    resolved = "resolved"
    retried = "retried"
    ignored = "ignored"


class SchedulingFailure(Base):
    """One item a batch could not place, tagged by timetable kind."""

    __tablename__ = "scheduling_failures"
    __table_args__ = (
        Index("ix_scheduling_failures_batch_status", "batch_id", "status"),
        Index("ix_scheduling_failures_program_semester", "program_id", "semester_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[TimetableKind] = mapped_column(SAEnum(TimetableKind, name="timetable_kind"), nullable=False)
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    school_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_code: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_name: Mapped[str] = mapped_column(String(255), nullable=False)
    class_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    class_names: Mapped[str] = mapped_column(Text, nullable=False, default="")
    session_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    student_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lecturer_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    attempted_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    attempted_day: Mapped[str | None] = mapped_column(String(20), nullable=True)
    attempted_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    attempted_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    assigned_slot_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attempted_venue_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    failure_kind: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    failure_reason: Mapped[str] = mapped_column(Text, nullable=False)
    conflict_details: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[FailureStatus] = mapped_column(
        SAEnum(FailureStatus, name="failure_status"),
        nullable=False,
        default=FailureStatus.pending,
        index=True,
    )
    retry_of_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
