import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.scheduling_batch import TimetableKind


class ScheduledSession(Base):
    """A committed placement of one schedulable item."""

    __tablename__ = "scheduled_sessions"
    __table_args__ = (
        Index("ix_scheduled_sessions_semester_kind", "semester_id", "kind"),
        Index("ix_scheduled_sessions_venue_day", "venue_id", "day", "session_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[TimetableKind] = mapped_column(SAEnum(TimetableKind, name="timetable_kind"), nullable=False)
    unit_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_code: Mapped[str] = mapped_column(String(50), nullable=False)
    class_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    school_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day: Mapped[str] = mapped_column(String(20), nullable=False)
    session_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    slot_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_slot_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    session_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    teaching_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="physical")
    venue_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    venue_code: Mapped[str] = mapped_column(String(50), nullable=False)
    lecturer_code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    student_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credit_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
