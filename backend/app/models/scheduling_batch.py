import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class TimetableKind(str, Enum):
    class_timetable = "class_timetable"
    exam_timetable = "exam_timetable"


class BatchStatus(str, Enum):
    running = "running"
    completed = "completed"
    cancelled = "cancelled"
    aborted = "aborted"


class SchedulingBatch(Base):
    __tablename__ = "scheduling_batches"
    __table_args__ = (Index("ix_scheduling_batches_semester_kind", "semester_id", "kind"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[TimetableKind] = mapped_column(SAEnum(TimetableKind, name="timetable_kind"), nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        SAEnum(BatchStatus, name="batch_status"),
        nullable=False,
        default=BatchStatus.running,
    )
    retried_from_batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    placed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Request options, reused when failures of this batch are retried.
    options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
