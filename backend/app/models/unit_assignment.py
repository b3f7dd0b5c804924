from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class UnitAssignment(Base):
    """A unit offered in a semester; a null class_id marks a common unit."""

    __tablename__ = "unit_assignments"
    __table_args__ = (
        UniqueConstraint("unit_id", "semester_id", "class_id", name="uq_unit_assignments_unit_semester_class"),
        Index("ix_unit_assignments_lecturer_semester", "lecturer_code", "semester_id"),
        Index("ix_unit_assignments_semester_active", "semester_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    class_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lecturer_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
