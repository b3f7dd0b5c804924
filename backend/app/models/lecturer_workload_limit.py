from sqlalchemy import Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class LecturerWorkloadLimit(Base):
    __tablename__ = "lecturer_workload_limits"
    __table_args__ = (
        UniqueConstraint("lecturer_code", "semester_id", name="uq_lecturer_workload_limits_lecturer_semester"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lecturer_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    max_units: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    max_credit_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
