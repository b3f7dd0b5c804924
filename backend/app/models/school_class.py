from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class SchoolClass(Base):
    __tablename__ = "school_classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)
    semester_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    school_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def display_name(self) -> str:
        if self.section:
            return f"{self.name} (Section: {self.section})"
        return self.name
