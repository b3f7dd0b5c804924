from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_operator(x_operator: str | None = Header(default=None, max_length=100)) -> str | None:
    """Operator name for audit fields; identity is asserted upstream."""
    if x_operator is None:
        return None
    cleaned = x_operator.strip()
    return cleaned or None
