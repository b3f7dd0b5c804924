import os
import tempfile
from pathlib import Path

# The app engine is built at import time; point it at a throwaway SQLite file
# so lifespan bootstrap and /health/ready never need a live PostgreSQL.
_BOOTSTRAP_DB = Path(tempfile.gettempdir()) / f"scheduler-test-{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_BOOTSTRAP_DB}"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.services.batch_control import clear_batch_control  # noqa: E402
from app.services.notifications import clear_timetable_observers  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    clear_batch_control()
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
        clear_batch_control()
        clear_timetable_observers()


@pytest.fixture()
def client(session_factory):
    clear_batch_control()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_batch_control()
    clear_timetable_observers()


def pytest_sessionfinish(session, exitstatus):
    _BOOTSTRAP_DB.unlink(missing_ok=True)
