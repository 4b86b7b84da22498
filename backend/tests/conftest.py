from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from fieldgates.config import settings
from fieldgates.database import get_db, init_db
from fieldgates.main import app
from fieldgates.services.exception_monitor import ExceptionFrequencyMonitor
from fieldgates.services.gate_service import GateWorkflow
from fieldgates.services.gate_store import GateStore
from fieldgates.services.photo_service import PhotoStorage, PhotoUpload

TECH = "tech-1"
ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
TECH_HEADERS = {"X-User-Id": TECH, "X-User-Role": "tech"}


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeClock:
    """Settable clock; each call returns the current value and steps one second."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + timedelta(seconds=1)
        return value

    def set(self, value: datetime) -> None:
        self.now = value


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "FieldGates"
    data_path.mkdir()
    return data_path


@pytest.fixture
def test_db(tmp_data):
    db_path = tmp_data / "db.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def client(tmp_data, test_db):
    original_data_path = settings.data_path
    settings.data_path = tmp_data
    c = TestClient(app)
    yield c
    settings.data_path = original_data_path


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def workflow(db, tmp_data, clock, sleeps):
    return GateWorkflow(
        store=GateStore(db),
        storage=PhotoStorage(tmp_data / "photos"),
        monitor=ExceptionFrequencyMonitor(threshold=2),
        clock=clock,
        sleep=sleeps.append,
    )


@pytest.fixture
def job(workflow):
    return workflow.create_job("Water loss - 12 Elm St", "12 Elm St", TECH)


def gate_for(workflow, job, stage_name):
    return next(g for g in workflow.store.list_gates(job.id) if g.stage_name == stage_name)


def room_photo(room, photo_type, is_ppe=False):
    return PhotoUpload(
        filename=f"{room}_{photo_type}.jpg".replace(" ", "_"),
        content=f"{room}/{photo_type}".encode(),
        metadata={"room": room, "type": photo_type},
        is_ppe=is_ppe,
    )


def documented_room(room):
    return [
        room_photo(room, "Wide room shot"),
        room_photo(room, "Close-up of damage"),
        room_photo(room, "Context/equipment photo"),
    ]
