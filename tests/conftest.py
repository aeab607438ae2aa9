import os
import secrets
import sys
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'report_trust' resolves without installation
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from report_trust.main import app  # type: ignore
from report_trust.database import Base  # type: ignore
from report_trust.api import deps  # type: ignore
"""Pytest fixtures and factories.

Important: SQLAlchemy relationship configuration requires all model modules to be imported
before Base.metadata.create_all(), otherwise back_populates targets might not exist yet.
"""
from report_trust.models.db import User, Report, Vote, Verification, ReportCluster  # noqa: F401
from report_trust.models.db.enums import UserRole
from report_trust.models.schemas.reports import ReportCreate
from report_trust.jobs.queue import PriorityDelayQueue
from report_trust.services import report_service
from report_trust.services.notifier import change_notifier
from report_trust.services.report_mutation import report_locks
from report_trust.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

# File-based SQLite so worker-style threads and the test thread share data
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_report_trust.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Modules that imported SessionLocal at import time must see the test database too.
import report_trust.database as _db_module  # noqa: E402
_db_module.SessionLocal = TestingSessionLocal  # type: ignore
import report_trust.jobs.worker as _worker_mod  # noqa: E402
_worker_mod.SessionLocal = TestingSessionLocal  # type: ignore
import report_trust.main as _main_mod  # noqa: E402
_main_mod.SessionLocal = TestingSessionLocal  # type: ignore


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_report_trust.db")
    except OSError:
        pass


@pytest.fixture(scope="session", autouse=True)
def job_queue(create_test_db):
    """Queue on app.state as the lifespan would set it; no worker thread runs in tests."""
    queue = PriorityDelayQueue()
    app.state.queue = queue  # type: ignore[attr-defined]
    yield queue
    queue.shutdown()


@pytest.fixture(autouse=True)
def _isolate_test_state(job_queue):
    """Per-test isolation: empty tables, queue, notifier subscribers, locks and breaker state."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    job_queue.purge()
    change_notifier.reset()
    report_locks.clear()
    GLOBAL_CIRCUIT_BREAKER.reset()
    yield
    job_queue.purge()
    change_notifier.reset()
    GLOBAL_CIRCUIT_BREAKER.reset()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


app.dependency_overrides[deps.get_db] = _override_get_db


@pytest.fixture()
def client():
    return TestClient(app)


# ---------- Data factory helpers ----------

@pytest.fixture()
def user_factory(db_session):
    def _create(role: UserRole = UserRole.CITIZEN, name: str | None = None) -> User:
        suffix = secrets.token_hex(3)
        user = User(
            name=name or f"{role.value.title()} {suffix}",
            email=f"{role.value}_{suffix}@example.org",
            api_key=f"key_{secrets.token_hex(12)}",
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create


@pytest.fixture()
def report_factory(db_session):
    def _create(user: User | None = None, **overrides) -> Report:
        data = {
            "title": "Warehouse fire on Dock Road",
            "description": "Thick smoke and visible flames coming from the old warehouse on Dock Road.",
            "type": "fire",
            "severity": "high",
            "location": "Dock Road, Harbour District",
            "latitude": 40.7128,
            "longitude": -74.0060,
            "media_urls": [],
        }
        data.update(overrides)
        return report_service.create_report(db_session, ReportCreate(**data), user.id if user else None)
    return _create


