"""
Test configuration and fixtures.

Each test gets its own SQLite file database so the storage-level overlap
trigger runs for real. The messaging service is mocked; nothing leaves the
process.
"""

import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("WEBHOOK_API_KEY", "test-webhook-key")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from clinic_brain.database import Base, build_engine, get_db  # noqa: E402
from clinic_brain.domain.messaging.service import MessagingService, get_messaging_service  # noqa: E402
from clinic_brain.main import app  # noqa: E402
from clinic_brain.models import Patient, Professional  # noqa: E402

# Monday 2030-03-04, 10:00 in America/Sao_Paulo (UTC-3)
MONDAY_10H = datetime(2030, 3, 4, 13, 0, tzinfo=timezone.utc)


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file database with all tables and triggers"""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'clinic_brain_test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def professional(db):
    record = Professional(
        name="Dra. Ana",
        phone_number="5511988887777",
        timezone="America/Sao_Paulo",
        evolution_instance_name="clinica-ana",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def patient(db, professional):
    record = Patient(
        professional_id=professional.id,
        name="Maria Silva",
        phone_number="5511999990000",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def messaging():
    """Messaging service double: every send succeeds and no warning is produced"""
    mock_messaging = MagicMock(spec=MessagingService)
    mock_messaging.send_message = AsyncMock(return_value=None)
    mock_messaging.deliver = AsyncMock(return_value=None)
    return mock_messaging


@pytest.fixture
def client(session_factory, messaging):
    """FastAPI test client bound to the per-test database and mocked messaging"""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messaging_service] = lambda: messaging
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def professional_headers(professional):
    return {"X-Professional-Id": professional.id}


@pytest.fixture
def patient_headers(professional, patient):
    return {"X-Professional-Id": professional.id, "X-Patient-Id": patient.id}
