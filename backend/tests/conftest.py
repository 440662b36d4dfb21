import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.database import get_session
from app.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB,
#    including the fresh session background notice delivery opens
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped and recreated per test so ids start at 1
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def dry_run_sms(monkeypatch):
    """Never reach Twilio from tests, whatever the environment holds"""
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("app.services.notification_service._twilio_service", None)


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a clean schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from app.models.golf_course import GolfCourse  # noqa: F401
    from app.models.member import Member  # noqa: F401
    from app.models.notification import Notification  # noqa: F401
    from app.models.reservation import Reservation  # noqa: F401
    from app.models.schedule import Schedule  # noqa: F401

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
