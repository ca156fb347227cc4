"""Pytest fixtures and configuration for recurtask tests."""

import pytest
from datetime import datetime
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from recurtask.database.database import Base
from recurtask.database import models  # noqa: F401  (register tables on Base)
from recurtask.database.repository import TaskRepository
from recurtask.database.recurrence_pattern_repository import RecurrencePatternRepository
from recurtask.engine.activity import InMemoryActivitySink
from recurtask.engine.series import RecurringSeriesEngine
from recurtask.models.duration import Duration
from recurtask.models.recurrence import RecurrencePattern, RecurrenceFrequency
from recurtask.models.task import Task, TaskStatus, TaskPriority


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Fixed "now" used by the engine clock in tests
FIXED_NOW = datetime(2023, 12, 31, 12, 0)


class FakeClock:
    """Callable clock whose reading tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def pattern_repository(db_session: Session):
    """Create a RecurrencePatternRepository instance for testing."""
    return RecurrencePatternRepository(db_session)


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def clock():
    """Engine clock fixed at FIXED_NOW."""
    return FakeClock(FIXED_NOW)


@pytest.fixture
def activity_sink():
    return InMemoryActivitySink()


@pytest.fixture
def series_engine(db_session: Session, clock, activity_sink):
    """RecurringSeriesEngine over the test session with a fixed clock."""
    return RecurringSeriesEngine(db_session, clock=clock, activity_sink=activity_sink)


@pytest.fixture
def sample_task_base(test_user_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "user_id": test_user_id,
        "title": "Test Task",
        "description": "Test description",
        "status": TaskStatus.TODO,
        "priority": TaskPriority.MEDIUM,
        "category": None,
        "assignees": [],
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
        "start_date": datetime(2024, 1, 1, 9, 0),
        "due_date": None,
        "duration": None,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def one_hour():
    return Duration(hours=1)


@pytest.fixture
def daily_pattern():
    """Every day, no end."""
    return RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=1)


@pytest.fixture
def weekly_pattern():
    """Mondays, Wednesdays and Fridays."""
    return RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, interval=1, days_of_week=[1, 3, 5])


@pytest.fixture
def daily_series(series_engine, sample_task, daily_pattern, one_hour):
    """A daily series starting 2024-01-01 09:00 with one-hour occurrences."""
    return series_engine.create_series(sample_task, daily_pattern, one_hour)


@pytest.fixture
def test_client(db_session: Session, test_user_id):
    """Create a FastAPI test client with overridden database dependency and user id."""
    from recurtask.api.app import app
    from recurtask.database.database import get_db
    from recurtask.auth.dependencies import get_current_user_id

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    def override_get_current_user_id():
        return test_user_id

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
