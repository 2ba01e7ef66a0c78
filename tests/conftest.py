"""Pytest fixtures and configuration for taskreset tests."""

import os

# Point the app at a throwaway database and keep background loops off before
# any taskreset module reads the environment.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AUTO_RECONCILE"] = "false"

import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from taskreset.database.database import Base
from taskreset.database.repository import TaskRepository
from taskreset.errors import NotFoundError, PersistenceError
from taskreset.models.constants import RESET_TIMEZONE
from taskreset.models.task import SubTask, Task, TaskCategory, TaskUpdate


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


def local_instant(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """A UTC instant given as wall-clock time in the reset timezone."""
    return datetime(year, month, day, hour, minute, second, tzinfo=RESET_TIMEZONE).astimezone(timezone.utc)


class FakeTaskStore:
    """In-memory TaskStore.

    Keeps tests about reset/cascade/reconciliation logic rather than SQL.
    `fail_ids` makes writes for those task ids raise PersistenceError;
    `calls` records every write in order.
    """

    def __init__(self, tasks: Optional[List[Task]] = None):
        self.rows: Dict[Tuple[str, str], Task] = {}
        self.fail_ids = set()
        self.calls: List[Tuple[str, str]] = []
        for task in tasks or []:
            self.rows[(task.owner_id, task.id)] = task

    def load_tasks(self, owner_id: str) -> List[Task]:
        return [task for (owner, _), task in self.rows.items() if owner == owner_id]

    def insert_task(self, owner_id: str, task: Task) -> Task:
        self.calls.append(("insert", task.id))
        if task.id in self.fail_ids:
            raise PersistenceError(f"insert failed for {task.id}")
        self.rows[(owner_id, task.id)] = task
        return task

    def update_task(self, owner_id: str, task_id: str, update: TaskUpdate) -> Task:
        self.calls.append(("update", task_id))
        if task_id in self.fail_ids:
            raise PersistenceError(f"update failed for {task_id}")
        current = self.rows.get((owner_id, task_id))
        if current is None:
            raise NotFoundError(f"Task {task_id} not found")
        stored = update.apply_to(current)
        self.rows[(owner_id, task_id)] = stored
        return stored

    def delete_task(self, owner_id: str, task_id: str) -> None:
        self.calls.append(("delete", task_id))
        if self.rows.pop((owner_id, task_id), None) is None:
            raise NotFoundError(f"Task {task_id} not found")


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def owner_id():
    """Owner ID for multi-owner testing."""
    return "owner-123"


@pytest.fixture
def other_owner_id():
    return "owner-456"


@pytest.fixture
def now():
    """Wednesday 2026-03-04 17:00 local (10:00 UTC)."""
    return local_instant(2026, 3, 4, 17, 0)


@pytest.fixture
def sample_task_base(owner_id, now):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "owner_id": owner_id,
        "title": "Water the plants",
        "description": "Balcony and kitchen",
        "tags": ["home"],
        "category": TaskCategory.DAILY,
        "is_completed": False,
        "last_completion_at": None,
        "next_eligible_at": local_instant(2026, 3, 4, 23, 59),
        "sub_tasks": [],
        "created_at": now - timedelta(days=1),
        "updated_at": now - timedelta(days=1),
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def task_with_sub_tasks(sample_task_base):
    """Daily task with one unscheduled, one Countdown24h and one Ended sub-task."""
    return Task(**{
        **sample_task_base,
        "title": "Weekly chores",
        "sub_tasks": [
            SubTask(title="Dishes"),
            SubTask(title="Laundry", category=TaskCategory.COUNTDOWN_24H,
                    next_eligible_at=sample_task_base["created_at"] + timedelta(hours=24)),
            SubTask(title="Old chore", category=TaskCategory.ENDED),
        ],
    })


@pytest.fixture
def fake_store():
    """Empty in-memory store."""
    return FakeTaskStore()


@pytest.fixture
def owner_headers(owner_id):
    return {"X-Owner-Id": owner_id}


@pytest.fixture
def test_client(db_session: Session):
    """Create a FastAPI test client whose task sessions use the test database."""
    from taskreset.api.app import app, get_db_session_factory

    def override_get_db_session_factory():
        return lambda: db_session

    app.dependency_overrides[get_db_session_factory] = override_get_db_session_factory

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
