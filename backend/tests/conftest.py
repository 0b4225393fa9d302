"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database per test for isolation.
"""
import pytest
import sqlite3
import sys
import os
from datetime import date, datetime
from types import SimpleNamespace

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from models import OneOffSchedule, RecurringSchedule, Task
from narrative import NarrativeGenerator

# A Wednesday
DAY_0 = date(2025, 1, 1)


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE app_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def make_task():
    """Factory for tasks created at midnight on DAY_0 unless told otherwise."""
    counter = iter(range(1, 10_000))

    def _make(
        duration: int = 10,
        reminder_frequency: int = 3,
        created: date = DAY_0,
        recurring: bool = False,
        pattern: str = "weekly",
        days_of_week: list[int] = None,
        **fields,
    ) -> Task:
        if recurring:
            schedule = RecurringSchedule(
                recurrence_pattern=pattern,
                days_of_week=days_of_week or [],
                reminder_time=fields.pop("reminder_time", None),
                completion_time=fields.pop("completion_time", None),
            )
        else:
            schedule = OneOffSchedule(
                duration=duration,
                duration_unit=fields.pop("duration_unit", "days"),
                reminder_frequency=reminder_frequency,
                reminder_unit=fields.pop("reminder_unit", "days"),
            )
        number = next(counter)
        return Task(
            id=fields.pop("id", f"task-{number}"),
            title=fields.pop("title", f"Task {number}"),
            created_at=datetime.combine(created, datetime.min.time()),
            schedule=schedule,
            **fields,
        )

    return _make


class FakeMessages:
    """Stands in for AsyncAnthropic().messages."""

    def __init__(self, text: str = None, error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.text)])


def fake_client(text: str = None, error: Exception = None):
    return SimpleNamespace(messages=FakeMessages(text=text, error=error))


@pytest.fixture
def fake_narrator():
    """Build a NarrativeGenerator around a fake client."""
    def _build(text: str = None, error: Exception = None) -> NarrativeGenerator:
        return NarrativeGenerator(api_key=None, model="test-model", client=fake_client(text, error))

    return _build


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app with a fresh store.
    Mocks init_db to skip alembic migrations.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main, "store", database.TaskStore())
    # Offline by default: no key means every narrative falls back
    monkeypatch.setattr(main, "narrator", NarrativeGenerator(api_key=None, model="test-model"))

    with TestClient(main.app) as client:
        yield client

    main.app.dependency_overrides.clear()


@pytest.fixture
def task_store(app_client):
    """The store the running app reads and writes."""
    import main
    return main.store
