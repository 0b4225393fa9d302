import logging
import os
import sqlite3
import subprocess
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from config import DATABASE_PATH, STORAGE_KEY
from models import Task

logger = logging.getLogger(__name__)

LOAD_ERROR_NOTICE = "There was an error loading your tasks. Starting with an empty list."

_task_list = TypeAdapter(list[Task])


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db_path={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def load_state(key: str) -> Optional[str]:
    """Return the raw serialized value stored under key, if any."""
    with get_db() as conn:
        row = conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None


def save_state(key: str, value: str):
    """Overwrite the value stored under key."""
    now = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO app_state (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (key, value, now)
        )
        conn.commit()


class TaskStore:
    """
    In-memory task list persisted as one JSON array under a single key.

    Mutations only touch memory; nothing is written until save() is called,
    and save() always rewrites the whole list.
    """

    def __init__(self, key: str = STORAGE_KEY):
        self.key = key
        self.tasks: list[Task] = []
        self.notices: list[str] = []

    def load(self) -> list[Task]:
        """
        Replace the in-memory list with the persisted one.
        Unreadable state is discarded and the store starts empty with a notice queued.
        """
        raw = load_state(self.key)
        if raw is None:
            self.tasks = []
            return self.tasks

        try:
            self.tasks = _task_list.validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable task state under %r: %s", self.key, e)
            self.tasks = []
            self.notices.append(LOAD_ERROR_NOTICE)
        return self.tasks

    def save(self):
        save_state(self.key, _task_list.dump_json(self.tasks, by_alias=True).decode())

    def get(self, task_id: str) -> Optional[Task]:
        return next((task for task in self.tasks if task.id == task_id), None)

    def add(self, task: Task):
        self.tasks.append(task)

    def replace(self, task: Task) -> bool:
        """Swap in a new version of a task with the same id."""
        for i, existing in enumerate(self.tasks):
            if existing.id == task.id:
                self.tasks[i] = task
                return True
        return False

    def remove(self, task_id: str) -> bool:
        remaining = [task for task in self.tasks if task.id != task_id]
        removed = len(remaining) != len(self.tasks)
        self.tasks = remaining
        return removed

    def drain_notices(self) -> list[str]:
        notices, self.notices = self.notices, []
        return notices
