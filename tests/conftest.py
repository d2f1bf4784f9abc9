"""Shared test fixtures for task board tests."""

import sqlite3
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskboard.errors import RemoteWriteFailure  # noqa: E402
from taskboard.notify import LoggingNotifier  # noqa: E402
from taskboard.repository import SQLiteRepository  # noqa: E402
from taskboard.schema import Milestone, Task, TaskStatus  # noqa: E402
from taskboard.store import MilestoneStore, TaskStore  # noqa: E402
from taskboard.sync import BoardSync  # noqa: E402

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def make_task(task_id, status=TaskStatus.TODO, order=0, title=None, **kwargs) -> Task:
    """Task with deterministic timestamps (creation order follows the id)."""
    offset = timedelta(minutes=int(task_id)) if str(task_id).isdigit() else timedelta(0)
    return Task(
        id=str(task_id),
        title=title or f"Task {task_id}",
        status=status,
        order=order,
        created_at=BASE_TIME + offset,
        updated_at=BASE_TIME + offset,
        **kwargs,
    )


def make_milestone(milestone_id, title=None, color="#ff0000") -> Milestone:
    return Milestone(
        id=str(milestone_id),
        title=title or f"Milestone {milestone_id}",
        color=color,
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )


class FlakyRepository(SQLiteRepository):
    """SQLiteRepository that can be told to reject calls."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.broken = set()       # method names that always fail
        self.broken_ids = set()   # ids whose patch/delete fail
        self.calls = []

    def _check(self, method, item_id=None):
        self.calls.append((method, item_id))
        if method in self.broken or (item_id is not None and item_id in self.broken_ids):
            raise RemoteWriteFailure(f"{method} rejected")

    def seed(self, tasks=(), milestones=()):
        """Insert records keeping their ids."""
        for milestone in milestones:
            created = super().create_milestone(milestone)
            self._rename("milestones", created.id, milestone.id)
        for task in tasks:
            self._write_task(task, insert=True)

    def _rename(self, table, old_id, new_id):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(f"UPDATE {table} SET id = ? WHERE id = ?", (new_id, old_id))
            conn.commit()

    def writes(self, method):
        return [item_id for name, item_id in self.calls if name == method]

    def list_tasks(self):
        self._check("list_tasks")
        return super().list_tasks()

    def create_task(self, task):
        self._check("create_task")
        return super().create_task(task)

    def patch_task(self, task_id, patch):
        self._check("patch_task", task_id)
        return super().patch_task(task_id, patch)

    def delete_task(self, task_id):
        self._check("delete_task", task_id)
        return super().delete_task(task_id)

    def list_milestones(self):
        self._check("list_milestones")
        return super().list_milestones()

    def create_milestone(self, milestone):
        self._check("create_milestone")
        return super().create_milestone(milestone)

    def patch_milestone(self, milestone_id, patch):
        self._check("patch_milestone", milestone_id)
        return super().patch_milestone(milestone_id, patch)

    def delete_milestone(self, milestone_id):
        self._check("delete_milestone", milestone_id)
        return super().delete_milestone(milestone_id)


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmp:
        yield str(Path(tmp) / "board.db")


@pytest.fixture
def repo(db_path):
    return FlakyRepository(db_path)


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def board(repo, notifier):
    return BoardSync(TaskStore(), MilestoneStore(), repo, notifier)
