"""
SQLite persistence for tasks and milestones.

This is the server side of the persistence contract:
list / create / patch / delete for both entities. Create always assigns a
fresh id, the way the hosted API does, so importers must remap references.
"""
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import NotFound, RemoteWriteFailure
from .schema import (
    Milestone,
    MilestonePatch,
    Task,
    TaskPatch,
    TaskStatus,
    format_ts,
    new_id,
    next_order,
    parse_ts,
)

logger = logging.getLogger(__name__)

DEFAULT_DB = Path.home() / ".local" / "share" / "taskboard" / "board.db"


@contextmanager
def _connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open a connection in WAL mode; commit on success, always close."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class SQLiteRepository:
    """SQLite-backed task and milestone storage."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize storage and create tables if needed."""
        if db_path is None:
            db_path = str(DEFAULT_DB)
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS milestones (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    color TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            # milestone_id is a plain reference, not a foreign key: it may dangle
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    is_stuck INTEGER NOT NULL DEFAULT 0,
                    stuck_content TEXT,
                    stuck_solution TEXT,
                    milestone_id TEXT,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, sort_order)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_milestone ON tasks(milestone_id)")

    # ── Tasks ────────────────────────────────────────────────────────────────

    def list_tasks(self) -> List[Task]:
        """All tasks, by order key then creation order."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM tasks ORDER BY sort_order ASC, created_at ASC, rowid ASC"
                ).fetchall()
            return [self._row_to_task(row) for row in rows]
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to list tasks: {e}") from e

    def get_task(self, task_id: str) -> Task:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to read task {task_id}: {e}") from e
        if not row:
            raise NotFound("task", task_id)
        return self._row_to_task(row)

    def create_task(self, task: Task) -> Task:
        """
        Insert a task under a new id and return the stored record.

        An order of 0 means none was given: the task lands at the end of its
        column. Order keys written by moves start at 1.
        """
        created = replace(task, id=new_id(), order=task.order or next_order())
        self._write_task(created, insert=True)
        logger.info(f"Created task {created.id} in {created.status.value}")
        return created

    def patch_task(self, task_id: str, patch: TaskPatch) -> Task:
        updated = patch.apply(self.get_task(task_id))
        self._write_task(updated, insert=False)
        return updated

    def delete_task(self, task_id: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
                deleted = cur.rowcount
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to delete task {task_id}: {e}") from e
        if not deleted:
            raise NotFound("task", task_id)

    def _write_task(self, task: Task, insert: bool) -> None:
        values = (
            task.title,
            task.description,
            task.status.value,
            1 if task.is_stuck else 0,
            task.stuck_content,
            task.stuck_solution,
            task.milestone_id,
            task.order,
            format_ts(task.created_at),
            format_ts(task.updated_at),
            task.id,
        )
        try:
            with _connect(self.db_path) as conn:
                if insert:
                    conn.execute("""
                        INSERT INTO tasks
                        (title, description, status, is_stuck, stuck_content, stuck_solution,
                         milestone_id, sort_order, created_at, updated_at, id)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, values)
                else:
                    conn.execute("""
                        UPDATE tasks SET
                            title = ?, description = ?, status = ?, is_stuck = ?,
                            stuck_content = ?, stuck_solution = ?, milestone_id = ?,
                            sort_order = ?, created_at = ?, updated_at = ?
                        WHERE id = ?
                    """, values)
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to save task {task.id}: {e}") from e

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            is_stuck=bool(row["is_stuck"]),
            stuck_content=row["stuck_content"],
            stuck_solution=row["stuck_solution"],
            milestone_id=row["milestone_id"],
            order=row["sort_order"],
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )

    # ── Milestones ───────────────────────────────────────────────────────────

    def list_milestones(self) -> List[Milestone]:
        """All milestones, newest first."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM milestones ORDER BY created_at DESC, rowid DESC"
                ).fetchall()
            return [self._row_to_milestone(row) for row in rows]
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to list milestones: {e}") from e

    def get_milestone(self, milestone_id: str) -> Milestone:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT * FROM milestones WHERE id = ?", (milestone_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to read milestone {milestone_id}: {e}") from e
        if not row:
            raise NotFound("milestone", milestone_id)
        return self._row_to_milestone(row)

    def create_milestone(self, milestone: Milestone) -> Milestone:
        created = replace(milestone, id=new_id())
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO milestones (id, title, description, color, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    created.id,
                    created.title,
                    created.description,
                    created.color,
                    format_ts(created.created_at),
                    format_ts(created.updated_at),
                ))
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to create milestone: {e}") from e
        logger.info(f"Created milestone {created.id}")
        return created

    def patch_milestone(self, milestone_id: str, patch: MilestonePatch) -> Milestone:
        updated = patch.apply(self.get_milestone(milestone_id))
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    UPDATE milestones SET title = ?, description = ?, color = ?, updated_at = ?
                    WHERE id = ?
                """, (
                    updated.title,
                    updated.description,
                    updated.color,
                    format_ts(updated.updated_at),
                    milestone_id,
                ))
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to save milestone {milestone_id}: {e}") from e
        return updated

    def delete_milestone(self, milestone_id: str) -> None:
        """Delete a milestone and clear it from its tasks (tasks survive)."""
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute("DELETE FROM milestones WHERE id = ?", (milestone_id,))
                deleted = cur.rowcount
                if deleted:
                    conn.execute(
                        "UPDATE tasks SET milestone_id = NULL WHERE milestone_id = ?",
                        (milestone_id,),
                    )
        except sqlite3.Error as e:
            raise RemoteWriteFailure(f"Failed to delete milestone {milestone_id}: {e}") from e
        if not deleted:
            raise NotFound("milestone", milestone_id)

    def _row_to_milestone(self, row: sqlite3.Row) -> Milestone:
        return Milestone(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            color=row["color"],
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )
