"""
Task board schema: statuses, columns, tasks, milestones, and patches.

Column flow:
  Todo → In Progress → Today's Done → Weekly Done → Done

Tasks sort inside a column by an integer order key. Order keys mean
nothing across columns.
"""
from enum import Enum
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
import threading
import time
import uuid

from .errors import ValidationError


class TaskStatus(Enum):
    """Board columns, in flow order."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    TODAYS_DONE = "todays-done"
    WEEKLY_DONE = "weekly-done"
    DONE = "done"

    @classmethod
    def from_str(cls, value) -> "TaskStatus":
        """Accept a wire value ("in-progress") or an enum name ("IN_PROGRESS")."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"Invalid status: {value!r}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            pass
        try:
            return cls[value.strip().upper().replace("-", "_")]
        except KeyError:
            raise ValidationError(f"Invalid status: {value!r}")


@dataclass(frozen=True)
class ColumnConfig:
    """Static behaviour of one board column."""
    status: TaskStatus
    title: str
    description: str
    can_add: bool = False
    can_bulk_move: bool = False
    can_summarize: bool = False
    bulk_move_target: Optional[TaskStatus] = None


COLUMNS: Dict[TaskStatus, ColumnConfig] = {
    TaskStatus.TODO: ColumnConfig(
        TaskStatus.TODO, "Todo", "Tasks not started yet", can_add=True,
    ),
    TaskStatus.IN_PROGRESS: ColumnConfig(
        TaskStatus.IN_PROGRESS, "In Progress", "Tasks being worked on", can_add=True,
    ),
    TaskStatus.TODAYS_DONE: ColumnConfig(
        TaskStatus.TODAYS_DONE, "Today's Done", "Finished today",
        can_bulk_move=True, can_summarize=True,
        bulk_move_target=TaskStatus.WEEKLY_DONE,
    ),
    TaskStatus.WEEKLY_DONE: ColumnConfig(
        TaskStatus.WEEKLY_DONE, "Weekly Done", "Finished this week",
        can_bulk_move=True, can_summarize=True,
        bulk_move_target=TaskStatus.DONE,
    ),
    TaskStatus.DONE: ColumnConfig(
        TaskStatus.DONE, "Done", "History of completed tasks",
    ),
}

STATUS_SEQUENCE: Tuple[TaskStatus, ...] = tuple(TaskStatus)


# ── Timestamps, ids, order keys ──────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    return value.isoformat()


def parse_ts(value) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    else:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id() -> str:
    return str(uuid.uuid4())


_order_lock = threading.Lock()
_last_order = 0


def next_order() -> int:
    """Millisecond timestamp, strictly increasing within this process."""
    global _last_order
    with _order_lock:
        _last_order = max(int(time.time() * 1000), _last_order + 1)
        return _last_order


# ── Field checks ─────────────────────────────────────────────────────────────

def _check_str(name: str, value, optional: bool = False, non_empty: bool = False):
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    if non_empty and not value.strip():
        raise ValidationError(f"{name} must not be empty")
    return value


def _check_int(name: str, value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _check_bool(name: str, value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean")
    return value


# ── Entities ─────────────────────────────────────────────────────────────────

@dataclass
class Task:
    """One card on the board."""

    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO

    # Blocker notes, only meaningful while is_stuck is set
    is_stuck: bool = False
    stuck_content: Optional[str] = None
    stuck_solution: Optional[str] = None

    milestone_id: Optional[str] = None  # weak reference, may dangle
    order: int = 0

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "isStuck": self.is_stuck,
            "stuckContent": self.stuck_content,
            "stuckSolution": self.stuck_solution,
            "milestoneId": self.milestone_id,
            "order": self.order,
            "createdAt": format_ts(self.created_at),
            "updatedAt": format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from the camelCase wire shape. Raises ValidationError."""
        if not isinstance(data, dict):
            raise ValidationError("task must be an object")
        if "title" not in data:
            raise ValidationError("task title is required")
        now = utc_now()
        return cls(
            id=_check_str("id", data.get("id") or ""),
            title=_check_str("title", data["title"], non_empty=True),
            description=_check_str("description", data.get("description"), optional=True),
            status=TaskStatus.from_str(data.get("status") or TaskStatus.TODO.value),
            is_stuck=_check_bool("isStuck", data.get("isStuck", False)),
            stuck_content=_check_str("stuckContent", data.get("stuckContent"), optional=True),
            stuck_solution=_check_str("stuckSolution", data.get("stuckSolution"), optional=True),
            milestone_id=_check_str("milestoneId", data.get("milestoneId"), optional=True),
            order=_check_int("order", data.get("order", 0)),
            created_at=parse_ts(data["createdAt"]) if data.get("createdAt") else now,
            updated_at=parse_ts(data["updatedAt"]) if data.get("updatedAt") else now,
        )


@dataclass
class Milestone:
    """A tag grouping tasks. Deleting one never deletes its tasks."""

    id: str
    title: str
    color: str = "#6366f1"
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "createdAt": format_ts(self.created_at),
            "updatedAt": format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Milestone":
        if not isinstance(data, dict):
            raise ValidationError("milestone must be an object")
        if "title" not in data:
            raise ValidationError("milestone title is required")
        now = utc_now()
        return cls(
            id=_check_str("id", data.get("id") or ""),
            title=_check_str("title", data["title"], non_empty=True),
            color=_check_str("color", data.get("color") or "#6366f1"),
            description=_check_str("description", data.get("description"), optional=True),
            created_at=parse_ts(data["createdAt"]) if data.get("createdAt") else now,
            updated_at=parse_ts(data["updatedAt"]) if data.get("updatedAt") else now,
        )


def new_task(
    title: str,
    status: TaskStatus = TaskStatus.TODO,
    description: Optional[str] = None,
    milestone_id: Optional[str] = None,
) -> Task:
    """Build a fresh task that lands at the end of its column."""
    now = utc_now()
    return Task(
        id=new_id(),
        title=_check_str("title", title, non_empty=True),
        description=description,
        status=TaskStatus.from_str(status),
        milestone_id=milestone_id,
        order=next_order(),
        created_at=now,
        updated_at=now,
    )


# ── Partial updates ──────────────────────────────────────────────────────────

class _Unset:
    """Marks a patch field that was not supplied. None is a real value."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class _Patch:
    """Shared behaviour for TaskPatch / MilestonePatch."""

    # wire key -> attribute name
    WIRE_KEYS: Dict[str, str] = {}

    def changes(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()

    def to_dict(self) -> Dict[str, Any]:
        attr_to_wire = {attr: key for key, attr in self.WIRE_KEYS.items()}
        out = {}
        for attr, value in self.changes().items():
            if isinstance(value, Enum):
                value = value.value
            out[attr_to_wire[attr]] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise ValidationError("patch must be an object")
        unknown = sorted(set(data) - set(cls.WIRE_KEYS))
        if unknown:
            raise ValidationError(f"Unknown or read-only fields: {', '.join(unknown)}")
        patch = cls(**{cls.WIRE_KEYS[k]: v for k, v in data.items()})
        return patch.validate()


@dataclass
class TaskPatch(_Patch):
    """Typed partial update for a Task."""

    title: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    is_stuck: Any = UNSET
    stuck_content: Any = UNSET
    stuck_solution: Any = UNSET
    milestone_id: Any = UNSET
    order: Any = UNSET

    WIRE_KEYS = {
        "title": "title",
        "description": "description",
        "status": "status",
        "isStuck": "is_stuck",
        "stuckContent": "stuck_content",
        "stuckSolution": "stuck_solution",
        "milestoneId": "milestone_id",
        "order": "order",
    }

    def validate(self) -> "TaskPatch":
        """Check every supplied field against the Task shape. Coerces status."""
        if self.title is not UNSET:
            _check_str("title", self.title, non_empty=True)
        for name in ("description", "stuck_content", "stuck_solution", "milestone_id"):
            value = getattr(self, name)
            if value is not UNSET:
                _check_str(name, value, optional=True)
        if self.status is not UNSET:
            self.status = TaskStatus.from_str(self.status)
        if self.is_stuck is not UNSET:
            _check_bool("is_stuck", self.is_stuck)
        if self.order is not UNSET:
            _check_int("order", self.order)
        return self

    def apply(self, task: Task, now: Optional[datetime] = None) -> Task:
        """Return a copy of task with this patch merged and updated_at refreshed."""
        self.validate()
        return replace(task, **self.changes(), updated_at=now or utc_now())


@dataclass
class MilestonePatch(_Patch):
    """Typed partial update for a Milestone."""

    title: Any = UNSET
    description: Any = UNSET
    color: Any = UNSET

    WIRE_KEYS = {
        "title": "title",
        "description": "description",
        "color": "color",
    }

    def validate(self) -> "MilestonePatch":
        if self.title is not UNSET:
            _check_str("title", self.title, non_empty=True)
        if self.description is not UNSET:
            _check_str("description", self.description, optional=True)
        if self.color is not UNSET:
            _check_str("color", self.color, non_empty=True)
        return self

    def apply(self, milestone: Milestone, now: Optional[datetime] = None) -> Milestone:
        self.validate()
        return replace(milestone, **self.changes(), updated_at=now or utc_now())
