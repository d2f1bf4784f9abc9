"""
In-memory task and milestone stores.

A store owns the authoritative list for the session. Every write swaps in a
whole new list and then notifies subscribers with that full list; there are
no partial diff events.
"""
import logging
from typing import Callable, Dict, Generic, List, Optional, TypeVar, Union

from .errors import NotFound
from .ordering import find_task, tasks_by_status
from .schema import (
    Milestone,
    MilestonePatch,
    Task,
    TaskPatch,
    TaskStatus,
    new_id,
    new_task,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", Task, Milestone)


class _ListStore(Generic[T]):
    """Whole-list replacement plus subscriber fan-out."""

    kind = "item"

    def __init__(self, items: Optional[List[T]] = None):
        self._items: List[T] = list(items or [])
        self._subscribers: List[Callable[[List[T]], None]] = []

    def subscribe(self, callback: Callable[[List[T]], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self) -> None:
        snapshot = list(self._items)
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error in {self.kind} subscriber: {e}")

    def _swap(self, items: List[T]) -> None:
        self._items = list(items)
        self._emit()

    def list(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> T:
        for item in self._items:
            if item.id == item_id:
                return item
        raise NotFound(self.kind, item_id)

    def find(self, item_id: str) -> Optional[T]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def replace_all(self, items: List[T]) -> None:
        self._swap(items)

    def upsert(self, items: List[T]) -> None:
        """Swap in canonical records by id; unknown ids are ignored."""
        by_id: Dict[str, T] = {item.id: item for item in items}
        if not any(item.id in by_id for item in self._items):
            return
        self._swap([by_id.get(item.id, item) for item in self._items])

    def rekey(self, old_id: str, item: T) -> None:
        """Replace the entry stored under old_id (its id may change)."""
        self.get(old_id)
        self._swap([item if i.id == old_id else i for i in self._items])

    def add(self, item: T) -> T:
        self._swap(self._items + [item])
        return item

    def remove(self, item_id: str) -> T:
        item = self.get(item_id)
        self._swap([i for i in self._items if i.id != item_id])
        return item


class TaskStore(_ListStore[Task]):
    """Authoritative task list for one board session."""

    kind = "task"

    def create(
        self,
        title: str,
        status: TaskStatus = TaskStatus.TODO,
        description: Optional[str] = None,
        milestone_id: Optional[str] = None,
    ) -> Task:
        """Create a task at the end of its column."""
        return self.add(new_task(title, status, description, milestone_id))

    def mutate(self, task_id: str, patch: Union[TaskPatch, dict]) -> Task:
        """Merge patch into the task and refresh updated_at."""
        if isinstance(patch, dict):
            patch = TaskPatch.from_dict(patch)
        updated = patch.apply(self.get(task_id))
        self._swap([updated if t.id == task_id else t for t in self._items])
        return updated

    def column(self, status: TaskStatus) -> List[Task]:
        return tasks_by_status(self._items, status)

    def contains(self, task_id: str) -> bool:
        return find_task(self._items, task_id) is not None

    def clear_milestone(self, milestone_id: str) -> List[Task]:
        """Drop references to a deleted milestone; returns the tasks touched."""
        now = utc_now()
        patch = TaskPatch(milestone_id=None)
        touched = [patch.apply(t, now) for t in self._items if t.milestone_id == milestone_id]
        if touched:
            self.upsert(touched)
        return touched


class MilestoneStore(_ListStore[Milestone]):
    """Milestone collection; tasks point at it by id only."""

    kind = "milestone"

    def create(self, title: str, color: str = "#6366f1", description: Optional[str] = None) -> Milestone:
        MilestonePatch(title=title, color=color, description=description).validate()
        now = utc_now()
        milestone = Milestone(
            id=new_id(),
            title=title,
            color=color,
            description=description,
            created_at=now,
            updated_at=now,
        )
        return self.add(milestone)

    def mutate(self, milestone_id: str, patch: Union[MilestonePatch, dict]) -> Milestone:
        if isinstance(patch, dict):
            patch = MilestonePatch.from_dict(patch)
        updated = patch.apply(self.get(milestone_id))
        self._swap([updated if m.id == milestone_id else m for m in self._items])
        return updated

    def resolve(self, milestone_id: Optional[str]) -> Optional[Milestone]:
        """Look up a task's milestone; dangling or empty ids resolve to None."""
        if not milestone_id:
            return None
        return self.find(milestone_id)
