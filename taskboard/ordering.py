"""
Ordering engine: pure functions over the full task list.

Every function takes the current list and returns a new one; tasks are
replaced, never mutated. Unknown task ids are a silent no-op and the input
list object is returned as-is, so callers can detect it with `is`.

Any reorder renumbers the affected column to 1..N. Gaps from earlier
history are thrown away.
"""
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .schema import Task, TaskPatch, TaskStatus, utc_now


def find_task(tasks: Sequence[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def tasks_by_status(tasks: Sequence[Task], status: TaskStatus) -> List[Task]:
    """Column view sorted by order. Ties keep their list position."""
    return sorted((t for t in tasks if t.status == status), key=lambda t: t.order)


def max_order_in_status(tasks: Sequence[Task], status: TaskStatus) -> int:
    column = tasks_by_status(tasks, status)
    if not column:
        return 0
    return max(t.order for t in column)


def _clamp(index: int, size: int) -> int:
    return max(0, min(index, size))


def _renumber(column: List[Task], now: datetime) -> List[Task]:
    return [replace(t, order=pos + 1, updated_at=now) for pos, t in enumerate(column)]


def move_status_only(tasks: List[Task], task_id: str, new_status: TaskStatus) -> List[Task]:
    """Change a task's column, keeping its order key."""
    task = find_task(tasks, task_id)
    if task is None:
        return tasks
    moved = replace(task, status=new_status, updated_at=utc_now())
    return [moved if t.id == task_id else t for t in tasks]


def reorder_tasks(
    tasks: List[Task],
    task_id: str,
    new_status: TaskStatus,
    insert_index: int,
) -> List[Task]:
    """
    Move a task into another column at insert_index (clamped to [0, len]).

    The target column is renumbered 1..N. The column the task left is
    renumbered 1..M in its existing sequence so it keeps no gap.
    """
    dragged = find_task(tasks, task_id)
    if dragged is None:
        return tasks

    now = utc_now()
    source_status = dragged.status
    others = [t for t in tasks if t.id != task_id]

    target = tasks_by_status(others, new_status)
    target.insert(_clamp(insert_index, len(target)), replace(dragged, status=new_status))
    renumbered = _renumber(target, now)

    if source_status == new_status:
        untouched = [t for t in others if t.status != new_status]
        return untouched + renumbered

    source = _renumber(tasks_by_status(others, source_status), now)
    untouched = [t for t in others if t.status not in (new_status, source_status)]
    return untouched + source + renumbered


def reorder_tasks_in_same_column(
    tasks: List[Task],
    task_id: str,
    status: TaskStatus,
    new_index: int,
) -> List[Task]:
    """Reposition a task inside its own column; dropping it in place is a no-op."""
    column = tasks_by_status(tasks, status)
    current = next((i for i, t in enumerate(column) if t.id == task_id), -1)
    if current == -1:
        return tasks

    # Index is taken against the column with the task removed
    dragged = column.pop(current)
    target = _clamp(new_index, len(column))
    if target == current:
        return tasks
    column.insert(target, dragged)

    untouched = [t for t in tasks if t.status != status]
    return untouched + _renumber(column, utc_now())


def move_task(
    tasks: List[Task],
    task_id: str,
    target: TaskStatus,
    insert_index: Optional[int] = None,
) -> List[Task]:
    """Drop handler: route a (task, column, index?) request to the right move."""
    task = find_task(tasks, task_id)
    if task is None:
        return tasks
    if insert_index is None:
        return move_status_only(tasks, task_id, target)
    if task.status == target:
        return reorder_tasks_in_same_column(tasks, task_id, target, insert_index)
    return reorder_tasks(tasks, task_id, target, insert_index)


def bulk_move_by_status(
    tasks: List[Task],
    from_status: TaskStatus,
    to_status: TaskStatus,
) -> Tuple[List[Task], List[Task]]:
    """
    Status-only move of every task in from_status.

    Returns (new_tasks, moved); moved holds the updated tasks in their
    column order. Nothing to move returns (tasks, []).
    """
    if not any(t.status == from_status for t in tasks):
        return tasks, []
    now = utc_now()
    result = [
        replace(t, status=to_status, updated_at=now) if t.status == from_status else t
        for t in tasks
    ]
    moved_ids = {t.id for t in tasks if t.status == from_status}
    moved = sorted((t for t in result if t.id in moved_ids), key=lambda t: t.order)
    return result, moved


def toggle_stuck(
    tasks: List[Task],
    task_id: str,
    is_stuck: bool,
    stuck_content: Optional[str] = None,
    stuck_solution: Optional[str] = None,
) -> List[Task]:
    """Flag or clear a blocker. Clearing drops the blocker notes."""
    if find_task(tasks, task_id) is None:
        return tasks
    patch = TaskPatch(
        is_stuck=is_stuck,
        stuck_content=stuck_content if is_stuck else None,
        stuck_solution=stuck_solution if is_stuck else None,
    )
    return apply_patch(tasks, task_id, patch)


def apply_patch(tasks: List[Task], task_id: str, patch: TaskPatch) -> List[Task]:
    if find_task(tasks, task_id) is None:
        return tasks
    now = utc_now()
    return [patch.apply(t, now) if t.id == task_id else t for t in tasks]


def changed_tasks(before: Sequence[Task], after: Sequence[Task]) -> List[Task]:
    """Tasks in after that are new or differ from their before counterpart."""
    previous = {t.id: t for t in before}
    return [t for t in after if previous.get(t.id) != t]
