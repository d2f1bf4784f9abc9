"""
Synchronization layer: optimistic local writes, remote confirmation.

Each user action runs in two phases:
  1. compute the new list with the ordering engine and swap it into the
     store right away;
  2. send the matching writes to the repository, awaited together.

On success the server's records replace the local ones by id. On failure
the user is notified once, local state is thrown away and refetched
(reconcile), and the error is raised to the caller.

Bulk moves and imports are not transactional: writes that landed before a
failure stay landed. Imports are not rolled back or refetched at all.

The repository is any object with list_tasks / create_task / patch_task /
delete_task and the same four for milestones (SQLiteRepository,
HttpRepository). Its blocking calls run in worker threads.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from . import ordering
from .client import HttpRepository
from .config import BoardConfig
from .errors import BoardError, NotFound, PartialBulkFailure, RemoteWriteFailure, ValidationError
from .notify import LoggingNotifier
from .schema import COLUMNS, Milestone, MilestonePatch, Task, TaskPatch, TaskStatus
from .store import MilestoneStore, TaskStore
from .transfer import BoardSnapshot, build_export, parse_import

logger = logging.getLogger(__name__)

Call = Tuple[Any, ...]  # (function, *args)


class BoardSync:
    """Bridges the ordering engine and the stores to a remote repository."""

    def __init__(
        self,
        tasks: TaskStore,
        milestones: MilestoneStore,
        repository,
        notifier=None,
        reconcile_attempts: int = 2,
    ):
        self.tasks = tasks
        self.milestones = milestones
        self.repository = repository
        self.notifier = notifier or LoggingNotifier()
        self.reconcile_attempts = max(1, reconcile_attempts)

    @classmethod
    def from_config(cls, cfg: BoardConfig, repository=None, notifier=None) -> "BoardSync":
        """Empty stores over cfg's HTTP API unless a repository is given."""
        return cls(
            TaskStore(),
            MilestoneStore(),
            repository if repository is not None else HttpRepository.from_config(cfg),
            notifier,
            reconcile_attempts=cfg.reconcile_attempts,
        )

    # ── Plumbing ─────────────────────────────────────────────────────────────

    async def _gather(self, calls: Sequence[Call]) -> Tuple[List[Any], List[Exception]]:
        """Run repository calls concurrently; split results from failures."""
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(fn, *args) for fn, *args in calls),
            return_exceptions=True,
        )
        results, errors = [], []
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results, errors

    async def _push(self, failure_message: str, calls: Sequence[Call]) -> List[Any]:
        """Phase two: send writes; on any failure notify, revert, raise."""
        if not calls:
            return []
        results, errors = await self._gather(calls)
        if not errors:
            return results

        logger.error(f"{failure_message}: {len(errors)}/{len(calls)} remote writes failed")
        self.notifier.error(failure_message, str(errors[0]))
        await self._revert()
        if results:
            raise PartialBulkFailure(
                f"{failure_message}: {len(errors)} of {len(calls)} writes failed",
                succeeded=len(results),
                failed=len(errors),
            ) from errors[0]
        raise RemoteWriteFailure(f"{failure_message}: {errors[0]}") from errors[0]

    def _reject(self, message: str, error: BoardError) -> BoardError:
        """Notify a local validation/lookup failure and hand back the error."""
        self.notifier.error(message, str(error))
        return error

    async def _fetch(self) -> None:
        tasks, milestones = await asyncio.gather(
            asyncio.to_thread(self.repository.list_tasks),
            asyncio.to_thread(self.repository.list_milestones),
        )
        self.tasks.replace_all(tasks)
        self.milestones.replace_all(milestones)

    async def _refetch(self) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.reconcile_attempts + 1):
            try:
                await self._fetch()
            except Exception as e:
                last_error = e
                logger.warning(f"Reconcile attempt {attempt}/{self.reconcile_attempts} failed: {e}")
                continue
            logger.info(f"Reconciled board: {len(self.tasks)} tasks, {len(self.milestones)} milestones")
            return
        raise RemoteWriteFailure(
            f"Reconcile failed after {self.reconcile_attempts} attempts: {last_error}"
        ) from last_error

    async def _revert(self) -> None:
        # The failure was already reported; a failed refetch is only logged
        try:
            await self._refetch()
        except RemoteWriteFailure as e:
            logger.error(f"Could not restore canonical state: {e}")

    # ── Loading ──────────────────────────────────────────────────────────────

    async def load(self) -> None:
        """Initial fetch of the canonical board."""
        await self.reconcile(failure_message="Failed to load board")

    async def reconcile(self, failure_message: str = "Failed to refresh board") -> None:
        """Discard local state and replace it with a fresh canonical snapshot."""
        try:
            await self._refetch()
        except RemoteWriteFailure as e:
            self.notifier.error(failure_message, str(e))
            raise

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def add_task(
        self,
        title: str,
        status: Union[TaskStatus, str] = TaskStatus.TODO,
        description: Optional[str] = None,
        milestone_id: Optional[str] = None,
    ) -> Task:
        """Create a task at the end of its column; returns the server record."""
        try:
            local = self.tasks.create(title, TaskStatus.from_str(status), description, milestone_id)
        except ValidationError as e:
            raise self._reject("Failed to add task", e)

        [created] = await self._push("Failed to add task", [(self.repository.create_task, local)])
        if self.tasks.contains(local.id):
            self.tasks.rekey(local.id, created)
        return created

    async def update_task(self, task_id: str, patch: Union[TaskPatch, Dict[str, Any]]) -> Task:
        return await self._update_task(task_id, patch, "Failed to update task")

    async def _update_task(self, task_id: str, patch, failure_message: str) -> Task:
        try:
            if isinstance(patch, dict):
                patch = TaskPatch.from_dict(patch)
            self.tasks.mutate(task_id, patch)
        except (NotFound, ValidationError) as e:
            raise self._reject(failure_message, e)

        [canonical] = await self._push(
            failure_message, [(self.repository.patch_task, task_id, patch)]
        )
        self.tasks.upsert([canonical])
        return canonical

    async def toggle_stuck(
        self,
        task_id: str,
        is_stuck: bool,
        stuck_content: Optional[str] = None,
        stuck_solution: Optional[str] = None,
    ) -> Task:
        """Flag a blocker; clearing it also clears the notes."""
        patch = TaskPatch(
            is_stuck=is_stuck,
            stuck_content=stuck_content if is_stuck else None,
            stuck_solution=stuck_solution if is_stuck else None,
        )
        return await self._update_task(task_id, patch, "Failed to update stuck status")

    async def delete_task(self, task_id: str) -> None:
        try:
            self.tasks.remove(task_id)
        except NotFound as e:
            raise self._reject("Failed to delete task", e)
        await self._push("Failed to delete task", [(self.repository.delete_task, task_id)])

    async def move_task(
        self,
        task_id: str,
        target: Union[TaskStatus, str],
        insert_index: Optional[int] = None,
    ) -> List[Task]:
        """
        Apply a drop: (task, column, index?). Returns the resulting task list.

        Unknown ids and in-place drops are no-ops and send nothing.
        """
        try:
            target = TaskStatus.from_str(target)
        except ValidationError as e:
            raise self._reject("Failed to move task", e)

        before = self.tasks.list()
        after = ordering.move_task(before, task_id, target, insert_index)
        if after is before:
            logger.debug(f"Move of {task_id} to {target.value} is a no-op")
            return before

        self.tasks.replace_all(after)
        canonical = await self._push("Failed to move task", self._order_writes(before, after))
        self.tasks.upsert(canonical)
        return self.tasks.list()

    def _order_writes(self, before: List[Task], after: List[Task]) -> List[Call]:
        """One status/order patch per task whose position actually changed."""
        previous = {t.id: t for t in before}
        calls = []
        for task in ordering.changed_tasks(before, after):
            old = previous.get(task.id)
            patch = TaskPatch()
            if old is None or old.status != task.status:
                patch.status = task.status
            if old is None or old.order != task.order:
                patch.order = task.order
            if not patch.is_empty():
                calls.append((self.repository.patch_task, task.id, patch))
        return calls

    async def bulk_move(
        self,
        from_status: Union[TaskStatus, str],
        to_status: Union[TaskStatus, str],
    ) -> List[Task]:
        """Move every task in one column to another; returns the moved tasks."""
        try:
            from_status = TaskStatus.from_str(from_status)
            to_status = TaskStatus.from_str(to_status)
        except ValidationError as e:
            raise self._reject("Failed to move tasks", e)

        after, moved = ordering.bulk_move_by_status(self.tasks.list(), from_status, to_status)
        if not moved:
            return []

        self.tasks.replace_all(after)
        calls = [(self.repository.patch_task, t.id, TaskPatch(status=to_status)) for t in moved]
        canonical = await self._push("Failed to move tasks", calls)
        self.tasks.upsert(canonical)
        self.notifier.success(f"Moved {len(moved)} tasks to {COLUMNS[to_status].title}")
        return moved

    async def bulk_move_column(self, from_status: Union[TaskStatus, str]) -> List[Task]:
        """Sweep a column to its configured next column (e.g. Today's Done → Weekly Done)."""
        try:
            column = COLUMNS[TaskStatus.from_str(from_status)]
            if not column.can_bulk_move or column.bulk_move_target is None:
                raise ValidationError(f"{column.title} cannot be bulk moved")
        except ValidationError as e:
            raise self._reject("Failed to move tasks", e)
        return await self.bulk_move(column.status, column.bulk_move_target)

    # ── Milestones ───────────────────────────────────────────────────────────

    async def add_milestone(
        self,
        title: str,
        color: str = "#6366f1",
        description: Optional[str] = None,
    ) -> Milestone:
        try:
            local = self.milestones.create(title, color, description)
        except ValidationError as e:
            raise self._reject("Failed to add milestone", e)

        [created] = await self._push(
            "Failed to add milestone", [(self.repository.create_milestone, local)]
        )
        if self.milestones.find(local.id) is not None:
            self.milestones.rekey(local.id, created)
        return created

    async def update_milestone(
        self,
        milestone_id: str,
        patch: Union[MilestonePatch, Dict[str, Any]],
    ) -> Milestone:
        try:
            if isinstance(patch, dict):
                patch = MilestonePatch.from_dict(patch)
            self.milestones.mutate(milestone_id, patch)
        except (NotFound, ValidationError) as e:
            raise self._reject("Failed to update milestone", e)

        [canonical] = await self._push(
            "Failed to update milestone",
            [(self.repository.patch_milestone, milestone_id, patch)],
        )
        self.milestones.upsert([canonical])
        return canonical

    async def delete_milestone(self, milestone_id: str) -> List[Task]:
        """
        Delete a milestone; its tasks stay and lose the reference.

        Returns the tasks whose milestone was cleared. Clearing them remotely
        is best effort: failures are logged, not raised.
        """
        try:
            self.milestones.remove(milestone_id)
        except NotFound as e:
            raise self._reject("Failed to delete milestone", e)
        touched = self.tasks.clear_milestone(milestone_id)

        await self._push(
            "Failed to delete milestone", [(self.repository.delete_milestone, milestone_id)]
        )

        calls = [(self.repository.patch_task, t.id, TaskPatch(milestone_id=None)) for t in touched]
        results, errors = await self._gather(calls)
        for error in errors:
            logger.warning(f"Could not clear milestone {milestone_id} from a task: {error}")
        self.tasks.upsert(results)
        return touched

    def resolve_milestone(self, task: Task) -> Optional[Milestone]:
        return self.milestones.resolve(task.milestone_id)

    # ── Import / export ──────────────────────────────────────────────────────

    def export_board(self) -> Dict[str, Any]:
        return build_export(self.tasks.list(), self.milestones.list())

    async def import_board(
        self,
        payload: Union[str, bytes, Dict[str, Any]],
        id_map: Optional[Dict[str, str]] = None,
    ) -> BoardSnapshot:
        """
        Replace the whole board with an export payload.

        Existing milestones and tasks are deleted one by one, then the
        imported ones are created. Task milestone ids go through id_map
        first and then through the old→new ids assigned on milestone
        creation, so an identity id_map still lands on the new milestones.
        A failure aborts the import where it stands.
        """
        try:
            snapshot = parse_import(payload)
        except ValidationError as e:
            raise self._reject("Import failed", e)

        progress = {"done": 0}

        async def step(calls: List[Call]) -> List[Any]:
            results, errors = await self._gather(calls)
            progress["done"] += len(results)
            if errors:
                self.notifier.error("Import failed", str(errors[0]))
                logger.error(
                    f"Import aborted after {progress['done']} remote writes; "
                    f"board may be partially replaced"
                )
                if progress["done"]:
                    raise PartialBulkFailure(
                        f"Import failed: {errors[0]}",
                        succeeded=progress["done"],
                        failed=len(errors),
                    ) from errors[0]
                raise RemoteWriteFailure(f"Import failed: {errors[0]}") from errors[0]
            return results

        await step([(self.repository.delete_milestone, m.id) for m in self.milestones.list()])
        created_milestones = await step(
            [(self.repository.create_milestone, m) for m in snapshot.milestones]
        )
        created_ids = {old.id: new.id for old, new in zip(snapshot.milestones, created_milestones)}

        await step([(self.repository.delete_task, t.id) for t in self.tasks.list()])
        created_tasks = await step(
            [(self.repository.create_task, _remap(t, created_ids, id_map or {}))
             for t in snapshot.tasks]
        )

        self.milestones.replace_all(created_milestones)
        self.tasks.replace_all(created_tasks)
        self.notifier.success(
            f"Imported {len(created_tasks)} tasks and {len(created_milestones)} milestones"
        )
        return BoardSnapshot(
            exported_at=snapshot.exported_at,
            version=snapshot.version,
            tasks=created_tasks,
            milestones=created_milestones,
        )

    # ── Views ────────────────────────────────────────────────────────────────

    def column(self, status: Union[TaskStatus, str]) -> List[Task]:
        return self.tasks.column(TaskStatus.from_str(status))

    def on_change(self, callback: Callable[[List[Task]], None]) -> Callable[[], None]:
        return self.tasks.subscribe(callback)


def _remap(task: Task, created_ids: Dict[str, str], id_map: Dict[str, str]) -> Task:
    """
    Point a task at the milestone re-created for it.

    The caller's id_map is applied to the exported id first, then the result
    goes through the ids assigned on milestone creation. A mapped id with no
    re-created milestone is kept as the id_map target.
    """
    if not task.milestone_id:
        return task
    resolved = id_map.get(task.milestone_id, task.milestone_id)
    new_id = created_ids.get(resolved, resolved)
    if new_id == task.milestone_id:
        return task
    return replace(task, milestone_id=new_id)
