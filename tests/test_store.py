"""
Tests for the in-memory task and milestone stores.
"""
import pytest

from conftest import make_milestone, make_task

from taskboard.errors import NotFound, ValidationError
from taskboard.schema import TaskPatch, TaskStatus
from taskboard.store import MilestoneStore, TaskStore


class TestTaskStore:

    def test_create_defaults(self):
        store = TaskStore()
        task = store.create("Write report")
        assert task.status == TaskStatus.TODO
        assert task.is_stuck is False
        assert task.id
        assert task.created_at == task.updated_at
        assert store.list() == [task]

    def test_create_orders_increase(self):
        store = TaskStore()
        first = store.create("a")
        second = store.create("b")
        third = store.create("c", TaskStatus.IN_PROGRESS)
        assert first.order < second.order < third.order
        assert [t.id for t in store.column(TaskStatus.TODO)] == [first.id, second.id]

    def test_create_rejects_blank_title(self):
        store = TaskStore()
        with pytest.raises(ValidationError):
            store.create("   ")
        assert store.list() == []

    def test_mutate_merges_and_refreshes_updated_at(self):
        store = TaskStore([make_task(1)])
        updated = store.mutate("1", TaskPatch(description="details", order=9))
        assert updated.description == "details"
        assert updated.order == 9
        assert updated.title == "Task 1"
        assert updated.updated_at > updated.created_at
        assert store.get("1") == updated

    def test_mutate_accepts_wire_dict(self):
        store = TaskStore([make_task(1)])
        updated = store.mutate("1", {"status": "weekly-done", "isStuck": True})
        assert updated.status == TaskStatus.WEEKLY_DONE
        assert updated.is_stuck is True

    def test_mutate_rejects_unknown_field(self):
        store = TaskStore([make_task(1)])
        with pytest.raises(ValidationError):
            store.mutate("1", {"createdAt": "2024-01-01T00:00:00Z"})

    def test_mutate_missing_raises_not_found(self):
        store = TaskStore()
        with pytest.raises(NotFound):
            store.mutate("nope", TaskPatch(title="x"))

    def test_remove(self):
        store = TaskStore([make_task(1), make_task(2)])
        removed = store.remove("1")
        assert removed.id == "1"
        assert [t.id for t in store.list()] == ["2"]
        with pytest.raises(NotFound):
            store.remove("1")

    def test_list_is_a_copy(self):
        store = TaskStore([make_task(1)])
        snapshot = store.list()
        snapshot.clear()
        assert len(store) == 1

    def test_upsert_replaces_known_ids_only(self):
        store = TaskStore([make_task(1), make_task(2)])
        store.upsert([make_task(2, title="New"), make_task(9)])
        assert [t.title for t in store.list()] == ["Task 1", "New"]

    def test_rekey_swaps_local_id(self):
        store = TaskStore([make_task(1)])
        store.rekey("1", make_task(77))
        assert [t.id for t in store.list()] == ["77"]

    def test_clear_milestone(self):
        store = TaskStore([
            make_task(1, milestone_id="m1"),
            make_task(2, milestone_id="m2"),
            make_task(3, milestone_id="m1"),
        ])
        touched = store.clear_milestone("m1")
        assert {t.id for t in touched} == {"1", "3"}
        assert [t.milestone_id for t in store.list()] == [None, "m2", None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Subscribers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_every_write_notifies_with_full_list():
    store = TaskStore()
    seen = []
    store.subscribe(lambda tasks: seen.append([t.title for t in tasks]))

    task = store.create("a")
    store.create("b")
    store.mutate(task.id, TaskPatch(title="A"))
    store.remove(task.id)
    store.replace_all([])

    assert seen == [["a"], ["a", "b"], ["A", "b"], ["b"], []]


def test_unsubscribe_stops_notifications():
    store = TaskStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.create("a")
    unsubscribe()
    store.create("b")
    assert len(seen) == 1


def test_failing_subscriber_does_not_break_others():
    store = TaskStore()
    seen = []

    def broken(tasks):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.create("a")
    assert len(seen) == 1


def test_failed_mutation_does_not_notify():
    store = TaskStore([make_task(1)])
    seen = []
    store.subscribe(seen.append)
    with pytest.raises(NotFound):
        store.mutate("2", TaskPatch(title="x"))
    assert seen == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Milestones
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_milestone_create_and_mutate():
    store = MilestoneStore()
    milestone = store.create("Launch", "#00ff00")
    updated = store.mutate(milestone.id, {"title": "Launch v2"})
    assert updated.title == "Launch v2"
    assert updated.color == "#00ff00"


def test_milestone_resolve_dangling_is_none():
    store = MilestoneStore([make_milestone("m1")])
    assert store.resolve("m1").title == "Milestone m1"
    assert store.resolve("gone") is None
    assert store.resolve(None) is None
