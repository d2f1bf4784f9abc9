"""
Tests for summary inputs, prompt parsing, and the HTTP generator.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from conftest import make_milestone, make_task

from taskboard.errors import RemoteWriteFailure, ValidationError
from taskboard.schema import TaskStatus
from taskboard.summary import (
    HttpSummaryGenerator,
    daily_summary_input,
    parse_daily,
    parse_weekly,
    weekly_summary_input,
)


def test_daily_input_collects_related_open_tasks():
    done = [
        make_task(1, TaskStatus.TODAYS_DONE, milestone_id="m1"),
        make_task(2, TaskStatus.TODAYS_DONE, milestone_id="gone"),
    ]
    everything = done + [
        make_task(3, TaskStatus.TODO, milestone_id="m1"),
        make_task(4, TaskStatus.IN_PROGRESS, milestone_id="m1"),
        make_task(5, TaskStatus.DONE, milestone_id="m1"),
        make_task(6, TaskStatus.TODO, milestone_id="m2"),
        make_task(7, TaskStatus.TODO),
    ]
    data = daily_summary_input(done, everything, [make_milestone("m1", "Launch")])

    assert [c["milestone"] for c in data["completed"]] == ["Launch", None]
    assert [r["title"] for r in data["related"]] == ["Task 3", "Task 4"]


def test_weekly_input_carries_stuck_notes():
    task = make_task(1, TaskStatus.WEEKLY_DONE, is_stuck=True, stuck_content="flaky CI")
    [entry] = weekly_summary_input([task])
    assert entry["isStuck"] is True
    assert entry["stuckContent"] == "flaky CI"
    assert entry["createdAt"].startswith("2024-05-01T09:01")


def test_parse_daily():
    summary = parse_daily({
        "progress": ["Shipped login"],
        "blockers": [{"issue": "CI", "cause": "cache", "solution": "purge"}],
    })
    assert summary.progress == ["Shipped login"]
    assert summary.blockers[0].solution == "purge"


def test_parse_rejects_wrong_shapes():
    with pytest.raises(ValidationError):
        parse_daily({"progress": "one string"})
    with pytest.raises(ValidationError):
        parse_weekly(["not", "an", "object"])


def _reply(body, status=200):
    r = MagicMock()
    r.ok = status < 400
    r.status_code = status
    r.json.return_value = body
    return r


def test_generator_skips_empty_columns():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    with patch("taskboard.summary.requests.post") as post:
        assert gen.daily([], [], []) is None
        assert gen.weekly([]) is None
    post.assert_not_called()


def test_generator_decodes_string_summary():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    text = json.dumps({"highlights": ["a"], "recurringIssues": [], "learnings": ["b"]})
    with patch("taskboard.summary.requests.post", return_value=_reply({"summary": text})) as post:
        summary = gen.weekly([make_task(1, TaskStatus.WEEKLY_DONE)])
    assert summary.highlights == ["a"]
    assert summary.learnings == ["b"]
    assert "prompt" in post.call_args.kwargs["json"]


def test_generator_http_failure():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    with patch("taskboard.summary.requests.post", return_value=_reply({}, status=502)):
        with pytest.raises(RemoteWriteFailure):
            gen.daily([make_task(1, TaskStatus.TODAYS_DONE)], [], [])


def test_for_column_picks_summary_kind():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    tasks = [
        make_task(1, TaskStatus.TODAYS_DONE, 2),
        make_task(2, TaskStatus.TODAYS_DONE, 1),
        make_task(3, TaskStatus.WEEKLY_DONE),
    ]
    daily = {"progress": ["p"], "blockers": []}
    with patch("taskboard.summary.requests.post", return_value=_reply({"summary": daily})) as post:
        summary = gen.for_column("todays-done", tasks, [])
    assert summary.progress == ["p"]
    prompt = post.call_args.kwargs["json"]["prompt"]
    assert prompt.index("Task 2") < prompt.index("Task 1")
    assert "Task 3" not in prompt


def test_for_column_weekly():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    weekly = {"highlights": ["h"], "recurringIssues": [], "learnings": []}
    with patch("taskboard.summary.requests.post", return_value=_reply({"summary": weekly})):
        summary = gen.for_column(TaskStatus.WEEKLY_DONE, [make_task(1, TaskStatus.WEEKLY_DONE)], [])
    assert summary.highlights == ["h"]


def test_for_column_rejects_columns_without_summaries():
    gen = HttpSummaryGenerator("http://board.test/api/summary")
    with patch("taskboard.summary.requests.post") as post:
        for status in (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE):
            with pytest.raises(ValidationError):
                gen.for_column(status, [make_task(1, status)], [])
    post.assert_not_called()
