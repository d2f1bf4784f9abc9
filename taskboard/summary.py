"""
Inputs for the daily / weekly summary generator.

Text generation itself lives behind an HTTP endpoint. This module picks the
task subsets for a column, resolves milestone titles, builds the prompt, and
parses the structured reply.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from .config import BoardConfig
from .errors import RemoteWriteFailure, ValidationError
from .ordering import tasks_by_status
from .schema import COLUMNS, Milestone, Task, TaskStatus, format_ts

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TaskStatus.TODO, TaskStatus.IN_PROGRESS)


@dataclass
class Blocker:
    issue: str
    cause: str
    solution: str


@dataclass
class DailySummary:
    progress: List[str] = field(default_factory=list)
    blockers: List[Blocker] = field(default_factory=list)


@dataclass
class WeeklySummary:
    highlights: List[str] = field(default_factory=list)
    recurring_issues: List[str] = field(default_factory=list)
    learnings: List[str] = field(default_factory=list)


def _task_entry(task: Task, milestones: Dict[str, Milestone]) -> Dict[str, Any]:
    milestone = milestones.get(task.milestone_id) if task.milestone_id else None
    return {
        "title": task.title,
        "description": task.description,
        "milestone": milestone.title if milestone else None,
        "isStuck": task.is_stuck,
        "stuckContent": task.stuck_content,
        "stuckSolution": task.stuck_solution,
    }


def daily_summary_input(
    todays_done: Sequence[Task],
    all_tasks: Sequence[Task],
    milestones: Sequence[Milestone],
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Today's finished tasks plus the still-open tasks that share a milestone
    with any of them. Dangling milestone ids resolve to None.
    """
    by_id = {m.id: m for m in milestones}
    touched = {t.milestone_id for t in todays_done if t.milestone_id}
    related = [
        t for t in all_tasks
        if t.status in OPEN_STATUSES and t.milestone_id and t.milestone_id in touched
    ]
    return {
        "completed": [_task_entry(t, by_id) for t in todays_done],
        "related": [_task_entry(t, by_id) for t in related],
    }


def weekly_summary_input(tasks: Sequence[Task]) -> List[Dict[str, Any]]:
    return [
        {
            "title": t.title,
            "description": t.description,
            "isStuck": t.is_stuck,
            "stuckContent": t.stuck_content,
            "stuckSolution": t.stuck_solution,
            "createdAt": format_ts(t.created_at),
        }
        for t in tasks
    ]


def daily_prompt(data: Dict[str, List[Dict[str, Any]]]) -> str:
    return (
        "Summarize today's completed tasks and the progress of their milestones "
        "for a daily report.\n\n"
        f"Completed today:\n{json.dumps(data['completed'], indent=2, ensure_ascii=False)}\n\n"
        f"Open tasks in the same milestones:\n{json.dumps(data['related'], indent=2, ensure_ascii=False)}\n\n"
        "Reply with JSON only:\n"
        '{"progress": ["..."], "blockers": [{"issue": "...", "cause": "...", "solution": "..."}]}\n'
        "Use an empty blockers list when nothing was stuck."
    )


def weekly_prompt(data: List[Dict[str, Any]]) -> str:
    return (
        "Summarize this week's completed tasks for a team retrospective.\n\n"
        f"Completed tasks:\n{json.dumps(data, indent=2, ensure_ascii=False)}\n\n"
        "Reply with JSON only:\n"
        '{"highlights": ["..."], "recurringIssues": ["..."], "learnings": ["..."]}\n'
        "Use empty lists where nothing applies."
    )


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"Summary field {key} must be a list of strings")
    return value


def parse_daily(data: Any) -> DailySummary:
    if not isinstance(data, dict):
        raise ValidationError("Daily summary must be an object")
    blockers = []
    for raw in data.get("blockers", []):
        if not isinstance(raw, dict):
            raise ValidationError("Each blocker must be an object")
        blockers.append(Blocker(
            issue=str(raw.get("issue", "")),
            cause=str(raw.get("cause", "")),
            solution=str(raw.get("solution", "")),
        ))
    return DailySummary(progress=_str_list(data, "progress"), blockers=blockers)


def parse_weekly(data: Any) -> WeeklySummary:
    if not isinstance(data, dict):
        raise ValidationError("Weekly summary must be an object")
    return WeeklySummary(
        highlights=_str_list(data, "highlights"),
        recurring_issues=_str_list(data, "recurringIssues"),
        learnings=_str_list(data, "learnings"),
    )


class HttpSummaryGenerator:
    """POSTs {"prompt": ...} to a summary endpoint and parses the JSON reply."""

    def __init__(self, url: str, timeout: float = 60):
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: BoardConfig) -> "HttpSummaryGenerator":
        return cls(cfg.summary_url)

    def _generate(self, prompt: str) -> Any:
        try:
            r = requests.post(self.url, json={"prompt": prompt}, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteWriteFailure(f"Summary request failed: {e}") from e
        if not r.ok:
            raise RemoteWriteFailure(f"Summary request rejected ({r.status_code})")
        try:
            summary = r.json()["summary"]
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationError("Summary response has no summary field") from e
        # Endpoint may hand back the model output as a JSON string
        if isinstance(summary, str):
            try:
                summary = json.loads(summary)
            except json.JSONDecodeError as e:
                raise ValidationError("Summary is not valid JSON") from e
        return summary

    def daily(
        self,
        todays_done: Sequence[Task],
        all_tasks: Sequence[Task],
        milestones: Sequence[Milestone],
    ) -> Optional[DailySummary]:
        """None when nothing was finished today."""
        if not todays_done:
            return None
        prompt = daily_prompt(daily_summary_input(todays_done, all_tasks, milestones))
        logger.info(f"Requesting daily summary for {len(todays_done)} tasks")
        return parse_daily(self._generate(prompt))

    def weekly(self, tasks: Sequence[Task]) -> Optional[WeeklySummary]:
        if not tasks:
            return None
        logger.info(f"Requesting weekly summary for {len(tasks)} tasks")
        return parse_weekly(self._generate(weekly_prompt(weekly_summary_input(tasks))))

    def for_column(
        self,
        status: Union[TaskStatus, str],
        all_tasks: Sequence[Task],
        milestones: Sequence[Milestone],
    ) -> Union[DailySummary, WeeklySummary, None]:
        """
        Summarize one board column: daily for Today's Done, weekly for
        Weekly Done. Other columns raise ValidationError.
        """
        column = COLUMNS[TaskStatus.from_str(status)]
        if not column.can_summarize:
            raise ValidationError(f"{column.title} cannot be summarized")
        tasks = tasks_by_status(all_tasks, column.status)
        if column.status == TaskStatus.TODAYS_DONE:
            return self.daily(tasks, all_tasks, milestones)
        return self.weekly(tasks)
