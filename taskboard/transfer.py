"""
Board import/export payloads.

Shape:
    {
      "exportedAt": "<ISO-8601>",
      "version": "1.0",
      "data": {"tasks": [...], "milestones": [...]}
    }
"""
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError
from .schema import Milestone, Task, format_ts, utc_now

EXPORT_VERSION = "1.0"


@dataclass
class BoardSnapshot:
    """Parsed import payload."""
    exported_at: str
    version: str
    tasks: List[Task]
    milestones: List[Milestone]


def build_export(
    tasks: List[Task],
    milestones: List[Milestone],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    return {
        "exportedAt": format_ts(now or utc_now()),
        "version": EXPORT_VERSION,
        "data": {
            "tasks": [t.to_dict() for t in tasks],
            "milestones": [m.to_dict() for m in milestones],
        },
    }


def parse_import(payload: Union[str, bytes, Dict[str, Any]]) -> BoardSnapshot:
    """
    Validate an export payload and deserialize its records.

    Raises ValidationError when the JSON is malformed, when data.tasks or
    data.milestones is missing, or when any record is invalid.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import file is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ValidationError("Invalid import format: expected an object")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValidationError("Invalid import format: missing data")
    if not isinstance(data.get("tasks"), list) or not isinstance(data.get("milestones"), list):
        raise ValidationError("Invalid import format: data.tasks and data.milestones are required")

    tasks = []
    for i, raw in enumerate(data["tasks"]):
        try:
            tasks.append(Task.from_dict(raw))
        except ValidationError as e:
            raise ValidationError(f"Invalid task at index {i}: {e}") from e

    milestones = []
    for i, raw in enumerate(data["milestones"]):
        try:
            milestones.append(Milestone.from_dict(raw))
        except ValidationError as e:
            raise ValidationError(f"Invalid milestone at index {i}: {e}") from e

    return BoardSnapshot(
        exported_at=str(payload.get("exportedAt", "")),
        version=str(payload.get("version", "")),
        tasks=tasks,
        milestones=milestones,
    )


def export_filename(now: Optional[datetime] = None) -> str:
    return f"taskboard-export-{(now or utc_now()).date().isoformat()}.json"


def write_export(payload: Dict[str, Any], directory: Union[str, Path]) -> Path:
    """Write a payload as pretty-printed JSON; returns the file path."""
    path = Path(directory) / export_filename()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    return path


def read_import(path: Union[str, Path]) -> BoardSnapshot:
    with open(path, "r", encoding="utf-8") as f:
        return parse_import(f.read())
