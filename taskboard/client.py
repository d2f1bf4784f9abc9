"""
HTTP client for the task board API.

Implements the same persistence contract as SQLiteRepository over the REST
endpoints served by taskboard_server.py. Every failure surfaces as
RemoteWriteFailure (404 as NotFound).
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .config import BoardConfig
from .errors import NotFound, RemoteWriteFailure
from .schema import Milestone, MilestonePatch, Task, TaskPatch

logger = logging.getLogger(__name__)


class HttpRepository:
    """requests-based client for /api/tasks and /api/milestones."""

    def __init__(self, base_url: str = "http://localhost:3000", api_key: str = "", timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({"X-API-Key": api_key})

    @classmethod
    def from_config(cls, cfg: BoardConfig) -> "HttpRepository":
        """Client for cfg.api_url, authenticated with cfg.api_secret."""
        return cls(cfg.api_url, api_key=cfg.api_secret, timeout=cfg.request_timeout)

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise RemoteWriteFailure(f"{method} {path} failed: {e}") from e

        if r.status_code == 404:
            raise NotFound(path.split("/")[2].rstrip("s"), path.rsplit("/", 1)[-1])
        if not r.ok:
            detail = _error_detail(r)
            logger.warning(f"{method} {path} rejected ({r.status_code}): {detail}")
            raise RemoteWriteFailure(f"{method} {path} rejected ({r.status_code}): {detail}")
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise RemoteWriteFailure(f"{method} {path} returned invalid JSON") from e

    def health(self) -> bool:
        """Check if the API is reachable."""
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=2)
            return r.ok
        except requests.RequestException:
            return False

    # ── Tasks ────────────────────────────────────────────────────────────────

    def list_tasks(self) -> List[Task]:
        return [Task.from_dict(d) for d in self._request("GET", "/api/tasks")]

    def create_task(self, task: Task) -> Task:
        return Task.from_dict(self._request("POST", "/api/tasks", json=task.to_dict()))

    def patch_task(self, task_id: str, patch: TaskPatch) -> Task:
        return Task.from_dict(self._request("PATCH", f"/api/tasks/{task_id}", json=patch.to_dict()))

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", f"/api/tasks/{task_id}")

    # ── Milestones ───────────────────────────────────────────────────────────

    def list_milestones(self) -> List[Milestone]:
        return [Milestone.from_dict(d) for d in self._request("GET", "/api/milestones")]

    def create_milestone(self, milestone: Milestone) -> Milestone:
        return Milestone.from_dict(
            self._request("POST", "/api/milestones", json=milestone.to_dict())
        )

    def patch_milestone(self, milestone_id: str, patch: MilestonePatch) -> Milestone:
        return Milestone.from_dict(
            self._request("PATCH", f"/api/milestones/{milestone_id}", json=patch.to_dict())
        )

    def delete_milestone(self, milestone_id: str) -> None:
        self._request("DELETE", f"/api/milestones/{milestone_id}")


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)[:200]
