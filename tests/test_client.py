"""
Tests for HttpRepository (requests session mocked).
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import make_task

from taskboard.client import HttpRepository
from taskboard.errors import NotFound, RemoteWriteFailure
from taskboard.schema import TaskPatch, TaskStatus


def _response(status=200, body=None, text=""):
    r = MagicMock()
    r.status_code = status
    r.ok = 200 <= status < 300
    r.content = b"x" if body is not None else b""
    r.text = text
    if body is None:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = body
    return r


@pytest.fixture
def api():
    return HttpRepository("http://board.test/", api_key="k", timeout=3)


def test_sends_api_key(api):
    assert api.session.headers["X-API-Key"] == "k"
    assert api.base_url == "http://board.test"


def test_list_tasks(api):
    body = [make_task(1, TaskStatus.DONE, 4).to_dict()]
    with patch.object(api.session, "request", return_value=_response(body=body)) as req:
        tasks = api.list_tasks()
    req.assert_called_once_with("GET", "http://board.test/api/tasks", json=None, timeout=3)
    assert [(t.id, t.status, t.order) for t in tasks] == [("1", TaskStatus.DONE, 4)]


def test_patch_sends_only_changed_fields(api):
    body = make_task(1, TaskStatus.IN_PROGRESS).to_dict()
    with patch.object(api.session, "request", return_value=_response(body=body)) as req:
        api.patch_task("1", TaskPatch(status=TaskStatus.IN_PROGRESS, milestone_id=None))
    assert req.call_args.kwargs["json"] == {"status": "in-progress", "milestoneId": None}


def test_delete_with_empty_body(api):
    with patch.object(api.session, "request", return_value=_response(status=204)):
        assert api.delete_task("1") is None


def test_404_is_not_found(api):
    with patch.object(api.session, "request", return_value=_response(404, {"error": "gone"})):
        with pytest.raises(NotFound):
            api.delete_milestone("m1")


def test_server_error_is_remote_failure(api):
    with patch.object(api.session, "request", return_value=_response(500, {"error": "disk full"})):
        with pytest.raises(RemoteWriteFailure, match="disk full"):
            api.create_task(make_task(1))


def test_transport_error_is_remote_failure(api):
    with patch.object(api.session, "request", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(RemoteWriteFailure):
            api.list_milestones()


def test_health(api):
    with patch.object(api.session, "get", return_value=_response(body={"status": "ok"})):
        assert api.health() is True
    with patch.object(api.session, "get", side_effect=requests.Timeout()):
        assert api.health() is False
