#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over the SQLite board store. This is the persistence side that
HttpRepository talks to.

Usage:
    python taskboard_server.py --port 3000 --db ~/.local/share/taskboard/board.db

API:
    GET    /api/tasks               → [task, ...] by order key
    POST   /api/tasks               → task (201), server assigns the id
    PATCH  /api/tasks/<id>          → task
    DELETE /api/tasks/<id>          → { success }
    GET    /api/milestones          → [milestone, ...] newest first
    POST   /api/milestones          → milestone (201)
    PATCH  /api/milestones/<id>     → milestone
    DELETE /api/milestones/<id>     → { success }, clears tasks' milestoneId
    GET    /api/board               → { columns, counts, milestones }
    GET    /health                  → { status, db }

Writes require an X-API-Key header matching TASKBOARD_API_SECRET.
"""

import argparse
import hmac
import logging
from functools import wraps

from flask import Flask, current_app, jsonify, request

from taskboard.config import BoardConfig, setup_logging
from taskboard.errors import NotFound, RemoteWriteFailure, ValidationError
from taskboard.ordering import tasks_by_status
from taskboard.repository import SQLiteRepository
from taskboard.schema import (
    COLUMNS,
    STATUS_SEQUENCE,
    Milestone,
    MilestonePatch,
    Task,
    TaskPatch,
)

logger = logging.getLogger("taskboard_server")


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config.get("API_SECRET", "")
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


def _repo() -> SQLiteRepository:
    return current_app.config["REPOSITORY"]


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ── App ──────────────────────────────────────────────────────────────────────

def create_app(repository: SQLiteRepository, api_secret: str = "") -> Flask:
    app = Flask(__name__)
    app.config["REPOSITORY"] = repository
    app.config["API_SECRET"] = api_secret

    @app.errorhandler(ValidationError)
    def _bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(NotFound)
    def _not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(RemoteWriteFailure)
    def _storage_error(e):
        app.logger.error(f"Storage error: {e}")
        return jsonify({"error": "Storage failure"}), 500

    # ── Tasks ──

    @app.route("/api/tasks", methods=["GET"])
    def api_list_tasks():
        return jsonify([t.to_dict() for t in _repo().list_tasks()])

    @app.route("/api/tasks", methods=["POST"])
    @require_api_key
    def api_create_task():
        data = _json_body()
        task = _repo().create_task(Task.from_dict(data))
        return jsonify(task.to_dict()), 201

    @app.route("/api/tasks/<task_id>", methods=["PATCH"])
    @require_api_key
    def api_patch_task(task_id):
        patch = TaskPatch.from_dict(_json_body())
        return jsonify(_repo().patch_task(task_id, patch).to_dict())

    @app.route("/api/tasks/<task_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_task(task_id):
        _repo().delete_task(task_id)
        return jsonify({"success": True})

    # ── Milestones ──

    @app.route("/api/milestones", methods=["GET"])
    def api_list_milestones():
        return jsonify([m.to_dict() for m in _repo().list_milestones()])

    @app.route("/api/milestones", methods=["POST"])
    @require_api_key
    def api_create_milestone():
        milestone = _repo().create_milestone(Milestone.from_dict(_json_body()))
        return jsonify(milestone.to_dict()), 201

    @app.route("/api/milestones/<milestone_id>", methods=["PATCH"])
    @require_api_key
    def api_patch_milestone(milestone_id):
        patch = MilestonePatch.from_dict(_json_body())
        return jsonify(_repo().patch_milestone(milestone_id, patch).to_dict())

    @app.route("/api/milestones/<milestone_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_milestone(milestone_id):
        _repo().delete_milestone(milestone_id)
        return jsonify({"success": True})

    # ── Board ──

    @app.route("/api/board")
    def api_board():
        tasks = _repo().list_tasks()
        columns = {
            status.value: [t.to_dict() for t in tasks_by_status(tasks, status)]
            for status in STATUS_SEQUENCE
        }
        return jsonify({
            "columns": columns,
            "titles": {status.value: COLUMNS[status].title for status in STATUS_SEQUENCE},
            "counts": {key: len(items) for key, items in columns.items()},
            "milestones": [m.to_dict() for m in _repo().list_milestones()],
        })

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "db": _repo().db_path})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to board.db (overrides TASKBOARD_DB)")
    args = parser.parse_args(argv)

    cfg = BoardConfig.load(args.config)
    if args.db:
        cfg.db_path = args.db
        cfg.resolve_paths()
    setup_logging(cfg.log_level)

    if not cfg.api_secret:
        logger.warning("TASKBOARD_API_SECRET is not set; write endpoints will answer 503")

    app = create_app(SQLiteRepository(cfg.db_path), cfg.api_secret)
    host = args.host or cfg.host
    port = args.port or cfg.port
    logger.info(f"Serving task board on http://{host}:{port} (db: {cfg.db_path})")
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
