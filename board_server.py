#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over a single BoardService. The browser UI renders columns,
captures drags and submits forms; this process owns the board.

Usage:
    python board_server.py --port 3000
    python board_server.py --db /tmp/board.db --config taskboard.yaml

API:
    GET    /api/board?q=&sort=    → { columns, preferences, persistence, stats }
    GET    /api/tasks/<id>        → { task, column, index }
    POST   /api/tasks             → form bag; 201 { task, column }
    PUT    /api/tasks/<id>        → form bag; { task }
    DELETE /api/tasks/<id>        → { deleted }
    POST   /api/drag              → { source, destination, q?, sort? } → { moved, columns }
    GET    /api/preferences       → { darkMode }
    POST   /api/preferences       → { darkMode } or { toggle: true }
    GET    /health
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from taskboard.config import BoardConfig
from taskboard.errors import (
    BoardError,
    DuplicateTask,
    TaskNotFound,
    ValidationError,
)
from taskboard.projection import SortKey, use_system_collation
from taskboard.service import BoardService

logger = logging.getLogger(__name__)


def _json_object() -> Dict[str, Any]:
    """Request body as a dict; an empty or unparsable body counts as {}."""
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(["body"], "Request body must be a JSON object")
    return data


def _board_payload(service: BoardService, query: str = "", sort: Optional[str] = None) -> Dict[str, Any]:
    variant = service.variant
    view = service.view(query, sort)
    columns = {name: [t.to_record(variant) for t in tasks] for name, tasks in view.items()}
    snapshot = service.snapshot()
    error = service.last_persistence_error
    return {
        "columns": columns,
        "preferences": service.preferences.to_dict(),
        "persistence": {"ok": error is None, "error": str(error) if error else None},
        "stats": {
            "total": len(snapshot),
            "shown": sum(len(tasks) for tasks in view.values()),
            "by_column": {name: len(tasks) for name, tasks in snapshot.columns.items()},
        },
    }


def create_app(service: Optional[BoardService] = None) -> Flask:
    """Build the Flask app around a board service (opened from config if omitted)."""
    app = Flask(__name__)
    board = service or BoardService.open()
    app.config["BOARD_SERVICE"] = board

    # ── Errors ───────────────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def on_validation_error(e: ValidationError):
        return jsonify({"error": str(e), "fields": e.fields}), 400

    @app.errorhandler(TaskNotFound)
    def on_not_found(e: TaskNotFound):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(DuplicateTask)
    def on_duplicate(e: DuplicateTask):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(BoardError)
    def on_board_error(e: BoardError):
        # InvalidColumn / IndexOutOfRange from a misbehaving client
        logger.warning(f"Rejected request: {e}")
        return jsonify({"error": str(e)}), 400

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/api/board")
    def api_board():
        query = request.args.get("q", "")
        sort = SortKey.from_str(request.args.get("sort")).value
        return jsonify(_board_payload(board, query, sort))

    @app.route("/api/tasks/<task_id>", methods=["GET"])
    def api_get_task(task_id):
        found = board.repository.locate(task_id)
        if found is None:
            raise TaskNotFound(task_id)
        task = board.get_task(task_id)
        return jsonify({"task": task.to_record(board.variant), "column": found[0], "index": found[1]})

    @app.route("/api/tasks", methods=["POST"])
    def api_create_task():
        data = _json_object()
        task = board.create_task(data)
        return jsonify({"task": task.to_record(board.variant), "column": board.intake_column}), 201

    @app.route("/api/tasks/<task_id>", methods=["PUT"])
    def api_update_task(task_id):
        data = _json_object()
        task = board.edit_task_by_id(task_id, data)
        return jsonify({"task": task.to_record(board.variant)})

    @app.route("/api/tasks/<task_id>", methods=["DELETE"])
    def api_delete_task(task_id):
        return jsonify({"deleted": board.delete_task_by_id(task_id)})

    @app.route("/api/drag", methods=["POST"])
    def api_drag():
        data = _json_object()
        query = data.get("q") or ""
        sort = data.get("sort")
        try:
            move = board.move(data, query=query, sort_key=sort)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({
            "moved": move is not None and not move.is_noop,
            "columns": _board_payload(board, query, sort)["columns"],
        })

    @app.route("/api/preferences", methods=["GET"])
    def api_preferences_get():
        return jsonify(board.preferences.to_dict())

    @app.route("/api/preferences", methods=["POST"])
    def api_preferences_set():
        data = _json_object()
        if data.get("toggle"):
            prefs = board.toggle_dark_mode()
        elif isinstance(data.get("darkMode"), bool):
            prefs = board.set_dark_mode(data["darkMode"])
        else:
            return jsonify({"error": "darkMode must be true or false"}), 400
        return jsonify(prefs.to_dict())

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "tasks": len(board.snapshot()),
            "persistence_ok": board.persistence_ok,
        })

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (single-user board; keep it local)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--db", help="Path to board.db (overrides TASKBOARD_DB env var)")
    parser.add_argument("--config", help="Path to taskboard.yaml (overrides TASKBOARD_CONFIG env var)")
    args = parser.parse_args()

    if args.db:
        os.environ["TASKBOARD_DB"] = args.db

    config = BoardConfig.load(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    collation = use_system_collation()
    app = create_app(BoardService.open(config))
    print(f"""
╔═══════════════════════════════════════╗
║  Task Board Server                    ║
╠═══════════════════════════════════════╣
║  URL:  http://{args.host}:{args.port:<20}║
║  DB:   {config.db_path:<31}║
║  Columns: {', '.join(config.columns):<28}║
║  Collation: {collation:<26}║
╚═══════════════════════════════════════╝
""")
    app.run(host=args.host, port=args.port, debug=False, threaded=True)
