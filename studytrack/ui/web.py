"""JSON API for StudyTrack.

A lightweight Flask app exposing one StudyEngine:
- Task selection and timer controls
- Projects (create / delete)
- Session history and project summaries

Destructive requests carry ``"confirm": true|false`` in their JSON body;
that value is the user's answer to the confirmation prompt.
"""

import logging
import threading
from typing import Any, Optional

from flask import Flask, jsonify, request

from studytrack.core.engine import StartResult, StudyEngine
from studytrack.core.errors import PersistenceWriteFailure
from studytrack.core.models import ConfirmRequest, TimerMode
from studytrack.core.selection import SelectResult
from studytrack.reporting.formatter import NodeSummary, daily_totals, format_time, project_summary

logger = logging.getLogger(__name__)


def _body() -> dict[str, Any]:
    return request.get_json(silent=True) or {}


def _answer_from_body():
    """Confirmation callback answering with the request's ``confirm`` flag."""
    answer = bool(_body().get("confirm", False))

    def _confirm(req: ConfirmRequest) -> bool:
        logger.debug("Confirmation %s answered %s", req.name, answer)
        return answer

    return _confirm


def _invalid_tree(topics: Any) -> Optional[str]:
    """Describe what is wrong with a posted topic tree, or None when it is usable."""
    if not isinstance(topics, list):
        return "topics must be a list"
    for topic in topics:
        if not isinstance(topic, dict) or not str(topic.get("name") or "").strip():
            return "every topic needs a name"
        subtopics = topic.get("subtopics", [])
        if not isinstance(subtopics, list):
            return "subtopics must be a list"
        for subtopic in subtopics:
            if not isinstance(subtopic, dict) or not str(subtopic.get("name") or "").strip():
                return "every sub-topic needs a name"
    return None


def _summary_dict(node: NodeSummary) -> dict[str, Any]:
    return {
        "id": node.id,
        "name": node.name,
        "total_ms": node.total_ms,
        "total": format_time(node.total_ms),
        "children": [_summary_dict(c) for c in node.children],
    }


def create_flask_app(engine: StudyEngine) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(PersistenceWriteFailure)
    def handle_persistence_failure(exc):
        logger.error("Persistence failure surfaced to client: %s", exc)
        return jsonify({"error": str(exc), "retry": "/api/flush"}), 503

    @app.errorhandler(KeyError)
    def handle_unknown_node(exc):
        return jsonify({"error": str(exc.args[0]) if exc.args else "not found"}), 404

    @app.route("/api/status")
    def api_status():
        return jsonify(engine.status())

    @app.route("/api/select", methods=["POST"])
    def api_select():
        body = _body()
        project_id = body.get("project_id")
        if not project_id:
            return jsonify({"error": "project_id required"}), 400
        try:
            result = engine.select(
                project_id,
                body.get("topic_id"),
                body.get("subtopic_id"),
                confirm=_answer_from_body(),
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        code = 409 if result is SelectResult.DECLINED else 200
        return jsonify({"result": result.value, "status": engine.status()}), code

    @app.route("/api/timer/start", methods=["POST"])
    def api_start():
        result = engine.start()
        if result is StartResult.NEEDS_SELECTION:
            return jsonify({"result": result.value, "error": "Please select a project to study first!"}), 409
        return jsonify({"result": result.value, "status": engine.status()})

    @app.route("/api/timer/pause", methods=["POST"])
    def api_pause():
        paused = engine.pause()
        return jsonify({"paused": paused, "status": engine.status()})

    @app.route("/api/timer/stop", methods=["POST"])
    def api_stop():
        record = engine.stop()
        return jsonify({
            "session": record.to_dict() if record else None,
            "status": engine.status(),
        })

    @app.route("/api/timer/reset", methods=["POST"])
    def api_reset():
        engine.reset()
        return jsonify({"status": engine.status()})

    @app.route("/api/mode", methods=["POST"])
    def api_mode():
        try:
            mode = TimerMode(_body().get("mode"))
        except ValueError:
            return jsonify({"error": "mode must be 'stopwatch' or 'focus'"}), 400
        switched = engine.set_mode(mode, confirm=_answer_from_body())
        code = 200 if switched else 409
        return jsonify({"switched": switched, "status": engine.status()}), code

    @app.route("/api/projects")
    def api_projects():
        return jsonify([p.to_dict() for p in engine.projects])

    @app.route("/api/projects", methods=["POST"])
    def api_add_project():
        body = _body()
        name = (body.get("name") or "").strip()
        if not name:
            return jsonify({"error": "name required"}), 400
        topics = body.get("topics") or []
        problem = _invalid_tree(topics)
        if problem:
            return jsonify({"error": problem}), 400
        project_id = engine.add_project(name, topics)
        return jsonify({"id": project_id}), 201

    @app.route("/api/projects/<project_id>", methods=["DELETE"])
    def api_delete_project(project_id):
        deleted = engine.delete_project(project_id, confirm=_answer_from_body())
        code = 200 if deleted else 409
        return jsonify({"deleted": deleted, "status": engine.status()}), code

    @app.route("/api/history")
    def api_history():
        return jsonify({
            "sessions": [r.to_dict() for r in engine.history],
            "daily_totals": {str(d): ms for d, ms in daily_totals(engine.history).items()},
            "totals": engine.timers.to_dict(),
        })

    @app.route("/api/history", methods=["DELETE"])
    def api_clear_history():
        cleared = engine.clear_history(confirm=_answer_from_body())
        return jsonify({"cleared": cleared}), 200 if cleared else 409

    @app.route("/api/summary")
    def api_summary():
        return jsonify([_summary_dict(s) for s in project_summary(engine.projects, engine.timers)])

    @app.route("/api/flush", methods=["POST"])
    def api_flush():
        engine.flush()
        return jsonify({"status": engine.status()})

    return app


def start_dashboard(engine: StudyEngine, host: str = "127.0.0.1", port: int = 5556) -> threading.Thread:
    """Start the Flask API in a daemon thread."""
    flask_app = create_flask_app(engine)

    def _run():
        flask_app.run(host=host, port=port, debug=False, use_reloader=False)

    t = threading.Thread(target=_run, daemon=True, name="studytrack-web")
    t.start()
    logger.info("Dashboard started at http://%s:%d", host, port)
    return t
