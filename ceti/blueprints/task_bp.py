"""
Task Blueprint — task CRUD, kanban moves and calendar links.

Endpoints:
    GET    /api/v1/tasks                      — List (?program_id, ?status, ?assignee_id)
    POST   /api/v1/tasks                      — Create with assignees (ADMIN)
    GET    /api/v1/tasks/<id>                 — Detail with assignees / comments / files
    PUT    /api/v1/tasks/<id>                 — Edit form (any status)
    DELETE /api/v1/tasks/<id>                 — Delete (ADMIN)
    POST   /api/v1/tasks/<id>/move            — Kanban step {direction: next|previous}
    POST   /api/v1/tasks/<id>/calendar        — Google Calendar template link
"""

import logging

from flask import Blueprint, g, jsonify, request

from ceti.auth import require_auth
from ceti.services import task_service
from ceti.utils.helpers import int_arg, json_body

logger = logging.getLogger(__name__)

task_bp = Blueprint("task", __name__, url_prefix="/api/v1")


@task_bp.route("/tasks", methods=["GET"])
@require_auth
def list_tasks():
    tasks = task_service.list_tasks(
        g.actor,
        program_id=int_arg("program_id"),
        status=request.args.get("status"),
        assignee_id=int_arg("assignee_id"),
    )
    return jsonify(tasks), 200


@task_bp.route("/tasks", methods=["POST"])
@require_auth
def create_task():
    task = task_service.create_task(g.actor, json_body())
    return jsonify(task.to_dict(include_children=True)), 201


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_auth
def get_task(task_id):
    task = task_service.get_task(g.actor, task_id)
    return jsonify(task.to_dict(include_children=True)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@require_auth
def update_task(task_id):
    task = task_service.update_task(g.actor, task_id, json_body())
    return jsonify(task.to_dict(include_children=True)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id):
    task_service.delete_task(g.actor, task_id)
    return jsonify({"message": "Tarea eliminada exitosamente"}), 200


# ── Kanban & calendar ────────────────────────────────────────────────────────


@task_bp.route("/tasks/<int:task_id>/move", methods=["POST"])
@require_auth
def move_task(task_id):
    task = task_service.move_task(g.actor, task_id, json_body().get("direction"))
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/calendar", methods=["POST"])
@require_auth
def calendar(task_id):
    event = task_service.calendar_event(g.actor, task_id)
    return jsonify({"success": True, "message": "Enlace de calendario generado", **event}), 200
