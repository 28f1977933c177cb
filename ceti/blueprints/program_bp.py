"""
Program Blueprint — programs and their user-assignments.

Endpoints:
    GET    /api/v1/programs                               — List (role-scoped)
    POST   /api/v1/programs                               — Create (ADMIN)
    GET    /api/v1/programs/<id>                          — Detail
    PUT    /api/v1/programs/<id>                          — Update (ADMIN)
    DELETE /api/v1/programs/<id>                          — Delete (ADMIN, no active tasks)

    GET    /api/v1/programs/<id>/members                  — List members
    POST   /api/v1/programs/<id>/members                  — Assign user (ADMIN)
    DELETE /api/v1/programs/<id>/members/<user_id>        — Unassign user (ADMIN)
"""

import logging

from flask import Blueprint, g, jsonify, request

from ceti.auth import require_auth
from ceti.services import program_service
from ceti.utils.helpers import json_body

logger = logging.getLogger(__name__)

program_bp = Blueprint("program", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Programs
# ═════════════════════════════════════════════════════════════════════════════


@program_bp.route("/programs", methods=["GET"])
@require_auth
def list_programs():
    """Return visible programs, optionally filtered by status."""
    programs = program_service.list_programs(g.actor, status=request.args.get("status"))
    return jsonify(programs), 200


@program_bp.route("/programs", methods=["POST"])
@require_auth
def create_program():
    program = program_service.create_program(g.actor, json_body())
    return jsonify(program.to_dict(include_counts=True)), 201


@program_bp.route("/programs/<int:program_id>", methods=["GET"])
@require_auth
def get_program(program_id):
    program = program_service.get_program(g.actor, program_id)
    return jsonify(program.to_dict(include_counts=True)), 200


@program_bp.route("/programs/<int:program_id>", methods=["PUT"])
@require_auth
def update_program(program_id):
    program = program_service.update_program(g.actor, program_id, json_body())
    return jsonify(program.to_dict(include_counts=True)), 200


@program_bp.route("/programs/<int:program_id>", methods=["DELETE"])
@require_auth
def delete_program(program_id):
    program_service.delete_program(g.actor, program_id)
    return jsonify({"message": "Programa eliminado exitosamente"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Members
# ═════════════════════════════════════════════════════════════════════════════


@program_bp.route("/programs/<int:program_id>/members", methods=["GET"])
@require_auth
def list_members(program_id):
    return jsonify(program_service.list_members(g.actor, program_id)), 200


@program_bp.route("/programs/<int:program_id>/members", methods=["POST"])
@require_auth
def add_member(program_id):
    """Body: { "user_id": <int> }"""
    member = program_service.add_member(g.actor, program_id, json_body().get("user_id"))
    return jsonify(member.to_dict()), 201


@program_bp.route("/programs/<int:program_id>/members/<int:user_id>", methods=["DELETE"])
@require_auth
def remove_member(program_id, user_id):
    program_service.remove_member(g.actor, program_id, user_id)
    return jsonify({"message": "Usuario desasignado del programa"}), 200
