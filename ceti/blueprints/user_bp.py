"""
User Blueprint — account administration and self-service profile.

Endpoints:
    GET    /api/v1/users                  — List with task / program counts (ADMIN)
    POST   /api/v1/users                  — Create (ADMIN)
    GET    /api/v1/users/<id>             — Detail (ADMIN or self)
    PUT    /api/v1/users/<id>             — Update (ADMIN, last-admin guarded)
    DELETE /api/v1/users/<id>             — Delete (ADMIN, last-admin / active-work guarded)

    GET    /api/v1/profile                — Own profile
    PUT    /api/v1/profile                — Edit own name / email
    PUT    /api/v1/profile/password       — Change own password
    GET    /api/v1/profile/stats          — Own activity counters
"""

import logging

from flask import Blueprint, g, jsonify

from ceti.auth import require_auth, require_role
from ceti.models.user import ROLE_ADMIN
from ceti.services import user_service
from ceti.utils.helpers import json_body

logger = logging.getLogger(__name__)

user_bp = Blueprint("user", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Users (ADMIN)
# ═════════════════════════════════════════════════════════════════════════════


@user_bp.route("/users", methods=["GET"])
@require_auth
@require_role(ROLE_ADMIN)
def list_users():
    return jsonify(user_service.list_users(g.actor)), 200


@user_bp.route("/users", methods=["POST"])
@require_auth
@require_role(ROLE_ADMIN)
def create_user():
    user = user_service.create_user(g.actor, json_body())
    return jsonify(user.to_dict()), 201


@user_bp.route("/users/<int:user_id>", methods=["GET"])
@require_auth
def get_user(user_id):
    user = user_service.get_user(g.actor, user_id)
    return jsonify(user.to_dict(include_counts=True)), 200


@user_bp.route("/users/<int:user_id>", methods=["PUT"])
@require_auth
@require_role(ROLE_ADMIN)
def update_user(user_id):
    user = user_service.update_user(g.actor, user_id, json_body())
    return jsonify(user.to_dict()), 200


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_auth
@require_role(ROLE_ADMIN)
def delete_user(user_id):
    user_service.delete_user(g.actor, user_id)
    return jsonify({"message": "Usuario eliminado exitosamente"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Profile (self)
# ═════════════════════════════════════════════════════════════════════════════


@user_bp.route("/profile", methods=["GET"])
@require_auth
def get_profile():
    return jsonify(g.current_user.to_dict(include_counts=True)), 200


@user_bp.route("/profile", methods=["PUT"])
@require_auth
def update_profile():
    user = user_service.update_profile(g.current_user, json_body())
    return jsonify(user.to_dict()), 200


@user_bp.route("/profile/password", methods=["PUT"])
@require_auth
def change_password():
    """Body: { "current_password": "...", "new_password": "..." }"""
    data = json_body()
    user_service.change_password(g.current_user, data.get("current_password"), data.get("new_password"))
    return jsonify({"message": "Contraseña actualizada exitosamente"}), 200


@user_bp.route("/profile/stats", methods=["GET"])
@require_auth
def profile_stats():
    return jsonify(user_service.profile_stats(g.current_user)), 200
