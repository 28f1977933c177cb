"""
Auth Blueprint — JWT authentication and first-run setup.

Endpoints:
  POST /api/v1/auth/login       — Email + password → JWT pair (+ HttpOnly cookie)
  POST /api/v1/auth/refresh     — Refresh token → new pair (rotation)
  POST /api/v1/auth/logout      — Revoke refresh token / all sessions, clear cookie
  GET  /api/v1/auth/me          — Current user profile
  GET  /api/v1/setup/check      — {needs_setup}
  POST /api/v1/setup            — Create the first ADMIN
"""

import logging

import jwt as pyjwt
from flask import Blueprint, current_app, g, jsonify, request

from ceti.auth import require_auth
from ceti.core.exceptions import AuthenticationError, ValidationError
from ceti.models import db
from ceti.models.user import User
from ceti.services import user_service
from ceti.services.jwt_service import (
    create_session,
    decode_refresh_token,
    generate_token_pair,
    get_active_session_by_token,
    hash_token,
    revoke_all_user_sessions,
    revoke_session,
    revoke_session_by_token,
    rotate_session,
    subject_id,
)
from ceti.utils.helpers import json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
setup_bp = Blueprint("setup", __name__, url_prefix="/api/v1/setup")


def _token_response(user: User, tokens: dict, status: int = 200):
    """JSON token pair plus the access token as an HttpOnly cookie."""
    resp = jsonify({
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
        "user": user.to_dict(),
    })
    resp.set_cookie(
        current_app.config["SESSION_COOKIE_NAME"],
        tokens["access_token"],
        max_age=tokens["expires_in"],
        httponly=True,
        secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
        samesite="Lax",
    )
    return resp, status


def _open_session(user: User) -> dict:
    tokens = generate_token_pair(user.id, user.role)
    create_session(
        user.id, tokens["token_hash"],
        request.remote_addr, request.headers.get("User-Agent", ""),
        tokens["expires_at"],
    )
    return tokens


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return JWT pair.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    user = user_service.authenticate(data.get("email"), data.get("password"))
    tokens = _open_session(user)
    logger.info("Login user_id=%s", user.id)
    return _token_response(user, tokens)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new pair (token rotation).

    Body: { "refresh_token": "..." }
    """
    refresh_token = json_body().get("refresh_token", "")
    if not refresh_token:
        raise ValidationError("Faltan datos requeridos", details={"refresh_token": "required"})

    try:
        payload = decode_refresh_token(refresh_token)
    except pyjwt.InvalidTokenError:
        raise AuthenticationError("Token de actualización inválido o expirado")

    user_id = subject_id(payload)
    session = get_active_session_by_token(user_id, hash_token(refresh_token))
    if not session:
        raise AuthenticationError("Sesión no encontrada o revocada")
    if session.is_expired:
        revoke_session(session)
        raise AuthenticationError("Sesión expirada")

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        revoke_session(session)
        raise AuthenticationError("Usuario inactivo")

    tokens = generate_token_pair(user.id, user.role)
    rotate_session(
        session,
        user.id,
        tokens["token_hash"],
        tokens["expires_at"],
        request.remote_addr,
        request.headers.get("User-Agent", ""),
    )
    return _token_response(user, tokens)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the given refresh token, or every session of the caller.

    Body: { "refresh_token": "..." }  (optional)
    """
    refresh_token = json_body().get("refresh_token", "")
    if refresh_token:
        revoke_session_by_token(hash_token(refresh_token))
    elif getattr(g, "jwt_user_id", None):
        revoke_all_user_sessions(g.jwt_user_id)

    resp = jsonify({"message": "Sesión cerrada"})
    resp.delete_cookie(current_app.config["SESSION_COOKIE_NAME"])
    return resp, 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify({"user": g.current_user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# First-run setup
# ═══════════════════════════════════════════════════════════════
@setup_bp.route("/check", methods=["GET"])
def setup_check():
    return jsonify({"needs_setup": user_service.needs_setup()}), 200


@setup_bp.route("", methods=["POST"])
def setup():
    """
    Create the initial administrator. Refused once an active admin exists.

    Body: { "name": "...", "email": "...", "password": "..." }
    """
    user = user_service.create_first_admin(json_body())
    return jsonify({"message": "Administrador creado", "user": user.to_dict()}), 201
