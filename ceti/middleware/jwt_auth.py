"""
JWT Auth Middleware — resolves the caller's token into ``g.jwt_user_id``.

Token sources, in priority order:
  1. Authorization: Bearer <access token>   (API clients, tests)
  2. HttpOnly session cookie set by /auth/login   (browser)

Invalid or expired tokens are ignored here; ``ceti.auth.require_auth``
turns a missing identity into a 401 for protected routes.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from ceti.services.jwt_service import decode_access_token, subject_id

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/health",
    "/api/v1/setup",
)


def _token_from_request() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    cookie_name = current_app.config.get("SESSION_COOKIE_NAME", "ceti_session")
    return request.cookies.get(cookie_name)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        token = _token_from_request()
        if not token:
            return

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.debug("Invalid access token on %s", path)
            return

        g.jwt_user_id = subject_id(payload)
        g.jwt_role = payload.get("role")
