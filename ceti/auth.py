"""
Route-level authentication / role decorators.

``require_auth`` loads the user behind ``g.jwt_user_id`` (set by the JWT
middleware) and exposes it as ``g.current_user`` plus an access-policy
``g.actor``. Deactivated accounts are treated as unauthenticated even
while their token is still valid.

Usage:
    @program_bp.route("/programs/<int:program_id>", methods=["DELETE"])
    @require_auth
    @require_role("ADMIN")
    def delete_program(program_id): ...
"""

import functools
import logging

from flask import g, request

from ceti.core.exceptions import AuthenticationError, PermissionDeniedError
from ceti.models import db
from ceti.models.user import User
from ceti.services.access_policy import FORBIDDEN_ROLE, Actor

logger = logging.getLogger(__name__)


def load_current_user() -> User | None:
    """Active user for the current request, or None."""
    user_id = getattr(g, "jwt_user_id", None)
    if not user_id:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def require_auth(f):
    """Decorator: require a signed-in, active user."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = load_current_user()
        if user is None:
            raise AuthenticationError()
        g.current_user = user
        g.actor = Actor.from_user(user)
        return f(*args, **kwargs)
    return decorated


def require_role(role: str):
    """
    Decorator: require an exact role. Must sit below ``@require_auth``.

    Role set: ADMIN, COLLABORATOR. ADMIN-only routes use ``require_role("ADMIN")``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                raise AuthenticationError()
            if actor.role != role:
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    actor.role, role, request.path,
                )
                raise PermissionDeniedError(reason=FORBIDDEN_ROLE)
            return f(*args, **kwargs)
        return decorated
    return decorator
