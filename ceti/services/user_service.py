"""User service — accounts, profile, first-run setup and authentication.

Transaction policy: public functions commit on success, then write the
audit row (which commits on its own and never raises).
"""
import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func

from ceti.core.exceptions import (
    AuthenticationError,
    BlockedByInvariantError,
    ConflictError,
    ValidationError,
)
from ceti.models import db, utcnow
from ceti.models.audit import record_audit
from ceti.models.program import ProgramMember
from ceti.models.task import ACTIVE_TASK_STATUSES, Comment, Task, TaskAssignee, TaskFile
from ceti.models.user import ROLE_ADMIN, ROLE_COLLABORATOR, USER_ROLES, User
from ceti.services import access_policy as policy
from ceti.utils.crypto import hash_password, verify_password
from ceti.utils.helpers import get_or_404, require_fields, text_field

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
_AUDIT_FIELDS = ("name", "email", "role", "is_active")


def _snapshot(user: User) -> dict:
    return {f: getattr(user, f) for f in _AUDIT_FIELDS}


def _normalize_email(email: str) -> str:
    if not isinstance(email, str):
        raise ValidationError("Email inválido", details={"email": "must_be_string"})
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Email inválido", details={"email": str(e)})
    return valid.normalized.lower()


def _validate_password(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres",
            details={"password": "too_short"},
        )


def _validate_role(role: str) -> None:
    if not isinstance(role, str) or role not in USER_ROLES:
        raise ValidationError(
            f"Rol inválido: '{role}'",
            details={"role": sorted(USER_ROLES)},
        )


def _flag(data: dict, field: str, default: bool = False) -> bool:
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ValidationError(f"El campo {field} debe ser booleano", details={field: "must_be_boolean"})
    return value


def _ensure_email_free(email: str, exclude_id: int | None = None) -> None:
    q = User.query.filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("El email ya está en uso", resource="User", field="email", value=email)


# ── Fact gathering for the access policy ─────────────────────────────────────


def active_task_count(user_id: int) -> int:
    """Number of TODO / IN_PROGRESS tasks the user is assigned to."""
    return (
        db.session.query(func.count(TaskAssignee.id))
        .join(Task, Task.id == TaskAssignee.task_id)
        .filter(TaskAssignee.user_id == user_id, Task.status.in_(ACTIVE_TASK_STATUSES))
        .scalar()
    ) or 0


def other_active_admin_count(user_id: int) -> int:
    return User.query.filter(
        User.role == ROLE_ADMIN, User.is_active.is_(True), User.id != user_id,
    ).count()


def user_facts(user: User) -> policy.UserFacts:
    return policy.UserFacts(
        user_id=user.id,
        role=user.role,
        is_active=bool(user.is_active),
        active_task_count=active_task_count(user.id),
        other_active_admin_count=other_active_admin_count(user.id),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Admin user management
# ═════════════════════════════════════════════════════════════════════════════


def list_users(actor: policy.Actor) -> list[dict]:
    policy.enforce(policy.decide_user(actor, policy.LIST))
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    return [u.to_dict(include_counts=True) for u in users]


def get_user(actor: policy.Actor, user_id: int) -> User:
    user = get_or_404(User, user_id, label="Usuario")
    policy.enforce(policy.decide_user(actor, policy.READ, policy.UserFacts(user.id, user.role, user.is_active)))
    return user


def create_user(actor: policy.Actor, data: dict) -> User:
    """Create an account (ADMIN only). Duplicate email → ConflictError."""
    policy.enforce(policy.decide_user(actor, policy.CREATE))
    require_fields(data, "name", "email", "password")

    email = _normalize_email(data["email"])
    _validate_password(data["password"])
    role = data.get("role") or ROLE_COLLABORATOR
    _validate_role(role)
    _ensure_email_free(email)

    user = User(
        name=text_field(data, "name"),
        email=email,
        password_hash=hash_password(data["password"]),
        role=role,
        is_active=_flag(data, "is_active", default=True),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s email=%s role=%s", user.id, user.email, user.role)

    record_audit("create", "user", user.id, actor_id=actor.id, new_values=_snapshot(user))
    return user


def update_user(actor: policy.Actor, user_id: int, data: dict) -> User:
    """Partial update (ADMIN only). Refuses to remove the last active admin."""
    user = get_or_404(User, user_id, label="Usuario")
    changes = {}
    if "role" in data:
        _validate_role(data["role"])
        changes["role"] = data["role"]
    if "is_active" in data:
        changes["is_active"] = _flag(data, "is_active")

    decision = policy.decide_user(actor, policy.UPDATE, user_facts(user), changes=changes)
    policy.enforce(
        decision,
        message="No se puede desactivar o degradar al último administrador"
        if decision.reason == policy.LAST_ADMIN else None,
    )

    old = _snapshot(user)
    if "name" in data:
        user.name = text_field(data, "name")
    if "email" in data:
        email = _normalize_email(data["email"])
        _ensure_email_free(email, exclude_id=user.id)
        user.email = email
    if data.get("password"):
        _validate_password(data["password"])
        user.password_hash = hash_password(data["password"])
    for key, value in changes.items():
        setattr(user, key, value)

    db.session.commit()
    logger.info("User updated id=%s", user.id)

    record_audit("update", "user", user.id, actor_id=actor.id,
                 old_values=old, new_values=_snapshot(user))
    return user


def delete_user(actor: policy.Actor, user_id: int) -> None:
    """Delete an account (ADMIN only).

    Refused for the sole active admin, then for users with active tasks.
    Comments, files, assignments, memberships, transcriptions and sessions
    go with the user; tasks they created keep existing with no creator.
    """
    user = get_or_404(User, user_id, label="Usuario")
    policy.enforce(policy.decide_user(actor, policy.DELETE, user_facts(user)))

    old = _snapshot(user)
    stored_paths = [f.relative_path for f in user.uploaded_files] + [
        t.relative_path for t in user.transcriptions
    ]
    db.session.delete(user)
    db.session.commit()
    logger.info("User deleted id=%s", user_id)

    from ceti.services.file_service import remove_stored_files
    remove_stored_files(stored_paths)

    record_audit("delete", "user", user_id, actor_id=actor.id, old_values=old)


# ═════════════════════════════════════════════════════════════════════════════
# Profile (self-service)
# ═════════════════════════════════════════════════════════════════════════════


def update_profile(user: User, data: dict) -> User:
    """Change own name / email. Role and active flag are not editable here."""
    old = _snapshot(user)
    if "name" in data:
        user.name = text_field(data, "name")
    if "email" in data:
        email = _normalize_email(data["email"])
        _ensure_email_free(email, exclude_id=user.id)
        user.email = email
    db.session.commit()

    record_audit("update", "user", user.id, actor_id=user.id,
                 old_values=old, new_values=_snapshot(user))
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not isinstance(current_password, str) or not isinstance(new_password, str):
        raise ValidationError("Faltan datos requeridos")
    if not current_password or not new_password:
        raise ValidationError("Faltan datos requeridos")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("La contraseña actual es incorrecta", details={"current_password": "invalid"})
    _validate_password(new_password)

    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("Password changed user_id=%s", user.id)

    record_audit("password_change", "user", user.id, actor_id=user.id)


def profile_stats(user: User) -> dict:
    """Personal activity counters shown on the profile page."""
    base = (
        db.session.query(func.count(Task.id))
        .join(TaskAssignee, TaskAssignee.task_id == Task.id)
        .filter(TaskAssignee.user_id == user.id)
    )
    total = base.scalar() or 0
    completed = base.filter(Task.status == "DONE").scalar() or 0
    in_progress = base.filter(Task.status == "IN_PROGRESS").scalar() or 0
    pending = base.filter(Task.status == "TODO").scalar() or 0
    overdue = base.filter(
        Task.status != "DONE", Task.due_date.isnot(None), Task.due_date < utcnow(),
    ).scalar() or 0

    return {
        "total_tasks": total,
        "completed_tasks": completed,
        "in_progress_tasks": in_progress,
        "pending_tasks": pending,
        "overdue_tasks": overdue,
        "completion_rate": round(completed / total * 100) if total else 0,
        "programs": ProgramMember.query.filter_by(user_id=user.id).count(),
        "comments": Comment.query.filter_by(author_id=user.id).count(),
        "files_uploaded": TaskFile.query.filter_by(uploaded_by_id=user.id).count(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# First-run setup & authentication
# ═════════════════════════════════════════════════════════════════════════════


def needs_setup() -> bool:
    """True until at least one active admin exists."""
    return User.query.filter(User.role == ROLE_ADMIN, User.is_active.is_(True)).count() == 0


def create_first_admin(data: dict) -> User:
    if not needs_setup():
        raise ValidationError("El sistema ya fue configurado")
    require_fields(data, "name", "email", "password")
    email = _normalize_email(data["email"])
    _validate_password(data["password"])
    _ensure_email_free(email)

    user = User(
        name=text_field(data, "name"),
        email=email,
        password_hash=hash_password(data["password"]),
        role=ROLE_ADMIN,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Initial administrator created id=%s email=%s", user.id, user.email)

    record_audit("create", "user", user.id, actor_id=user.id, new_values=_snapshot(user))
    return user


def authenticate(email: str, password: str) -> User:
    """Return the active user matching the credentials or raise AuthenticationError."""
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError("Faltan datos requeridos")
    email = email.strip().lower()
    if not email or not password:
        raise ValidationError("Faltan datos requeridos")
    user = User.query.filter_by(email=email).first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Credenciales inválidas")
    if not user.is_active:
        raise AuthenticationError("Usuario inactivo")

    user.last_login_at = utcnow()
    db.session.commit()
    return user
