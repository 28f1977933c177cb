"""Access policy — the single place that decides who may do what.

Every route builds an ``Actor`` plus the relationship facts for the target
(who is assigned, who owns it, how many active tasks block a delete) and
asks one of the ``decide_*`` functions. The functions are pure: no
database access, no Flask context, no exceptions for well-formed input.
``enforce`` turns a deny into the matching application exception.

Deny reasons:
    unauthenticated    no actor, or actor deactivated
    forbidden-role     action needs ADMIN (or ownership, for deletes)
    not-assignee       collaborator is not linked to the program / task
    has-active-tasks   program delete blocked by TODO / IN_PROGRESS tasks
    last-admin         operation would leave zero active admins
    has-active-work    user delete blocked by assigned active tasks
"""
from dataclasses import dataclass, field
from typing import Iterable

from ceti.core.exceptions import (
    AuthenticationError,
    BlockedByInvariantError,
    PermissionDeniedError,
)
from ceti.models.user import ROLE_ADMIN

READ = "read"
LIST = "list"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"

UNAUTHENTICATED = "unauthenticated"
FORBIDDEN_ROLE = "forbidden-role"
NOT_ASSIGNEE = "not-assignee"
HAS_ACTIVE_TASKS = "has-active-tasks"
LAST_ADMIN = "last-admin"
HAS_ACTIVE_WORK = "has-active-work"

# Fields only an ADMIN may change on a task.
ADMIN_ONLY_TASK_FIELDS = ("assignee_ids", "program_id")


# ── Inputs / outputs ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user) -> "Actor | None":
        if user is None:
            return None
        return cls(id=user.id, role=user.role, is_active=bool(user.is_active))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    blocking_count: int | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str, blocking_count: int | None = None) -> Decision:
    return Decision(False, reason, blocking_count)


@dataclass(frozen=True)
class ProgramFacts:
    member_ids: frozenset = field(default_factory=frozenset)
    active_task_count: int = 0


@dataclass(frozen=True)
class TaskFacts:
    assignee_ids: frozenset = field(default_factory=frozenset)
    program_member_ids: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class AttachmentFacts:
    """Facts for a comment or file: who wrote/uploaded it, who is on the task."""

    owner_id: int | None = None
    task_assignee_ids: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class UserFacts:
    user_id: int
    role: str
    is_active: bool = True
    active_task_count: int = 0
    other_active_admin_count: int = 0


def _ids(values: Iterable[int] | None) -> frozenset:
    return frozenset(values or ())


def program_facts(member_ids=None, active_task_count=0) -> ProgramFacts:
    return ProgramFacts(_ids(member_ids), active_task_count)


def task_facts(assignee_ids=None, program_member_ids=None) -> TaskFacts:
    return TaskFacts(_ids(assignee_ids), _ids(program_member_ids))


def attachment_facts(owner_id=None, task_assignee_ids=None) -> AttachmentFacts:
    return AttachmentFacts(owner_id, _ids(task_assignee_ids))


def _authenticated(actor: Actor | None) -> bool:
    return actor is not None and actor.is_active


# ── Decisions ────────────────────────────────────────────────────────────────


def decide_program(actor: Actor | None, action: str, facts: ProgramFacts | None = None) -> Decision:
    """Programs: ADMIN manages, members read. Delete blocked by active tasks."""
    if not _authenticated(actor):
        return deny(UNAUTHENTICATED)
    facts = facts or ProgramFacts()

    if action == LIST:
        return ALLOW
    if action == READ:
        if actor.is_admin or actor.id in facts.member_ids:
            return ALLOW
        return deny(NOT_ASSIGNEE)
    if not actor.is_admin:
        return deny(FORBIDDEN_ROLE)
    if action == DELETE and facts.active_task_count > 0:
        return deny(HAS_ACTIVE_TASKS, facts.active_task_count)
    return ALLOW


def decide_task(actor: Actor | None, action: str, facts: TaskFacts | None = None) -> Decision:
    """Tasks: ADMIN manages; a collaborator reads/updates only tasks assigned to them.

    Program membership alone is not enough to see a task.
    """
    if not _authenticated(actor):
        return deny(UNAUTHENTICATED)
    facts = facts or TaskFacts()

    if actor.is_admin:
        return ALLOW
    if action == LIST:
        return ALLOW
    if action in (READ, UPDATE):
        if actor.id in facts.assignee_ids:
            return ALLOW
        return deny(NOT_ASSIGNEE)
    return deny(FORBIDDEN_ROLE)


def decide_attachment(actor: Actor | None, action: str, facts: AttachmentFacts | None = None) -> Decision:
    """Comments and files share one rule.

    Create/read/list: ADMIN or an assignee of the parent task.
    Delete: ADMIN or the author/uploader.
    """
    if not _authenticated(actor):
        return deny(UNAUTHENTICATED)
    facts = facts or AttachmentFacts()

    if actor.is_admin:
        return ALLOW
    if action == DELETE:
        if facts.owner_id is not None and facts.owner_id == actor.id:
            return ALLOW
        return deny(FORBIDDEN_ROLE)
    if action in (CREATE, READ, LIST):
        if actor.id in facts.task_assignee_ids:
            return ALLOW
        return deny(NOT_ASSIGNEE)
    return deny(FORBIDDEN_ROLE)


def decide_user(actor: Actor | None, action: str, facts: UserFacts | None = None,
                changes: dict | None = None) -> Decision:
    """Users: ADMIN manages; anyone may read themselves.

    Delete is refused for the sole active admin, then for users holding
    active assigned tasks. An update that demotes or deactivates the last
    active admin is refused the same way. ``changes`` carries the proposed
    ``role`` / ``is_active`` for that check.
    """
    if not _authenticated(actor):
        return deny(UNAUTHENTICATED)

    if action == READ and facts is not None and facts.user_id == actor.id:
        return ALLOW
    if not actor.is_admin:
        return deny(FORBIDDEN_ROLE)
    if facts is None:
        return ALLOW

    target_is_active_admin = facts.role == ROLE_ADMIN and facts.is_active
    if action == DELETE:
        if target_is_active_admin and facts.other_active_admin_count == 0:
            return deny(LAST_ADMIN)
        if facts.active_task_count > 0:
            return deny(HAS_ACTIVE_WORK, facts.active_task_count)
    if action == UPDATE and changes and target_is_active_admin and facts.other_active_admin_count == 0:
        demoted = "role" in changes and changes["role"] != ROLE_ADMIN
        deactivated = "is_active" in changes and not changes["is_active"]
        if demoted or deactivated:
            return deny(LAST_ADMIN)
    return ALLOW


def sanitize_task_update(actor: Actor, changes: dict) -> dict:
    """Drop assignee/program changes unless the actor is ADMIN."""
    if actor is not None and actor.is_admin:
        return dict(changes)
    return {k: v for k, v in changes.items() if k not in ADMIN_ONLY_TASK_FIELDS}


# ── Enforcement ──────────────────────────────────────────────────────────────

_BLOCKED_MESSAGES = {
    HAS_ACTIVE_TASKS: "No se puede eliminar el programa. Tiene {n} tareas activas",
    HAS_ACTIVE_WORK: "No se puede eliminar el usuario. Tiene {n} tareas activas asignadas",
    LAST_ADMIN: "No se puede eliminar el último administrador",
}


def enforce(decision: Decision, message: str | None = None) -> None:
    """Raise the application exception matching a deny; no-op on allow."""
    if decision.allowed:
        return
    reason = decision.reason
    if reason == UNAUTHENTICATED:
        raise AuthenticationError()
    if reason in _BLOCKED_MESSAGES:
        text = message or _BLOCKED_MESSAGES[reason].format(n=decision.blocking_count)
        raise BlockedByInvariantError(text, reason=reason, blocking_count=decision.blocking_count)
    raise PermissionDeniedError(message or "Acceso denegado", reason=reason)
