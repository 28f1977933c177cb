"""Task service layer — task CRUD, assignment and kanban moves.

Transaction policy: each public function performs its multi-row writes
(task + assignees) inside one session and commits once, then audits.

Provides:
- Task CRUD with role-aware visibility (collaborators see assigned tasks only)
- Assignee replacement (ADMIN only; stripped from collaborator updates)
- Kanban quick-move with single-step adjacency
- Google Calendar template link for a task's due date
"""
import logging
from datetime import timedelta
from urllib.parse import urlencode

from ceti.core.exceptions import ValidationError
from ceti.models import db, utcnow
from ceti.models.audit import record_audit
from ceti.models.program import Program, ProgramMember
from ceti.models.task import TASK_STATUSES, Task, TaskAssignee
from ceti.models.user import User
from ceti.services import access_policy as policy
from ceti.utils.helpers import get_or_404, optional_text, parse_datetime, require_fields, text_field

logger = logging.getLogger(__name__)

_AUDIT_FIELDS = (
    "name", "description", "program_id", "due_date", "status",
    "progress", "expected_deliverables", "reference_links",
)
_STATUS_LABELS = {"TODO": "Por Hacer", "IN_PROGRESS": "En Progreso", "DONE": "Completado"}

CALENDAR_BASE_URL = "https://calendar.google.com/calendar/render"
CALENDAR_TIMEZONE = "America/Mexico_City"


def _snapshot(task: Task) -> dict:
    snap = {f: getattr(task, f) for f in _AUDIT_FIELDS}
    snap["assignee_ids"] = sorted(task.assignee_ids())
    return snap


# ── Validation ───────────────────────────────────────────────────────────────


def _dedupe_ids(raw) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("assignee_ids debe ser una lista", details={"assignee_ids": "invalid"})
    seen: list[int] = []
    for value in raw:
        try:
            uid = int(value)
        except (TypeError, ValueError):
            raise ValidationError("Responsable inválido", details={"assignee_ids": value})
        if uid not in seen:
            seen.append(uid)
    return seen


def _resolve_assignees(raw) -> list[int]:
    """Deduplicated assignee ids; any unknown id is a ValidationError."""
    ids = _dedupe_ids(raw)
    if not ids:
        return ids
    found = {u.id for u in User.query.filter(User.id.in_(ids)).all()}
    unknown = [i for i in ids if i not in found]
    if unknown:
        raise ValidationError("Responsables inválidos", details={"assignee_ids": unknown})
    return ids


def _resolve_program(program_id) -> Program:
    try:
        program = db.session.get(Program, int(program_id))
    except (TypeError, ValueError):
        program = None
    if program is None:
        raise ValidationError("Programa inválido", details={"program_id": program_id})
    return program


def _validate_status(status) -> str:
    if status not in TASK_STATUSES:
        raise ValidationError(
            f"Estado inválido: '{status}'",
            details={"status": list(TASK_STATUSES)},
        )
    return status


def _validate_progress(value) -> int:
    try:
        progress = int(value)
    except (TypeError, ValueError):
        raise ValidationError("El progreso debe ser un número entre 0 y 100")
    if progress < 0 or progress > 100:
        raise ValidationError("El progreso debe ser un número entre 0 y 100")
    return progress


def _validate_links(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("reference_links debe ser una lista", details={"reference_links": "invalid"})
    links = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("Enlace inválido", details={"reference_links": item})
        url = item.get("url")
        title = item.get("title") or ""
        if not isinstance(url, str) or not url.strip() or not isinstance(title, str):
            raise ValidationError("Enlace inválido", details={"reference_links": item})
        links.append({"url": url.strip(), "title": title.strip()})
    return links


def _parse_due(value):
    if value in (None, ""):
        return None
    due = parse_datetime(value)
    if due is None:
        raise ValidationError("Fecha de vencimiento inválida", details={"due_date": value})
    return due


def _set_status(task: Task, status: str) -> None:
    if status == task.status:
        return
    task.status = status
    task.completed_at = utcnow() if status == "DONE" else None


def _replace_assignees(task: Task, ids: list[int]) -> None:
    """Swap the assignee set in the current session (no commit)."""
    current = {a.user_id: a for a in task.assignees}
    for uid, row in current.items():
        if uid not in ids:
            db.session.delete(row)
    for uid in ids:
        if uid not in current:
            db.session.add(TaskAssignee(task=task, user_id=uid))


def task_facts(task: Task) -> policy.TaskFacts:
    member_ids = [
        r[0] for r in db.session.query(ProgramMember.user_id).filter_by(program_id=task.program_id)
    ]
    return policy.task_facts(assignee_ids=task.assignee_ids(), program_member_ids=member_ids)


# ═════════════════════════════════════════════════════════════════════════════
# Task CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_tasks(actor: policy.Actor, program_id=None, status=None, assignee_id=None) -> list[dict]:
    """Filterable listing. Collaborators only ever see tasks assigned to them."""
    policy.enforce(policy.decide_task(actor, policy.LIST))
    q = Task.query
    if not actor.is_admin:
        q = q.filter(Task.assignees.any(TaskAssignee.user_id == actor.id))
    if program_id:
        q = q.filter(Task.program_id == program_id)
    if status:
        q = q.filter(Task.status == status)
    if assignee_id:
        q = q.filter(Task.assignees.any(TaskAssignee.user_id == assignee_id))
    tasks = q.order_by(Task.created_at.desc(), Task.id.desc()).all()
    return [t.to_dict() for t in tasks]


def get_task(actor: policy.Actor, task_id: int) -> Task:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_task(actor, policy.READ, task_facts(task)))
    return task


def create_task(actor: policy.Actor, data: dict) -> Task:
    """Create a task with its assignees in one transaction (ADMIN only).

    Unknown program or assignee ids fail the whole request; duplicate
    assignee ids are collapsed.
    """
    policy.enforce(policy.decide_task(actor, policy.CREATE))
    require_fields(data, "name", "program_id")
    name = text_field(data, "name")
    description = optional_text(data, "description")
    deliverables = optional_text(data, "expected_deliverables")

    program = _resolve_program(data["program_id"])
    assignee_ids = _resolve_assignees(data.get("assignee_ids"))
    status = _validate_status(data.get("status") or "TODO")
    progress = _validate_progress(data.get("progress", 0))

    task = Task(
        name=name,
        description=description,
        program_id=program.id,
        creator_id=actor.id,
        due_date=_parse_due(data.get("due_date")),
        status=status,
        progress=progress,
        expected_deliverables=deliverables,
        reference_links=_validate_links(data.get("reference_links")),
        completed_at=utcnow() if status == "DONE" else None,
    )
    db.session.add(task)
    for uid in assignee_ids:
        db.session.add(TaskAssignee(task=task, user_id=uid))
    db.session.commit()
    logger.info("Task created id=%s program=%s assignees=%s", task.id, program.id, assignee_ids)

    record_audit("create", "task", task.id, actor_id=actor.id, new_values=_snapshot(task))
    return task


def update_task(actor: policy.Actor, task_id: int, data: dict) -> Task:
    """Edit-form update. Any status is accepted here (no adjacency check).

    Non-admins may not change assignees or the owning program; those keys
    are dropped before anything is written.
    """
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_task(actor, policy.UPDATE, task_facts(task)))
    changes = policy.sanitize_task_update(actor, data)

    text = {"name": text_field(changes, "name")} if "name" in changes else {}
    for field in ("description", "expected_deliverables"):
        if field in changes:
            text[field] = optional_text(changes, field)
    program = _resolve_program(changes["program_id"]) if "program_id" in changes else None
    assignee_ids = _resolve_assignees(changes["assignee_ids"]) if "assignee_ids" in changes else None
    status = _validate_status(changes["status"]) if "status" in changes else None
    progress = _validate_progress(changes["progress"]) if "progress" in changes else None
    links = _validate_links(changes["reference_links"]) if "reference_links" in changes else None
    due = _parse_due(changes["due_date"]) if "due_date" in changes else None

    old = _snapshot(task)
    for field, value in text.items():
        setattr(task, field, value)
    if "due_date" in changes:
        task.due_date = due
    if program is not None:
        task.program_id = program.id
    if status is not None:
        _set_status(task, status)
    if progress is not None:
        task.progress = progress
    if links is not None:
        task.reference_links = links
    if assignee_ids is not None:
        _replace_assignees(task, assignee_ids)

    db.session.commit()
    logger.info("Task updated id=%s by=%s", task.id, actor.id)

    record_audit("update", "task", task.id, actor_id=actor.id,
                 old_values=old, new_values=_snapshot(task))
    return task


def delete_task(actor: policy.Actor, task_id: int) -> None:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_task(actor, policy.DELETE, task_facts(task)))

    old = _snapshot(task)
    stored_paths = [f.relative_path for f in task.files]
    db.session.delete(task)
    db.session.commit()
    logger.info("Task deleted id=%s", task_id)

    from ceti.services.file_service import remove_stored_files
    remove_stored_files(stored_paths)

    record_audit("delete", "task", task_id, actor_id=actor.id, old_values=old)


# ═════════════════════════════════════════════════════════════════════════════
# Kanban & calendar
# ═════════════════════════════════════════════════════════════════════════════


def adjacent_status(current: str, direction: str) -> str:
    """Neighbour of ``current`` in TODO → IN_PROGRESS → DONE.

    Raises ValidationError for an unknown direction or a move past either end.
    """
    if direction not in ("next", "previous"):
        raise ValidationError("Dirección inválida", details={"direction": ["next", "previous"]})
    idx = TASK_STATUSES.index(current)
    target = idx + 1 if direction == "next" else idx - 1
    if target < 0 or target >= len(TASK_STATUSES):
        raise ValidationError(f"La tarea no puede moverse desde {current}")
    return TASK_STATUSES[target]


def move_task(actor: policy.Actor, task_id: int, direction: str) -> Task:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_task(actor, policy.UPDATE, task_facts(task)))

    old_status = task.status
    _set_status(task, adjacent_status(task.status, direction))
    db.session.commit()
    logger.info("Task moved id=%s %s -> %s", task.id, old_status, task.status)

    record_audit("move", "task", task.id, actor_id=actor.id,
                 old_values={"status": old_status}, new_values={"status": task.status})
    return task


def _calendar_details(task: Task) -> str:
    lines = []
    if task.description:
        lines += [task.description, ""]
    lines += [
        "--- DETALLES DE LA TAREA ---",
        f"Programa: {task.program.name if task.program else 'No especificado'}",
        f"Progreso: {task.progress}%",
        f"Estado: {_STATUS_LABELS.get(task.status, task.status)}",
    ]
    if task.expected_deliverables:
        lines.append(f"Entregables: {task.expected_deliverables}")
    names = [a.user.name or a.user.email for a in task.assignees if a.user]
    if names:
        lines.append(f"Responsables: {', '.join(names)}")
    if task.reference_links:
        lines += ["", "--- ENLACES DE REFERENCIA ---"]
        for i, link in enumerate(task.reference_links, start=1):
            lines.append(f"{i}. {link.get('title') or 'Enlace'}: {link.get('url')}")
    lines += ["", f"ID de tarea: {task.id}"]
    return "\n".join(lines)


def calendar_event(actor: policy.Actor, task_id: int) -> dict:
    """One-hour Google Calendar template event at the task's due date."""
    task = get_task(actor, task_id)
    if task.due_date is None:
        raise ValidationError("Esta tarea no tiene fecha de vencimiento")

    start = task.due_date
    end = start + timedelta(hours=1)
    fmt = "%Y%m%dT%H%M%SZ"
    title = f"[CETI] {task.name}"
    location = f"Programa: {task.program.name}" if task.program else "CETI - Seguimiento de Metas"
    params = {
        "action": "TEMPLATE",
        "text": title,
        "details": _calendar_details(task),
        "dates": f"{start.strftime(fmt)}/{end.strftime(fmt)}",
        "location": location,
        "ctz": CALENDAR_TIMEZONE,
    }
    return {
        "calendar_url": f"{CALENDAR_BASE_URL}?{urlencode(params)}",
        "event": {
            "title": title,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "location": location,
        },
    }
