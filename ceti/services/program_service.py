"""Program service layer — programs and their user-assignments.

Transaction policy: public functions call db.session.commit() on success
and only then write the audit row.

Provides:
- Program CRUD with date-window validation
- Delete guard: refused while TODO / IN_PROGRESS tasks exist
- Membership management (who may see the program)
"""
import logging

from ceti.core.exceptions import ValidationError
from ceti.models import db
from ceti.models.audit import record_audit
from ceti.models.program import PROGRAM_STATUSES, Program, ProgramMember
from ceti.models.task import ACTIVE_TASK_STATUSES, Task, TaskFile
from ceti.models.user import User
from ceti.services import access_policy as policy
from ceti.utils.helpers import get_or_404, optional_text, parse_date, require_fields, text_field

logger = logging.getLogger(__name__)

_FIELD_LIMITS = {"name": 200}
_AUDIT_FIELDS = ("name", "general_objective", "description", "start_date", "end_date", "status")


def _validate_enum(value: str, allowed: set[str], field_name: str) -> str | None:
    """Return error message if value not in allowed set, else None."""
    if value and (not isinstance(value, str) or value not in allowed):
        return f"Valor inválido para {field_name}: '{value}'. Permitidos: {sorted(allowed)}"
    return None


def _validate_length(value: str, max_len: int, field_name: str) -> str | None:
    """Return error message if value exceeds max_len, else None."""
    if value and len(value) > max_len:
        return f"{field_name} excede el máximo de {max_len} caracteres"
    return None


def _snapshot(program: Program) -> dict:
    return {f: getattr(program, f) for f in _AUDIT_FIELDS}


def _check_window(start, end) -> None:
    if start is None or end is None:
        raise ValidationError("Fechas inválidas", details={"start_date": "invalid", "end_date": "invalid"})
    if end <= start:
        raise ValidationError("La fecha de fin debe ser posterior a la fecha de inicio")


# ── Fact gathering ───────────────────────────────────────────────────────────


def active_task_count(program_id: int) -> int:
    return Task.query.filter(
        Task.program_id == program_id, Task.status.in_(ACTIVE_TASK_STATUSES),
    ).count()


def program_facts(program: Program, with_active_count=False) -> policy.ProgramFacts:
    return policy.program_facts(
        member_ids=program.member_ids(),
        active_task_count=active_task_count(program.id) if with_active_count else 0,
    )


def visible_program_ids(actor: policy.Actor):
    """Program ids the actor may see; None means all (ADMIN)."""
    if actor.is_admin:
        return None
    rows = db.session.query(ProgramMember.program_id).filter_by(user_id=actor.id).all()
    return [r[0] for r in rows]


# ═════════════════════════════════════════════════════════════════════════════
# Program CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_programs(actor: policy.Actor, status: str | None = None) -> list[dict]:
    """ADMIN sees every program, collaborators only those they are assigned to."""
    policy.enforce(policy.decide_program(actor, policy.LIST))
    q = Program.query
    ids = visible_program_ids(actor)
    if ids is not None:
        q = q.filter(Program.id.in_(ids))
    if status:
        q = q.filter(Program.status == status)
    programs = q.order_by(Program.created_at.desc(), Program.id.desc()).all()
    return [p.to_dict(include_counts=True) for p in programs]


def get_program(actor: policy.Actor, program_id: int) -> Program:
    program = get_or_404(Program, program_id, label="Programa")
    policy.enforce(policy.decide_program(actor, policy.READ, program_facts(program)))
    return program


def create_program(actor: policy.Actor, data: dict) -> Program:
    """Create a program (ADMIN only). Requires name, objective and a valid window."""
    policy.enforce(policy.decide_program(actor, policy.CREATE))
    require_fields(data, "name", "general_objective", "start_date", "end_date")
    name = text_field(data, "name")
    general_objective = text_field(data, "general_objective")
    description = optional_text(data, "description")

    err = _validate_length(name, _FIELD_LIMITS["name"], "name")
    err = err or _validate_enum(data.get("status"), PROGRAM_STATUSES, "status")
    if err:
        raise ValidationError(err)

    start = parse_date(data["start_date"])
    end = parse_date(data["end_date"])
    _check_window(start, end)

    program = Program(
        name=name,
        general_objective=general_objective,
        description=description,
        start_date=start,
        end_date=end,
        status=data.get("status") or "ACTIVE",
    )
    db.session.add(program)
    db.session.commit()
    logger.info("Program created id=%s name=%s", program.id, program.name)

    record_audit("create", "program", program.id, actor_id=actor.id, new_values=_snapshot(program))
    return program


def update_program(actor: policy.Actor, program_id: int, data: dict) -> Program:
    """Partial update (ADMIN only). The date window is re-validated."""
    program = get_or_404(Program, program_id, label="Programa")
    policy.enforce(policy.decide_program(actor, policy.UPDATE, program_facts(program)))

    text = {f: text_field(data, f) for f in ("name", "general_objective") if f in data}
    if "description" in data:
        text["description"] = optional_text(data, "description")
    err = _validate_length(text.get("name"), _FIELD_LIMITS["name"], "name")
    err = err or _validate_enum(data.get("status"), PROGRAM_STATUSES, "status")
    if err:
        raise ValidationError(err)

    start = parse_date(data["start_date"]) if "start_date" in data else program.start_date
    end = parse_date(data["end_date"]) if "end_date" in data else program.end_date
    _check_window(start, end)

    old = _snapshot(program)
    for field, value in text.items():
        setattr(program, field, value)
    if data.get("status"):
        program.status = data["status"]
    program.start_date = start
    program.end_date = end

    db.session.commit()
    logger.info("Program updated id=%s", program.id)

    record_audit("update", "program", program.id, actor_id=actor.id,
                 old_values=old, new_values=_snapshot(program))
    return program


def delete_program(actor: policy.Actor, program_id: int) -> None:
    """Delete a program and everything under it.

    Refused while any task is TODO or IN_PROGRESS; the error carries the
    blocking count. Stored task files are removed best-effort afterwards.
    """
    program = get_or_404(Program, program_id, label="Programa")
    policy.enforce(policy.decide_program(
        actor, policy.DELETE, program_facts(program, with_active_count=True),
    ))

    old = _snapshot(program)
    stored_paths = [
        f.relative_path
        for f in TaskFile.query.join(Task).filter(Task.program_id == program.id)
    ]
    db.session.delete(program)
    db.session.commit()
    logger.info("Program deleted id=%s (%d stored files)", program_id, len(stored_paths))

    from ceti.services.file_service import remove_stored_files
    remove_stored_files(stored_paths)

    record_audit("delete", "program", program_id, actor_id=actor.id, old_values=old)


# ═════════════════════════════════════════════════════════════════════════════
# Membership
# ═════════════════════════════════════════════════════════════════════════════


def list_members(actor: policy.Actor, program_id: int) -> list[dict]:
    program = get_program(actor, program_id)
    return [m.to_dict() for m in program.members.order_by(ProgramMember.created_at)]


def add_member(actor: policy.Actor, program_id: int, user_id) -> ProgramMember:
    """Assign a user to a program (ADMIN only). Idempotent per (program, user)."""
    program = get_or_404(Program, program_id, label="Programa")
    policy.enforce(policy.decide_program(actor, policy.UPDATE, program_facts(program)))
    if user_id is None:
        raise ValidationError("Faltan datos requeridos", details={"user_id": "required"})
    user = db.session.get(User, user_id)
    if user is None:
        raise ValidationError("Usuario inválido", details={"user_id": user_id})

    existing = ProgramMember.query.filter_by(program_id=program.id, user_id=user.id).first()
    if existing is not None:
        return existing

    member = ProgramMember(program_id=program.id, user_id=user.id)
    db.session.add(member)
    db.session.commit()
    logger.info("Program member added program=%s user=%s", program.id, user.id)

    record_audit("assign", "program_member", member.id, actor_id=actor.id,
                 new_values={"program_id": program.id, "user_id": user.id})
    return member


def remove_member(actor: policy.Actor, program_id: int, user_id: int) -> None:
    program = get_or_404(Program, program_id, label="Programa")
    policy.enforce(policy.decide_program(actor, policy.UPDATE, program_facts(program)))
    member = ProgramMember.query.filter_by(program_id=program.id, user_id=user_id).first()
    if member is None:
        raise ValidationError("El usuario no está asignado al programa")

    member_id = member.id
    db.session.delete(member)
    db.session.commit()
    logger.info("Program member removed program=%s user=%s", program.id, user_id)

    record_audit("unassign", "program_member", member_id, actor_id=actor.id,
                 old_values={"program_id": program.id, "user_id": user_id})

