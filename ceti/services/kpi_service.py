"""KPI aggregator — dashboard counts and rates.

Every figure is role-filtered: ADMIN sees the whole institution, a
collaborator sees only programs they are assigned to and the tasks inside
those programs. All rates are percentages (0–100) rounded to one decimal.

Completion date of a DONE task is ``completed_at`` (set when the task
enters DONE), falling back to ``updated_at`` for rows that predate it.
"""
import logging
import math
from datetime import timedelta

from sqlalchemy import func

from ceti.models import db, utcnow
from ceti.models.program import Program, ProgramMember
from ceti.models.task import Comment, Task, TaskAssignee, TaskFile
from ceti.models.user import ROLE_COLLABORATOR, User
from ceti.services import access_policy as policy
from ceti.services.program_service import visible_program_ids

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30
TIMELINE_MAX_DAYS = 7
CHART_NAME_LIMIT = 15


def _rate(part, whole) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _ratio(part, whole) -> float:
    return round(part / whole, 2) if whole else 0.0


def _completed_on(task: Task):
    return task.completed_at or task.updated_at


def _delay_days(task: Task) -> int:
    """Whole days between due date and completion, rounded up (negative = early)."""
    delta = _completed_on(task) - task.due_date
    return math.ceil(delta.total_seconds() / 86400)


def _scoped_tasks(actor: policy.Actor):
    q = Task.query
    ids = visible_program_ids(actor)
    if ids is not None:
        q = q.filter(Task.program_id.in_(ids))
    return q


def _scoped_programs(actor: policy.Actor):
    q = Program.query
    ids = visible_program_ids(actor)
    if ids is not None:
        q = q.filter(Program.id.in_(ids))
    return q


def _scoped_users(actor: policy.Actor):
    ids = visible_program_ids(actor)
    if ids is None:
        return User.query
    member_ids = db.session.query(ProgramMember.user_id).filter(ProgramMember.program_id.in_(ids))
    return User.query.filter(User.id.in_(member_ids))


def _task_block(tasks: list[Task], file_count: int, comment_count: int, now) -> dict:
    """Shared per-scope figures used by overall, per-program and per-user KPIs."""
    total = len(tasks)
    done = [t for t in tasks if t.status == "DONE"]
    overdue = sum(1 for t in tasks if t.is_overdue(now))
    done_with_due = [t for t in done if t.due_date is not None and _completed_on(t) is not None]
    on_time = sum(1 for t in done_with_due if _completed_on(t) <= t.due_date)
    avg_completion = (
        round(sum(_delay_days(t) for t in done_with_due) / len(done_with_due), 1)
        if done_with_due else 0.0
    )
    return {
        "total_tasks": total,
        "completed_tasks": len(done),
        "completion_rate": _rate(len(done), total),
        "on_time_completion_rate": _rate(on_time, len(done)),
        "deliverables_uploaded": file_count,
        "average_completion_time": avg_completion,
        "tasks_in_delay": overdue,
        "participation_level": _ratio(comment_count, total),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard endpoints
# ═════════════════════════════════════════════════════════════════════════════


def overall(actor: policy.Actor) -> dict:
    policy.enforce(policy.decide_program(actor, policy.LIST))
    now = utcnow()
    tasks = _scoped_tasks(actor).all()
    task_ids = [t.id for t in tasks]

    file_count = TaskFile.query.filter(TaskFile.task_id.in_(task_ids)).count() if task_ids else 0
    comment_count = Comment.query.filter(Comment.task_id.in_(task_ids)).count() if task_ids else 0
    block = _task_block(tasks, file_count, comment_count, now)

    users = _scoped_users(actor)
    total_users = users.count()
    active_users = users.filter(User.is_active.is_(True)).count()
    programs = _scoped_programs(actor)
    total_programs = programs.count()
    active_programs = programs.filter(Program.status == "ACTIVE").count()

    return {
        "total_users": total_users,
        "active_users": active_users,
        "total_programs": total_programs,
        "active_programs": active_programs,
        "total_tasks": block["total_tasks"],
        "completed_tasks": block["completed_tasks"],
        "in_progress_tasks": sum(1 for t in tasks if t.status == "IN_PROGRESS"),
        "pending_tasks": sum(1 for t in tasks if t.status == "TODO"),
        "overdue_tasks": block["tasks_in_delay"],
        "completion_rate": block["completion_rate"],
        "on_time_completion_rate": block["on_time_completion_rate"],
        "average_tasks_per_user": _ratio(block["total_tasks"], active_users),
        "average_tasks_per_program": _ratio(block["total_tasks"], active_programs),
        "deliverables_uploaded": block["deliverables_uploaded"],
        "average_completion_time": block["average_completion_time"],
        "tasks_in_delay": block["tasks_in_delay"],
        "participation_level": block["participation_level"],
    }


def programs_chart(actor: policy.Actor, period: int = DEFAULT_PERIOD_DAYS) -> list[dict]:
    """Task count per program created within the last ``period`` days."""
    policy.enforce(policy.decide_program(actor, policy.LIST))
    since = utcnow() - timedelta(days=max(period, 0))
    rows = (
        _scoped_programs(actor)
        .filter(Program.created_at >= since)
        .order_by(Program.name.asc())
        .all()
    )
    chart = []
    for p in rows:
        name = p.name if len(p.name) <= CHART_NAME_LIMIT else p.name[:CHART_NAME_LIMIT] + "..."
        chart.append({"id": p.id, "name": name, "value": p.tasks.count(), "status": p.status})
    return chart


def tasks_timeline(actor: policy.Actor, period: int = DEFAULT_PERIOD_DAYS) -> dict:
    """Status counts for tasks created in the period plus a daily timeline.

    The timeline covers the last ``min(7, period)`` days; each day counts
    tasks that existed by then, bucketed by their current status.
    """
    policy.enforce(policy.decide_program(actor, policy.LIST))
    period = max(period, 0)
    now = utcnow()
    since = now - timedelta(days=period)
    tasks = (
        _scoped_tasks(actor)
        .filter(Task.created_at >= since, Task.created_at <= now)
        .order_by(Task.created_at.asc())
        .all()
    )

    timeline = []
    for offset in range(min(TIMELINE_MAX_DAYS, period) - 1, -1, -1):
        day = now - timedelta(days=offset)
        existing = [t for t in tasks if t.created_at <= day]
        timeline.append({
            "date": day.date().isoformat(),
            "completed": sum(1 for t in existing if t.status == "DONE" and _completed_on(t) <= day),
            "in_progress": sum(1 for t in existing if t.status == "IN_PROGRESS" and t.updated_at <= day),
            "pending": sum(1 for t in existing if t.status == "TODO"),
        })

    return {
        "completed": sum(1 for t in tasks if t.status == "DONE"),
        "in_progress": sum(1 for t in tasks if t.status == "IN_PROGRESS"),
        "pending": sum(1 for t in tasks if t.status == "TODO"),
        "overdue": sum(1 for t in tasks if t.is_overdue(now)),
        "timeline": timeline,
    }


def program_performance(actor: policy.Actor, program_id: int | None = None) -> list[dict]:
    """Per-program performance table (visible programs only)."""
    policy.enforce(policy.decide_program(actor, policy.LIST))
    now = utcnow()
    q = _scoped_programs(actor)
    if program_id is not None:
        q = q.filter(Program.id == program_id)

    results = []
    for program in q.order_by(Program.name.asc()).all():
        tasks = program.tasks.all()
        ids = [t.id for t in tasks]
        files = TaskFile.query.filter(TaskFile.task_id.in_(ids)).count() if ids else 0
        comments = Comment.query.filter(Comment.task_id.in_(ids)).count() if ids else 0
        block = _task_block(tasks, files, comments, now)
        results.append({"program_id": program.id, "program_name": program.name, **block})
    return results


def user_performance(actor: policy.Actor, user_id: int | None = None) -> list[dict]:
    """Per-collaborator performance table (ADMIN only).

    Participation counts only the comments the user wrote on their tasks.
    """
    policy.enforce(policy.decide_user(actor, policy.LIST))
    now = utcnow()
    q = User.query
    q = q.filter(User.id == user_id) if user_id is not None else q.filter(User.role == ROLE_COLLABORATOR)

    results = []
    for user in q.order_by(User.name.asc()).all():
        tasks = (
            Task.query.join(TaskAssignee, TaskAssignee.task_id == Task.id)
            .filter(TaskAssignee.user_id == user.id)
            .all()
        )
        ids = [t.id for t in tasks]
        files = TaskFile.query.filter(TaskFile.task_id.in_(ids)).count() if ids else 0
        comments = (
            db.session.query(func.count(Comment.id))
            .filter(Comment.task_id.in_(ids), Comment.author_id == user.id)
            .scalar()
        ) if ids else 0
        block = _task_block(tasks, files, comments or 0, now)
        results.append({"user_id": user.id, "user_name": user.name or user.email, **block})
    return results
