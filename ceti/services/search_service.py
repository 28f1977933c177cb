"""Global search across programs, tasks, users and comments.

Matching is a case-insensitive substring test (SQL LIKE with the wildcard
characters escaped). Each kind contributes at most ``PER_KIND_LIMIT`` hits,
gathered in discovery order programs → tasks → users → comments, then the
merged list is ranked by ``relevance`` (stable, so ties keep discovery
order) and cut to ``MAX_RESULTS``.

Visibility follows the access policy: collaborators only search programs
they are assigned to, tasks assigned to them, and comments on those tasks.
Users are searchable by ADMIN only.
"""
import logging

from sqlalchemy import func, or_

from ceti.models.program import Program, ProgramMember
from ceti.models.task import Comment, Task, TaskAssignee
from ceti.models.user import User
from ceti.services import access_policy as policy

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
PER_KIND_LIMIT = 10
MAX_RESULTS = 50


def _iso(value):
    return value.isoformat() if value else None


def _matches(term: str, *columns):
    return or_(*[func.lower(col).contains(term, autoescape=True) for col in columns])


# ── Ranking (pure) ───────────────────────────────────────────────────────────


def relevance(result: dict, term: str) -> int:
    """+10 title contains (+5 more if it starts with the term), +5 description, +2 content."""
    score = 0
    title = (result.get("title") or "").lower()
    if term in title:
        score += 10
        if title.startswith(term):
            score += 5
    if term in (result.get("description") or "").lower():
        score += 5
    if term in (result.get("content") or "").lower():
        score += 2
    return score


def rank_results(results: list[dict], term: str, limit: int = MAX_RESULTS) -> list[dict]:
    term = term.lower()
    for r in results:
        r["score"] = relevance(r, term)
    ranked = sorted(results, key=lambda r: r["score"], reverse=True)
    return ranked[:limit]


# ── Per-kind gathering ───────────────────────────────────────────────────────


def _programs(actor: policy.Actor, term: str) -> list[dict]:
    q = Program.query.filter(_matches(term, Program.name, Program.description, Program.general_objective))
    if not actor.is_admin:
        q = q.filter(Program.members.any(ProgramMember.user_id == actor.id))
    return [
        {
            "type": "program",
            "id": p.id,
            "title": p.name,
            "description": p.description,
            "content": None,
            "metadata": {"status": p.status, "date": _iso(p.start_date)},
        }
        for p in q.order_by(Program.id).limit(PER_KIND_LIMIT).all()
    ]


def _tasks(actor: policy.Actor, term: str) -> list[dict]:
    q = Task.query.filter(_matches(term, Task.name, Task.description, Task.expected_deliverables))
    if not actor.is_admin:
        q = q.filter(Task.assignees.any(TaskAssignee.user_id == actor.id))
    results = []
    for t in q.order_by(Task.id).limit(PER_KIND_LIMIT).all():
        first = t.assignees.first()
        results.append({
            "type": "task",
            "id": t.id,
            "title": t.name,
            "description": t.description,
            "content": None,
            "metadata": {
                "status": t.status,
                "assignee": first.user.name if first and first.user else None,
                "program": t.program.name if t.program else None,
                "date": _iso(t.created_at),
            },
        })
    return results


def _users(actor: policy.Actor, term: str) -> list[dict]:
    if not actor.is_admin:
        return []
    q = User.query.filter(_matches(term, User.name, User.email))
    return [
        {
            "type": "user",
            "id": u.id,
            "title": u.name or "Sin nombre",
            "description": u.email,
            "content": None,
            "metadata": {
                "status": "Activo" if u.is_active else "Inactivo",
                "date": _iso(u.created_at),
            },
        }
        for u in q.order_by(User.id).limit(PER_KIND_LIMIT).all()
    ]


def _comments(actor: policy.Actor, term: str) -> list[dict]:
    q = Comment.query.filter(_matches(term, Comment.content))
    if not actor.is_admin:
        q = q.filter(Comment.task.has(Task.assignees.any(TaskAssignee.user_id == actor.id)))
    return [
        {
            "type": "comment",
            "id": c.id,
            "title": f"Comentario en: {c.task.name}",
            "description": None,
            "content": c.content,
            "metadata": {
                "assignee": c.author.name if c.author else None,
                "task_id": c.task_id,
                "date": _iso(c.created_at),
            },
        }
        for c in q.order_by(Comment.id).limit(PER_KIND_LIMIT).all()
    ]


def search(actor: policy.Actor, query: str | None) -> list[dict]:
    """Run a search for ``actor``. Queries shorter than 2 characters return [].

    The query is matched as typed: surrounding whitespace is part of the term.
    """
    policy.enforce(policy.decide_program(actor, policy.LIST))
    term = (query or "").lower()
    if len(term) < MIN_QUERY_LENGTH:
        return []

    results = _programs(actor, term) + _tasks(actor, term) + _users(actor, term) + _comments(actor, term)
    logger.debug("Search term=%r raw_hits=%d", term, len(results))
    return rank_results(results, term)
