"""Comment service — notes on a task.

Creating or reading comments requires ADMIN or an assignee of the task.
Deleting requires ADMIN or the author. Comments are never edited.
"""
import logging

from ceti.core.exceptions import ValidationError
from ceti.models import db
from ceti.models.audit import record_audit
from ceti.models.task import Comment, Task
from ceti.services import access_policy as policy
from ceti.utils.helpers import get_or_404

logger = logging.getLogger(__name__)


def _facts(task: Task, owner_id=None) -> policy.AttachmentFacts:
    return policy.attachment_facts(owner_id=owner_id, task_assignee_ids=task.assignee_ids())


def list_comments(actor: policy.Actor, task_id: int) -> list[dict]:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_attachment(actor, policy.LIST, _facts(task)))
    return [c.to_dict() for c in task.comments]


def create_comment(actor: policy.Actor, task_id: int, content) -> Comment:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_attachment(actor, policy.CREATE, _facts(task)))
    text = (content or "").strip() if isinstance(content, str) else ""
    if not text:
        raise ValidationError("El contenido del comentario es requerido", details={"content": "required"})

    comment = Comment(content=text, task_id=task.id, author_id=actor.id)
    db.session.add(comment)
    db.session.commit()
    logger.info("Comment created id=%s task=%s", comment.id, task.id)

    record_audit("create", "comment", comment.id, actor_id=actor.id,
                 new_values={"task_id": task.id, "content": text})
    return comment


def delete_comment(actor: policy.Actor, comment_id: int) -> None:
    comment = get_or_404(Comment, comment_id, label="Comentario")
    policy.enforce(policy.decide_attachment(actor, policy.DELETE, _facts(comment.task, comment.author_id)))

    old = {"task_id": comment.task_id, "author_id": comment.author_id, "content": comment.content}
    db.session.delete(comment)
    db.session.commit()
    logger.info("Comment deleted id=%s", comment_id)

    record_audit("delete", "comment", comment_id, actor_id=actor.id, old_values=old)
