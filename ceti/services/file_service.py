"""File service — task deliverables on local disk.

Storage layout (relative to UPLOAD_FOLDER):
    tasks/<task_id>/<timestamp>-<random><ext>
    transcriptions/<owner_id>/<timestamp>-<random><ext>

The stored locator is the same path under ``/uploads/``. Removing the bytes
from disk is best-effort: a failed unlink is logged and the DB row is
deleted anyway.
"""
import logging
import os
import secrets
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from ceti.core.exceptions import ValidationError
from ceti.models import db
from ceti.models.audit import record_audit
from ceti.models.task import Task, TaskFile
from ceti.services import access_policy as policy
from ceti.utils.helpers import get_or_404

logger = logging.getLogger(__name__)

ALLOWED_TASK_FILE_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "text/plain",
    "text/csv",
})


# ── Disk helpers (shared with transcriptions) ────────────────────────────────


def upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def absolute_path(relative_path: str) -> str:
    return os.path.join(upload_root(), *relative_path.split("/"))


def _stream_size(file_storage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def store_upload(file_storage, subdir: str, allowed_types, max_bytes: int,
                 too_large_message: str, bad_type_message: str) -> dict:
    """Validate and write an uploaded file under ``UPLOAD_FOLDER/<subdir>``.

    Returns the metadata needed to persist a row (stored filename,
    original name, MIME type, size, public url).
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No se proporcionó ningún archivo", details={"file": "required"})

    size = _stream_size(file_storage)
    if size > max_bytes:
        raise ValidationError(too_large_message, details={"size": size, "max_bytes": max_bytes})
    mime_type = (file_storage.mimetype or "").lower()
    if mime_type not in allowed_types:
        raise ValidationError(bad_type_message, details={"mime_type": mime_type})

    original_name = file_storage.filename
    _, ext = os.path.splitext(secure_filename(original_name))
    filename = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext.lower()}"
    relative_path = f"{subdir}/{filename}"

    target = absolute_path(relative_path)
    os.makedirs(os.path.dirname(target), exist_ok=True)
    file_storage.save(target)

    return {
        "filename": filename,
        "original_name": original_name,
        "mime_type": mime_type,
        "size": size,
        "url": f"/uploads/{relative_path}",
    }


def remove_stored_files(relative_paths) -> int:
    """Unlink stored files, ignoring the ones already gone. Returns how many were removed."""
    removed = 0
    for rel in relative_paths:
        try:
            os.remove(absolute_path(rel))
            removed += 1
        except FileNotFoundError:
            logger.debug("Stored file already absent: %s", rel)
        except OSError as exc:
            logger.warning("Could not remove stored file %s: %s", rel, exc)
    return removed


def commit_upload(row, meta: dict) -> None:
    """Commit the row of a freshly stored upload; the stored bytes go if the commit fails."""
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        remove_stored_files([meta["url"].removeprefix("/uploads/")])
        raise


# ═════════════════════════════════════════════════════════════════════════════
# Task files
# ═════════════════════════════════════════════════════════════════════════════


def _facts(task: Task, owner_id=None) -> policy.AttachmentFacts:
    return policy.attachment_facts(owner_id=owner_id, task_assignee_ids=task.assignee_ids())


def list_files(actor: policy.Actor, task_id: int) -> list[dict]:
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_attachment(actor, policy.LIST, _facts(task)))
    return [f.to_dict() for f in task.files]


def upload_file(actor: policy.Actor, task_id: int, file_storage) -> TaskFile:
    """Attach a file to a task (50 MB cap, fixed MIME allow-list)."""
    task = get_or_404(Task, task_id, label="Tarea")
    policy.enforce(policy.decide_attachment(actor, policy.CREATE, _facts(task)))

    meta = store_upload(
        file_storage,
        subdir=f"tasks/{task.id}",
        allowed_types=ALLOWED_TASK_FILE_TYPES,
        max_bytes=current_app.config["TASK_FILE_MAX_BYTES"],
        too_large_message="El archivo es demasiado grande. Máximo 50MB",
        bad_type_message="Tipo de archivo no permitido",
    )
    row = TaskFile(task_id=task.id, uploaded_by_id=actor.id, **meta)
    commit_upload(row, meta)
    logger.info("File uploaded id=%s task=%s size=%s", row.id, task.id, row.size)

    record_audit("create", "file", row.id, actor_id=actor.id, new_values={
        "task_id": task.id, "original_name": row.original_name,
        "mime_type": row.mime_type, "size": row.size,
    })
    return row


def get_file(actor: policy.Actor, file_id: int) -> TaskFile:
    """File metadata / download. Same rule as reading the parent task's attachments."""
    row = get_or_404(TaskFile, file_id, label="Archivo")
    policy.enforce(policy.decide_attachment(actor, policy.READ, _facts(row.task, row.uploaded_by_id)))
    return row


def delete_file(actor: policy.Actor, file_id: int) -> None:
    """Remove a file (ADMIN or uploader). The row goes even if the unlink fails."""
    row = get_or_404(TaskFile, file_id, label="Archivo")
    policy.enforce(policy.decide_attachment(actor, policy.DELETE, _facts(row.task, row.uploaded_by_id)))

    old = row.to_dict()
    relative_path = row.relative_path
    db.session.delete(row)
    db.session.commit()
    remove_stored_files([relative_path])
    logger.info("File deleted id=%s", file_id)

    record_audit("delete", "file", file_id, actor_id=actor.id, old_values=old)
