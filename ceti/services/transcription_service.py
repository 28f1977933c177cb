"""Transcription service — audio upload, speech-to-text and streamed summaries.

Owners see and manage their own transcriptions; ADMIN may manage any.
Provider failures move the record to ERROR and surface as
ExternalServiceError (HTTP 500); there is no automatic retry, the user
re-triggers the step.

Summary streaming:
    ``start_summary`` connects to the provider before returning, so a
    connection failure is an ordinary 500. The returned generator relays
    chunks as ``data: {"content": ...}`` lines while buffering them. When
    the upstream finishes the buffer is saved as the summary. If the client
    disconnects first, the rest of the upstream stream is drained and saved
    all the same.
"""
import json
import logging

from flask import current_app

from ceti.ai import transcription_gateway
from ceti.core.exceptions import ExternalServiceError, PermissionDeniedError, ValidationError
from ceti.models import db
from ceti.models.audit import record_audit
from ceti.models.transcription import Transcription
from ceti.services import access_policy as policy
from ceti.services.file_service import absolute_path, commit_upload, remove_stored_files, store_upload
from ceti.utils.helpers import get_or_404, optional_text, text_field

logger = logging.getLogger(__name__)

ALLOWED_AUDIO_TYPES = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/m4a",
    "audio/aac",
    "audio/ogg",
    "audio/webm",
    "audio/flac",
    "video/mp4",
    "video/webm",
    "video/quicktime",
})

STREAM_DONE = "data: [DONE]\n\n"


def _event(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _check_owner(actor: policy.Actor, transcription: Transcription) -> None:
    if not actor.is_admin and transcription.owner_id != actor.id:
        raise PermissionDeniedError(reason=policy.FORBIDDEN_ROLE)


def _set_status(transcription: Transcription, status: str, error: str | None = None) -> None:
    transcription.status = status
    transcription.error_message = error
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_transcriptions(actor: policy.Actor) -> list[dict]:
    """The caller's own history, newest first."""
    rows = (
        Transcription.query.filter_by(owner_id=actor.id)
        .order_by(Transcription.created_at.desc(), Transcription.id.desc())
        .all()
    )
    return [t.to_dict() for t in rows]


def get_transcription(actor: policy.Actor, transcription_id: int) -> Transcription:
    transcription = get_or_404(Transcription, transcription_id, label="Transcripción")
    _check_owner(actor, transcription)
    return transcription


def create_transcription(actor: policy.Actor, file_storage, title: str | None = None) -> Transcription:
    """Store an uploaded audio/video file (100 MB cap) as a PENDING transcription."""
    meta = store_upload(
        file_storage,
        subdir=f"transcriptions/{actor.id}",
        allowed_types=ALLOWED_AUDIO_TYPES,
        max_bytes=current_app.config["TRANSCRIPTION_MAX_BYTES"],
        too_large_message="Archivo demasiado grande. Máximo 100MB.",
        bad_type_message="Tipo de archivo no soportado. Solo archivos de audio/video.",
    )
    transcription = Transcription(
        title=(title or "").strip() or meta["original_name"],
        filename=meta["filename"],
        original_name=meta["original_name"],
        mime_type=meta["mime_type"],
        size=meta["size"],
        file_url=meta["url"],
        status="PENDING",
        owner_id=actor.id,
    )
    commit_upload(transcription, meta)
    logger.info("Transcription uploaded id=%s owner=%s size=%s", transcription.id, actor.id, transcription.size)

    record_audit("create", "transcription", transcription.id, actor_id=actor.id,
                 new_values={"original_name": transcription.original_name, "size": transcription.size})
    return transcription


def update_transcription(actor: policy.Actor, transcription_id: int, data: dict) -> Transcription:
    """Manual edits of title, transcript text or summary."""
    transcription = get_transcription(actor, transcription_id)
    editable = ("title", "transcript_text", "summary")
    old = {f: getattr(transcription, f) for f in editable}
    changes = {f: optional_text(data, f) or None for f in editable if f in data}
    if "title" in changes:
        changes["title"] = text_field(data, "title")
    for field, value in changes.items():
        setattr(transcription, field, value)
    db.session.commit()

    record_audit("update", "transcription", transcription.id, actor_id=actor.id,
                 old_values=old, new_values={f: getattr(transcription, f) for f in editable})
    return transcription


def delete_transcription(actor: policy.Actor, transcription_id: int) -> None:
    transcription = get_transcription(actor, transcription_id)
    old = transcription.to_dict()
    relative_path = transcription.relative_path
    db.session.delete(transcription)
    db.session.commit()
    remove_stored_files([relative_path])
    logger.info("Transcription deleted id=%s", transcription_id)

    record_audit("delete", "transcription", transcription_id, actor_id=actor.id, old_values=old)


# ═════════════════════════════════════════════════════════════════════════════
# Provider steps
# ═════════════════════════════════════════════════════════════════════════════


def transcribe(actor: policy.Actor, transcription_id: int) -> Transcription:
    """Run speech-to-text. Refused when a transcript already exists."""
    transcription = get_transcription(actor, transcription_id)
    if transcription.transcript_text:
        raise ValidationError("Esta transcripción ya fue procesada")

    _set_status(transcription, "TRANSCRIBING")
    provider = transcription_gateway.get_provider()
    try:
        text = provider.transcribe(absolute_path(transcription.relative_path), transcription.original_name)
    except Exception as exc:
        logger.exception("Transcription failed id=%s", transcription.id)
        _set_status(transcription, "ERROR", error=str(exc))
        raise ExternalServiceError("Error al consultar la API de transcripción")

    transcription.transcript_text = text
    _set_status(transcription, "COMPLETED")
    logger.info("Transcription completed id=%s chars=%d", transcription.id, len(text))

    record_audit("transcribe", "transcription", transcription.id, actor_id=actor.id,
                 new_values={"status": "COMPLETED"})
    return transcription


def _save_summary(transcription_id: int, text: str, actor_id: int) -> None:
    transcription = db.session.get(Transcription, transcription_id)
    if transcription is None:
        logger.warning("Transcription %s vanished before its summary was saved", transcription_id)
        return
    transcription.summary = text
    _set_status(transcription, "COMPLETED")
    logger.info("Summary saved id=%s chars=%d", transcription_id, len(text))
    record_audit("summarize", "transcription", transcription_id, actor_id=actor_id,
                 new_values={"status": "COMPLETED"})


def _mark_error(transcription_id: int, message: str) -> None:
    transcription = db.session.get(Transcription, transcription_id)
    if transcription is not None:
        _set_status(transcription, "ERROR", error=message)


def _drain_and_save(upstream, buffer: list[str], transcription_id: int, actor_id: int) -> None:
    try:
        for chunk in upstream:
            buffer.append(chunk)
    except Exception as exc:
        logger.exception("Summary stream failed after disconnect id=%s", transcription_id)
        _mark_error(transcription_id, str(exc))
        return
    _save_summary(transcription_id, "".join(buffer), actor_id)


def start_summary(actor: policy.Actor, transcription_id: int):
    """Open the summary stream and return the relay generator.

    Raises ValidationError when there is no transcript and
    ExternalServiceError when the provider cannot be reached.
    """
    transcription = get_transcription(actor, transcription_id)
    if not transcription.transcript_text:
        raise ValidationError("La transcripción no tiene texto para resumir")

    _set_status(transcription, "SUMMARIZING")
    provider = transcription_gateway.get_provider()
    try:
        upstream = provider.open_summary_stream(transcription.transcript_text)
    except Exception as exc:
        logger.exception("Summary connection failed id=%s", transcription.id)
        _set_status(transcription, "ERROR", error=str(exc))
        raise ExternalServiceError("Error al conectar con el servicio de resumen")

    return relay_summary(upstream, transcription.id, actor.id)


def relay_summary(upstream, transcription_id: int, actor_id: int):
    """Yield upstream chunks to the client while buffering them.

    A client disconnect (GeneratorExit) drains the upstream iterator and
    still persists the summary.
    """
    buffer: list[str] = []
    try:
        for chunk in upstream:
            buffer.append(chunk)
            yield _event({"content": chunk})
    except GeneratorExit:
        logger.info("Client left summary stream id=%s; draining upstream", transcription_id)
        _drain_and_save(upstream, buffer, transcription_id, actor_id)
        raise
    except Exception as exc:
        logger.exception("Summary stream failed id=%s", transcription_id)
        _mark_error(transcription_id, str(exc))
        yield _event({"error": "Error durante la generación del resumen"})
        return

    _save_summary(transcription_id, "".join(buffer), actor_id)
    yield STREAM_DONE
