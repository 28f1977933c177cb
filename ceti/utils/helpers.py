"""Shared request/parsing helpers used by services and blueprints.

get_or_404:        fetch by PK or raise NotFoundError
parse_date:        ISO / DD.MM.YYYY → date, None on bad input
parse_datetime:    ISO date or datetime → naive UTC datetime, None on bad input
snake_case_keys:   accept camelCase payloads (``assigneeIds`` → ``assignee_ids``)
json_body:         request JSON as a dict with snake_case keys
"""
import logging
import re
from datetime import date, datetime, timezone

from flask import request

from ceti.core.exceptions import NotFoundError, ValidationError
from ceti.models import db

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Spanish labels that take the feminine "encontrada"
_FEMININE_LABELS = {"Tarea", "Transcripción"}


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if obj is None:
        suffix = "no encontrada" if label in _FEMININE_LABELS else "no encontrado"
        raise NotFoundError(resource=label, resource_id=pk, message=f"{label} {suffix}")
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO date/datetime string to a naive UTC datetime.

    Aware values are converted to UTC; a bare date becomes midnight.
    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def require_fields(data: dict, *fields: str) -> None:
    """Raise ValidationError listing every missing or blank field."""
    missing = [
        f for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data.get(f).strip())
    ]
    if missing:
        raise ValidationError(
            "Faltan datos requeridos",
            details={f: "required" for f in missing},
        )


def _ensure_text(value, field: str) -> None:
    if value is not None and not isinstance(value, str):
        raise ValidationError(
            f"El campo {field} debe ser texto",
            details={field: "must_be_string"},
        )


def text_field(data: dict, field: str) -> str:
    """Stripped, non-blank string value of a required text field."""
    value = data.get(field)
    _ensure_text(value, field)
    if not (value or "").strip():
        raise ValidationError("Faltan datos requeridos", details={field: "required"})
    return value.strip()


def optional_text(data: dict, field: str) -> str:
    """String value of an optional text field ('' when absent or null)."""
    value = data.get(field)
    _ensure_text(value, field)
    return value or ""


def snake_case_keys(data: dict) -> dict:
    """Return a shallow copy with camelCase keys rewritten to snake_case."""
    return {_CAMEL_RE.sub("_", k).lower(): v for k, v in data.items()}


def json_body() -> dict:
    """Request JSON object with snake_case keys (empty dict when absent)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    return snake_case_keys(data)


def int_arg(name: str, default: int | None = None) -> int | None:
    """Query-string integer, falling back to ``default`` on bad input."""
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
