"""
CETI — Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every mutation.

The writer (``record_audit``) runs after the primary mutation has been
committed and commits on its own. A failure there is logged and rolled
back; it never reaches the request that triggered it.
"""

import json
import logging

from sqlalchemy import event

from ceti.models import db, utcnow

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "program", "program_member", "task", "user",
    "comment", "file", "transcription",
}

AUDIT_ACTIONS = {
    "create",
    "update",
    "delete",
    "move",
    "assign",
    "unassign",
    "password_change",
    "transcribe",
    "summarize",
}


class AuditLog(db.Model):
    """
    One row per mutation.

    ``actor_id`` is a plain integer (no FK) so entries outlive the user who
    made them. ``old_values_json`` / ``new_values_json`` carry snapshots.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_id"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(
        db.String(40), nullable=False,
        comment="create | update | delete | move | assign | …",
    )
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="program | task | user | comment | file | transcription | …",
    )
    entity_id = db.Column(db.String(36), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    old_values_json = db.Column(db.Text, nullable=True)
    new_values_json = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _load(raw):
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None

    @property
    def old_values(self):
        return self._load(self.old_values_json)

    @property
    def new_values(self):
        return self._load(self.new_values_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


class AuditLogImmutableError(RuntimeError):
    """Raised when code tries to update or delete an audit row."""


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")


# ── Convenience writer ───────────────────────────────────────────────────────


def _request_meta() -> dict:
    """Client IP and user agent from the active request, if any."""
    from flask import has_request_context, request

    if not has_request_context():
        return {}
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() if forwarded else request.remote_addr
    return {
        "ip_address": ip,
        "user_agent": (request.headers.get("User-Agent") or "")[:500],
    }


def record_audit(
    action: str,
    entity_type: str,
    entity_id,
    *,
    actor_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    request_meta: dict | None = None,
) -> AuditLog | None:
    """
    Append a single audit row and commit it.

    Call only after the primary mutation is committed. Any failure is
    rolled back and logged; the function then returns None instead of
    raising.
    """
    meta = request_meta if request_meta is not None else _request_meta()
    try:
        log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=actor_id,
            old_values_json=json.dumps(old_values, default=str) if old_values is not None else None,
            new_values_json=json.dumps(new_values, default=str) if new_values is not None else None,
            ip_address=meta.get("ip_address"),
            user_agent=meta.get("user_agent"),
        )
        db.session.add(log)
        db.session.commit()
        return log
    except Exception:
        db.session.rollback()
        logger.exception(
            "Audit write failed action=%s entity=%s/%s actor=%s",
            action, entity_type, entity_id, actor_id,
        )
        return None
