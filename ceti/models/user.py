"""
CETI — Identity models.

Models:
    - User: institutional account (ADMIN or COLLABORATOR)
    - AuthSession: refresh-token session backing login / refresh / logout
"""

from ceti.models import db, utcnow

ROLE_ADMIN = "ADMIN"
ROLE_COLLABORATOR = "COLLABORATOR"
USER_ROLES = {ROLE_ADMIN, ROLE_COLLABORATOR}


# ── User ─────────────────────────────────────────────────────────────────────


class User(db.Model):
    """An account that can sign in. Email is stored lower-cased and unique."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.String(20),
        nullable=False,
        default=ROLE_COLLABORATOR,
        comment="ADMIN | COLLABORATOR",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    memberships = db.relationship(
        "ProgramMember", backref="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    task_assignments = db.relationship(
        "TaskAssignee", backref="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "Comment", backref="author", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    uploaded_files = db.relationship(
        "TaskFile", backref="uploader", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    transcriptions = db.relationship(
        "Transcription", backref="owner", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    sessions = db.relationship(
        "AuthSession", backref="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self, include_counts=False):
        """Serialize user. Never includes the password hash."""
        result = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            result["assigned_task_count"] = self.task_assignments.count()
            result["program_count"] = self.memberships.count()
        return result

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"


# ── AuthSession ──────────────────────────────────────────────────────────────


class AuthSession(db.Model):
    """Refresh-token session. Only the SHA-256 hash of the token is stored."""

    __tablename__ = "auth_sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    last_used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < utcnow()

    def __repr__(self):
        return f"<AuthSession {self.id} user={self.user_id} active={self.is_active}>"
