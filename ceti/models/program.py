"""
CETI — Program domain models.

Models:
    - Program: institutional goal with a date window and status
    - ProgramMember: user-assignment granting a collaborator visibility of a program
"""

from ceti.models import db, utcnow

PROGRAM_STATUSES = {"ACTIVE", "CLOSED", "CANCELLED"}


# ── Program ──────────────────────────────────────────────────────────────────


class Program(db.Model):
    """
    Top-level planning entity. Owns tasks and user-assignments.

    ``end_date`` is always strictly after ``start_date`` (enforced in the
    service layer on create and update).
    """

    __tablename__ = "programs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    general_objective = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="ACTIVE",
        comment="ACTIVE | CLOSED | CANCELLED",
    )

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    tasks = db.relationship(
        "Task", backref="program", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Task.created_at",
    )
    members = db.relationship(
        "ProgramMember", backref="program", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def member_ids(self) -> set[int]:
        return {m.user_id for m in self.members}

    def to_dict(self, include_counts=False):
        """Serialize program to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "general_objective": self.general_objective,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            result["task_count"] = self.tasks.count()
            result["member_count"] = self.members.count()
        return result

    def __repr__(self):
        return f"<Program {self.id}: {self.name}>"


# ── ProgramMember ────────────────────────────────────────────────────────────


class ProgramMember(db.Model):
    """User-assignment on a program. One row per (program, user)."""

    __tablename__ = "program_members"
    __table_args__ = (
        db.UniqueConstraint("program_id", "user_id", name="uq_program_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(
        db.Integer,
        db.ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "program_id": self.program_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "user_email": self.user.email if self.user else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProgramMember program={self.program_id} user={self.user_id}>"
