"""
CETI — Task domain models.

Models:
    - Task: unit of work inside a program (kanban TODO → IN_PROGRESS → DONE)
    - TaskAssignee: Task × User assignment, unique per pair
    - Comment: free-text note on a task, immutable except deletion
    - TaskFile: uploaded deliverable attached to a task
"""

from ceti.models import db, utcnow

TASK_STATUSES = ("TODO", "IN_PROGRESS", "DONE")
ACTIVE_TASK_STATUSES = ("TODO", "IN_PROGRESS")


# ── Task ─────────────────────────────────────────────────────────────────────


class Task(db.Model):
    """
    A task within a program.

    ``progress`` (0–100) and ``status`` are independent: neither is derived
    from the other. ``due_date`` is stored as naive UTC.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("idx_task_program_status", "program_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    program_id = db.Column(
        db.Integer,
        db.ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    creator_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    due_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="TODO",
        comment="TODO | IN_PROGRESS | DONE",
    )
    progress = db.Column(db.Integer, nullable=False, default=0)
    expected_deliverables = db.Column(db.Text, default="")
    reference_links = db.Column(db.JSON, default=list)
    completed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    creator = db.relationship(
        "User", foreign_keys=[creator_id],
        backref=db.backref("created_tasks", lazy="dynamic"),
    )
    assignees = db.relationship(
        "TaskAssignee", backref="task", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "Comment", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Comment.created_at",
    )
    files = db.relationship(
        "TaskFile", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskFile.created_at",
    )

    def assignee_ids(self) -> set[int]:
        return {a.user_id for a in self.assignees}

    def is_overdue(self, now=None) -> bool:
        """Overdue = due date set, in the past, and not DONE. Never stored."""
        if self.due_date is None or self.status == "DONE":
            return False
        return self.due_date < (now or utcnow())

    def to_dict(self, include_children=False):
        """Serialize task to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "program_id": self.program_id,
            "program_name": self.program.name if self.program else None,
            "creator_id": self.creator_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "progress": self.progress,
            "expected_deliverables": self.expected_deliverables,
            "reference_links": self.reference_links or [],
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_overdue": self.is_overdue(),
            "assignees": [a.to_dict() for a in self.assignees],
            "comment_count": self.comments.count(),
            "file_count": self.files.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["comments"] = [c.to_dict() for c in self.comments]
            result["files"] = [f.to_dict() for f in self.files]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {self.name} [{self.status}]>"


# ── TaskAssignee ─────────────────────────────────────────────────────────────


class TaskAssignee(db.Model):
    """Task × User assignment."""

    __tablename__ = "task_assignees"
    __table_args__ = (
        db.UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "name": self.user.name if self.user else None,
            "email": self.user.email if self.user else None,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
        }


# ── Comment ──────────────────────────────────────────────────────────────────


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "content": self.content,
            "task_id": self.task_id,
            "author_id": self.author_id,
            "author_name": self.author.name if self.author else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Comment {self.id} task={self.task_id}>"


# ── TaskFile ─────────────────────────────────────────────────────────────────


class TaskFile(db.Model):
    """
    Uploaded file attached to a task.

    ``url`` is the storage locator (``/uploads/tasks/<task_id>/<filename>``);
    the bytes live under ``UPLOAD_FOLDER`` at the same relative path.
    """

    __tablename__ = "task_files"

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    size = db.Column(db.Integer, nullable=False, default=0)
    url = db.Column(db.String(500), nullable=False)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def relative_path(self) -> str:
        return f"tasks/{self.task_id}/{self.filename}"

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "url": self.url,
            "task_id": self.task_id,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_by_name": self.uploader.name if self.uploader else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TaskFile {self.id}: {self.original_name}>"
