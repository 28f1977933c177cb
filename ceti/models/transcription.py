"""
CETI — Audio transcription model.

Status flow:
    PENDING → TRANSCRIBING → COMPLETED → SUMMARIZING → COMPLETED
    any in-flight state → ERROR on provider failure (re-triggered manually)
"""

from ceti.models import db, utcnow

TRANSCRIPTION_STATUSES = {"PENDING", "TRANSCRIBING", "SUMMARIZING", "COMPLETED", "ERROR"}


class Transcription(db.Model):
    __tablename__ = "transcriptions"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    size = db.Column(db.Integer, nullable=False, default=0)
    file_url = db.Column(db.String(500), nullable=False)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="PENDING",
        comment="PENDING | TRANSCRIBING | SUMMARIZING | COMPLETED | ERROR",
    )
    transcript_text = db.Column(db.Text, nullable=True)
    summary = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    owner_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def relative_path(self) -> str:
        return f"transcriptions/{self.owner_id}/{self.filename}"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "file_url": self.file_url,
            "status": self.status,
            "transcript_text": self.transcript_text,
            "summary": self.summary,
            "error_message": self.error_message,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Transcription {self.id}: {self.title} [{self.status}]>"
