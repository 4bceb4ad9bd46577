"""Evidence: the append-only audit/attachment trail of a criterion."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import event

from opready.models import db

EVIDENCE_KINDS = ("note", "link", "file")


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Evidence(db.Model):
    """One trail entry: a note, a link or a stored file.

    Note entries are permanent. Link and file entries may be deleted (the
    file blob is released separately). No entry is ever edited in place.
    """

    __tablename__ = "evidence"
    __table_args__ = (
        db.Index("ix_evidence_criterion_ts", "criterion_id", "uploaded_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    criterion_id = db.Column(
        db.String(36),
        db.ForeignKey("criteria.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind = db.Column(db.String(10), nullable=False, default="note")  # note | link | file
    note = db.Column(db.Text, nullable=False, comment="narrative; the whole content for notes")
    url = db.Column(db.Text, nullable=True)
    file_path = db.Column(db.String(500), nullable=True)
    mime_type = db.Column(db.String(150), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(200), nullable=True)
    meta = db.Column(db.JSON, nullable=True)

    @property
    def is_system(self) -> bool:
        return bool(isinstance(self.meta, dict) and self.meta.get("system"))

    def to_dict(self):
        return {
            "id": self.id,
            "criterion_id": self.criterion_id,
            "kind": self.kind,
            "note": self.note,
            "url": self.url,
            "file_path": self.file_path,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "created_by": self.created_by,
            "meta": self.meta or {},
            "is_system": self.is_system,
        }

    def __repr__(self):
        return f"<Evidence {self.id}: {self.kind} on {self.criterion_id}>"


@event.listens_for(Evidence, "before_update")
def _refuse_evidence_update(mapper, connection, target):
    """Evidence rows are immutable once flushed."""
    raise ValueError(f"Evidence {target.id} is append-only and cannot be modified")
