"""Project: the external collaborator entity criteria are allocated to.

Only the columns the readiness subsystem reads are modelled here: the
organisation scope and the two anchor dates used for due-date computation.
"""

import uuid
from datetime import datetime, timezone

from opready.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """A project whose operational readiness is being tracked."""

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    project_code = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="draft")
    owner_email = db.Column(db.String(200), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    go_live_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    criteria = db.relationship(
        "Criterion",
        backref="project",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def anchor_date(self, anchor: str):
        """Return the anchor date named by *anchor* (``go_live`` or ``start``)."""
        if anchor == "start":
            return self.start_date
        return self.go_live_date

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "project_code": self.project_code,
            "status": self.status,
            "owner_email": self.owner_email,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "go_live_date": self.go_live_date.isoformat() if self.go_live_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
