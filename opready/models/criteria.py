"""
Operational Readiness Tracker
Criteria domain models.

Models:
    - CriteriaTemplate: reusable criterion definition (global or org-scoped).
    - Criterion: a trackable acceptance item belonging to one project.
"""

import uuid
from datetime import datetime, timezone

from opready.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

CRITERION_STATUSES = ("not_started", "in_progress", "done", "delayed", "caveat")

STATUS_LABELS = {
    "not_started": "Not started",
    "in_progress": "In progress",
    "done": "Done",
    "delayed": "Delayed",
    "caveat": "Caveat",
}

DEFAULT_SEVERITY = "med"
UNCATEGORISED = "Uncategorised"


class CriteriaTemplate(db.Model):
    """Reusable criterion definition.

    ``org_id`` null means the template is global and visible to every
    organisation. Templates are read-only from the allocator's side; only
    ``is_active`` rows are eligible for allocation.
    """

    __tablename__ = "criteria_templates"
    __table_args__ = (
        db.Index("ix_criteria_templates_catalog", "is_active", "category", "title"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    severity = db.Column(db.String(20), nullable=False, default=DEFAULT_SEVERITY)
    default_status = db.Column(db.String(20), nullable=False, default="not_started")
    evidence_required = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    default_due_offset_days = db.Column(
        db.Integer, nullable=True,
        comment="Days before the project anchor date; null = no inferred due date",
    )
    meta = db.Column(db.JSON, nullable=True, comment="prompts list and other open keys")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def prompts(self) -> list:
        """Prompt strings from ``meta``; tolerant of malformed payloads."""
        raw = (self.meta or {}).get("prompts") if isinstance(self.meta, dict) else None
        if not isinstance(raw, list):
            return []
        return [str(p) for p in raw if p]

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "default_status": self.default_status,
            "evidence_required": self.evidence_required,
            "version": self.version,
            "is_active": self.is_active,
            "default_due_offset_days": self.default_due_offset_days,
            "meta": self.meta or {},
            "prompts": self.prompts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CriteriaTemplate {self.id}: {self.title}>"


class Criterion(db.Model):
    """A single acceptance item within a project.

    ``template_id`` is set once at creation (null for manual criteria) and is
    the only key used by allocation diffing. Uniqueness of non-null template
    ids within a project is enforced by the allocator, not by the database.
    """

    __tablename__ = "criteria"
    __table_args__ = (
        db.Index("ix_criteria_project_template", "project_id", "template_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    org_id = db.Column(db.String(36), nullable=True)
    template_id = db.Column(db.String(36), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    severity = db.Column(db.String(20), nullable=False, default=DEFAULT_SEVERITY)
    status = db.Column(db.String(20), nullable=False, default="not_started")
    evidence_required = db.Column(db.Boolean, nullable=False, default=True)
    owner_email = db.Column(db.String(200), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    caveat_reason = db.Column(db.Text, nullable=True)
    meta = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    evidence = db.relationship(
        "Evidence",
        backref="criterion",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "org_id": self.org_id,
            "template_id": self.template_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "status": self.status,
            "status_label": STATUS_LABELS.get(self.status, self.status),
            "evidence_required": self.evidence_required,
            "owner_email": self.owner_email,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "caveat_reason": self.caveat_reason,
            "meta": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Criterion {self.id}: {self.status} {self.title!r}>"
