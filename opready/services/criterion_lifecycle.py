"""
Criterion Lifecycle Service

Manages criterion status and field edits with:
  - Status validation (closed set, any-to-any transitions)
  - Single-column status writes
  - Audit notes for every successful change
  - Manual criterion create / delete

5 statuses:
  not_started, in_progress, done, delayed, caveat

There is no transition graph: every status may move to every other status,
including itself. ``caveat_reason`` is independent of status and is kept
when the status moves away from ``caveat``.

Usage:
    from opready.services.criterion_lifecycle import CriterionLifecycle

    lifecycle = CriterionLifecycle(CriteriaStore(db.session))
    result = lifecycle.set_status(criterion_id, "done", actor="ops@example.com")
"""

import logging

from opready.core.exceptions import PersistenceError, StorageError, ValidationError
from opready.models.criteria import CRITERION_STATUSES, DEFAULT_SEVERITY, STATUS_LABELS
from opready.services.audit_notes import (
    FIELD_MESSAGES,
    AuditNoteWriter,
    status_changed_message,
)
from opready.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("owner_email", "due_date", "caveat_reason")
MAX_TITLE_LENGTH = 300


def validate_status(status) -> str:
    """Return *status* if it is one of the five recognised values."""
    if not isinstance(status, str) or status not in CRITERION_STATUSES:
        raise ValidationError(
            f"Unrecognised status: {status!r}",
            details={"status": f"must be one of {', '.join(CRITERION_STATUSES)}"},
        )
    return status


def _clean_text(value, field: str, max_length: int | None = None):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid type"})
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(
            f"{field} exceeds {max_length} characters", details={field: "too long"},
        )
    return value or None


def _clean_date(value, field: str):
    try:
        return parse_date_input(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid date"}) from exc


def normalize_field_patch(patch) -> dict:
    """Validate an edit payload and convert it to column values."""
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields to update")
    unknown = sorted(set(patch) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Fields cannot be edited: {', '.join(unknown)}",
            details={k: "not editable" for k in unknown},
        )
    cleaned = {}
    if "owner_email" in patch:
        cleaned["owner_email"] = _clean_text(patch["owner_email"], "owner_email", 200)
    if "due_date" in patch:
        cleaned["due_date"] = _clean_date(patch["due_date"], "due_date")
    if "caveat_reason" in patch:
        cleaned["caveat_reason"] = _clean_text(patch["caveat_reason"], "caveat_reason")
    return cleaned


class CriterionLifecycle:
    """Status and field edits on one criterion at a time."""

    def __init__(self, store, audit=None, object_store=None):
        self.store = store
        self.audit = audit or AuditNoteWriter(store)
        self.object_store = object_store

    def set_status(self, criterion_id: str, new_status: str, actor: str = "system") -> dict:
        """Move a criterion to *new_status* and record a system note.

        The status write and the note are two separate store calls. If the
        note fails the status change stands and ``audit_recorded`` is False.
        """
        validate_status(new_status)
        criterion = self.store.get_criterion(criterion_id)
        previous = criterion.status
        written = criterion.to_dict()

        self.store.update_criterion_status(criterion_id, new_status)
        written.update(status=new_status, status_label=STATUS_LABELS[new_status])
        logger.info(
            "Criterion %s status %s -> %s by %s",
            criterion_id, previous, new_status, actor,
            extra={"criterion_id": criterion_id, "event_type": "status_changed"},
        )

        note = self.audit.try_append(
            criterion_id,
            status_changed_message(new_status),
            actor=actor,
            event="status_changed",
            extra={"from": previous, "to": new_status},
        )
        return {
            "criterion": self._read_back(criterion_id, written),
            "previous_status": previous,
            "new_status": new_status,
            "audit_note": note.to_dict() if note is not None else None,
            "audit_recorded": note is not None,
        }

    def update_details(self, criterion_id: str, patch: dict, actor: str = "system") -> dict:
        """Edit owner, due date or caveat reason; one note per changed field."""
        cleaned = normalize_field_patch(patch)
        criterion = self.store.get_criterion(criterion_id)
        written = criterion.to_dict()

        changes = {}
        for field, new in cleaned.items():
            old = getattr(criterion, field)
            if old != new:
                changes[field] = (old, new)

        notes = []
        if changes:
            self.store.update_criterion_field(
                criterion_id, {field: new for field, (_old, new) in changes.items()}
            )
            written.update({
                field: new.isoformat() if hasattr(new, "isoformat") else new
                for field, (_old, new) in changes.items()
            })
            logger.info(
                "Criterion %s fields updated: %s",
                criterion_id, ", ".join(changes),
                extra={"criterion_id": criterion_id, "event_type": "fields_updated"},
            )
            for field, (old, new) in changes.items():
                note = self.audit.try_append(
                    criterion_id,
                    FIELD_MESSAGES[field](old, new),
                    actor=actor,
                    event=f"{field}_changed",
                )
                if note is not None:
                    notes.append(note.to_dict())

        return {
            "criterion": self._read_back(criterion_id, written) if changes else written,
            "changed_fields": sorted(changes),
            "audit_notes": notes,
            "audit_recorded": len(notes) == len(changes),
        }

    def _read_back(self, criterion_id: str, written: dict) -> dict:
        """Fresh row after a committed write, or *written* when the read fails."""
        try:
            return self.store.get_criterion(criterion_id).to_dict()
        except PersistenceError:
            logger.warning(
                "Criterion %s could not be re-read after a committed write", criterion_id,
                exc_info=True, extra={"criterion_id": criterion_id},
            )
            return written

    def create_criterion(self, project_id: str, data: dict, actor: str = "system") -> dict:
        """Create a manual (template-less) criterion in a project."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be an object")
        title = _clean_text(data.get("title"), "title", MAX_TITLE_LENGTH)
        if not title:
            raise ValidationError("title is required", details={"title": "required"})
        status = validate_status(data.get("status") or "not_started")
        meta = data.get("meta")
        if meta is not None and not isinstance(meta, dict):
            raise ValidationError("meta must be an object", details={"meta": "invalid type"})

        project = self.store.get_project(project_id)
        criterion = self.store.insert_criterion({
            "project_id": project.id,
            "org_id": project.org_id,
            "template_id": None,
            "title": title,
            "description": _clean_text(data.get("description"), "description"),
            "category": _clean_text(data.get("category"), "category", 100),
            "severity": _clean_text(data.get("severity"), "severity", 20) or DEFAULT_SEVERITY,
            "status": status,
            "evidence_required": bool(data.get("evidence_required", True)),
            "owner_email": _clean_text(data.get("owner_email"), "owner_email", 200),
            "due_date": _clean_date(data.get("due_date"), "due_date"),
            "caveat_reason": _clean_text(data.get("caveat_reason"), "caveat_reason"),
            "meta": meta,
        })
        logger.info(
            "Criterion %s created in project %s by %s", criterion.id, project_id, actor,
            extra={"project_id": project_id, "criterion_id": criterion.id},
        )
        return criterion.to_dict()

    def delete_criterion(self, criterion_id: str, actor: str = "system") -> dict:
        """Delete a criterion with its whole trail; stored files are released best-effort."""
        self.store.get_criterion(criterion_id)
        paths = self.store.file_paths_for([criterion_id])
        self.store.delete_criterion(criterion_id)
        logger.info(
            "Criterion %s deleted by %s", criterion_id, actor,
            extra={"criterion_id": criterion_id, "event_type": "criterion_deleted"},
        )
        released = release_blobs(self.object_store, paths)
        return {"deleted": criterion_id, "files_released": released, "files_total": len(paths)}

    def delete_project(self, project_id: str, actor: str = "system") -> dict:
        """Delete a project and every criterion trail under it; files are released best-effort."""
        self.store.get_project(project_id)
        criteria = self.store.get_criteria(project_id)
        paths = self.store.file_paths_for([c.id for c in criteria])
        self.store.delete_project(project_id)
        logger.info(
            "Project %s deleted by %s (%d criteria)", project_id, actor, len(criteria),
            extra={"project_id": project_id, "event_type": "project_deleted"},
        )
        released = release_blobs(self.object_store, paths)
        return {"deleted": project_id, "files_released": released, "files_total": len(paths)}


def release_blobs(object_store, paths) -> int:
    """Remove stored files, logging failures. Returns the count released."""
    if object_store is None or not paths:
        return 0
    released = 0
    for path in paths:
        try:
            object_store.remove(path)
            released += 1
        except StorageError:
            logger.warning("Stored file %s could not be released", path, exc_info=True)
    return released
