"""
Audit trail writer for system-authored note entries.

Every status change, field edit and link/file add or removal leaves a
note-kind evidence row on the criterion. Notes are only ever appended;
nothing in this module updates or deletes an entry.
"""

import logging

from opready.core.exceptions import PersistenceError
from opready.models.criteria import STATUS_LABELS

logger = logging.getLogger(__name__)

EMPTY_VALUE = "(none)"


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def _display(value) -> str:
    if value is None or value == "":
        return EMPTY_VALUE
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


# ── Message builders ─────────────────────────────────────────────────────────

def status_changed_message(new_status: str) -> str:
    return f"Status changed to: {status_label(new_status)}"


def owner_changed_message(old, new) -> str:
    return f"Owner changed from {_display(old)} to {_display(new)}"


def due_date_changed_message(old, new) -> str:
    return f"Due date changed from {_display(old)} to {_display(new)}"


def caveat_reason_message(new) -> str:
    if new is None or new == "":
        return "Caveat reason cleared"
    return f"Caveat reason updated: {new}"


def link_added_message(url: str) -> str:
    return f"Link added: {url}"


def file_uploaded_message(file_name: str) -> str:
    return f"File uploaded: {file_name}"


def link_removed_message(url: str) -> str:
    return f"Link removed: {url}"


def file_removed_message(file_name: str) -> str:
    return f"File removed: {file_name}"


FIELD_MESSAGES = {
    "owner_email": owner_changed_message,
    "due_date": due_date_changed_message,
    "caveat_reason": lambda old, new: caveat_reason_message(new),
}


class AuditNoteWriter:
    """Append system notes through a CriteriaStore."""

    def __init__(self, store):
        self.store = store

    def append(self, criterion_id: str, text: str, *, actor: str = "system",
               event: str, extra: dict | None = None):
        """Append one note entry and return the stored row."""
        meta = {"system": True, "event": event}
        if extra:
            meta.update(extra)
        return self.store.insert_evidence({
            "criterion_id": criterion_id,
            "kind": "note",
            "note": text,
            "created_by": actor,
            "meta": meta,
        })

    def try_append(self, criterion_id: str, text: str, *, actor: str = "system",
                   event: str, extra: dict | None = None):
        """Append a note after a primary write already succeeded.

        A failure here must not undo the primary change, so the error is
        logged and ``None`` is returned instead of raising.
        """
        try:
            return self.append(criterion_id, text, actor=actor, event=event, extra=extra)
        except PersistenceError:
            logger.warning(
                "Audit note not recorded for criterion %s (%s): %s",
                criterion_id, event, text,
                exc_info=True,
                extra={"criterion_id": criterion_id},
            )
            return None
