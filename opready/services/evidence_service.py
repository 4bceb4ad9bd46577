"""
Evidence Manager: add, list and remove trail entries on a criterion.

Add rules:
  - ``narrative`` is mandatory for every kind (whitespace-only is rejected).
  - ``link`` needs a non-empty URL; ``file`` needs a selected upload.
  - Files are uploaded first, under ``<criterion_id>/<ms-timestamp>-<name>``.
    An upload failure aborts the operation before any row is written.
  - Link and file entries are followed by a system cover note.

Remove rules:
  - Note entries are permanent.
  - Releasing a stored file is best-effort; the row is deleted regardless.
  - A system removal note follows the delete.
"""

import logging
import time
from dataclasses import dataclass

from werkzeug.utils import secure_filename

from opready.core.exceptions import PersistenceError, StorageError, ValidationError
from opready.models.evidence import EVIDENCE_KINDS
from opready.services.audit_notes import (
    AuditNoteWriter,
    file_removed_message,
    file_uploaded_message,
    link_added_message,
    link_removed_message,
)

logger = logging.getLogger(__name__)


@dataclass
class EvidenceFile:
    """An uploaded file waiting to be stored."""

    filename: str
    data: bytes
    mime_type: str | None = None

    @classmethod
    def from_storage(cls, storage):
        """Build from a werkzeug ``FileStorage`` (multipart upload)."""
        return cls(
            filename=storage.filename or "",
            data=storage.read(),
            mime_type=storage.mimetype or None,
        )

    @property
    def size(self) -> int:
        return len(self.data)


def build_file_path(criterion_id: str, filename: str, now_ms: int | None = None) -> str:
    """Object-store path for an upload: ``<criterion_id>/<ms>-<safe name>``."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe = secure_filename(filename) or "upload"
    return f"{criterion_id}/{stamp}-{safe}"


class EvidenceManager:
    """Evidence operations for one object store and one relational store."""

    def __init__(self, store, object_store, audit=None, clock=None):
        self.store = store
        self.object_store = object_store
        self.audit = audit or AuditNoteWriter(store)
        self._clock = clock or (lambda: int(time.time() * 1000))

    def list_evidence(self, criterion_id: str) -> list[dict]:
        """Trail of a criterion, newest first."""
        self.store.get_criterion(criterion_id)
        return [e.to_dict() for e in self.store.list_evidence(criterion_id)]

    def _validate(self, kind, narrative, payload):
        if kind not in EVIDENCE_KINDS:
            raise ValidationError(
                f"Unrecognised evidence kind: {kind!r}",
                details={"kind": f"must be one of {', '.join(EVIDENCE_KINDS)}"},
            )
        if not isinstance(narrative, str) or not narrative.strip():
            raise ValidationError("narrative is required", details={"narrative": "required"})
        if kind == "link":
            if not isinstance(payload, str) or not payload.strip():
                raise ValidationError("url is required for link evidence", details={"url": "required"})
            return payload.strip()
        if kind == "file":
            if not isinstance(payload, EvidenceFile) or not payload.filename:
                raise ValidationError("file is required for file evidence", details={"file": "required"})
        return payload

    def add_evidence(self, criterion_id: str, kind: str, narrative: str,
                     payload=None, actor: str = "system") -> dict:
        """Append a note, link or file entry.

        Args:
            payload: URL string for ``link``; EvidenceFile for ``file``;
                ignored for ``note``.

        Returns:
            dict with ``evidence`` and ``cover_note`` (None for notes or when
            the cover note could not be written).
        """
        payload = self._validate(kind, narrative, payload)
        narrative = narrative.strip()
        self.store.get_criterion(criterion_id)

        row = {
            "criterion_id": criterion_id,
            "kind": kind,
            "note": narrative,
            "created_by": actor,
        }
        if kind == "link":
            row["url"] = payload
        elif kind == "file":
            path = build_file_path(criterion_id, payload.filename, self._clock())
            url = self.object_store.put(path, payload.data, payload.mime_type)
            row.update({
                "url": url,
                "file_path": path,
                "mime_type": payload.mime_type,
                "size_bytes": payload.size,
                "meta": {"file_name": payload.filename},
            })

        try:
            evidence = self.store.insert_evidence(row)
        except PersistenceError:
            if kind == "file":
                logger.warning(
                    "Evidence row failed after upload; stored file %s is orphaned",
                    row["file_path"], extra={"criterion_id": criterion_id},
                )
            raise

        logger.info(
            "Evidence %s (%s) added to criterion %s by %s",
            evidence.id, kind, criterion_id, actor,
            extra={"criterion_id": criterion_id, "evidence_id": evidence.id},
        )

        cover = None
        if kind == "link":
            cover = self.audit.try_append(
                criterion_id, link_added_message(payload), actor=actor,
                event="link_added", extra={"evidence_id": evidence.id},
            )
        elif kind == "file":
            cover = self.audit.try_append(
                criterion_id, file_uploaded_message(payload.filename), actor=actor,
                event="file_uploaded", extra={"evidence_id": evidence.id},
            )

        return {
            "evidence": evidence.to_dict(),
            "cover_note": cover.to_dict() if cover is not None else None,
            "audit_recorded": kind == "note" or cover is not None,
        }

    def delete_evidence(self, evidence_id: str, actor: str = "system") -> dict:
        """Remove a link or file entry and record a removal note."""
        evidence = self.store.get_evidence(evidence_id)
        if evidence.kind == "note":
            raise ValidationError(
                "Notes cannot be deleted", details={"kind": "note entries are permanent"},
            )

        criterion_id = evidence.criterion_id
        kind = evidence.kind
        url = evidence.url
        file_path = evidence.file_path
        file_name = (evidence.meta or {}).get("file_name") or (
            file_path.rsplit("/", 1)[-1] if file_path else ""
        )

        storage_released = None
        if kind == "file" and file_path:
            try:
                self.object_store.remove(file_path)
                storage_released = True
            except StorageError:
                storage_released = False
                logger.warning(
                    "Stored file %s could not be released; deleting entry anyway",
                    file_path, exc_info=True,
                    extra={"evidence_id": evidence_id},
                )

        self.store.delete_evidence(evidence_id)
        logger.info(
            "Evidence %s (%s) removed from criterion %s by %s",
            evidence_id, kind, criterion_id, actor,
            extra={"criterion_id": criterion_id, "evidence_id": evidence_id},
        )

        if kind == "file":
            text, event = file_removed_message(file_name), "file_removed"
        else:
            text, event = link_removed_message(url or ""), "link_removed"
        note = self.audit.try_append(
            criterion_id, text, actor=actor, event=event, extra={"evidence_id": evidence_id},
        )
        return {
            "deleted": evidence_id,
            "criterion_id": criterion_id,
            "storage_released": storage_released,
            "removal_note": note.to_dict() if note is not None else None,
            "audit_recorded": note is not None,
        }

    def read_file(self, evidence_id: str):
        """Return ``(evidence, bytes)`` for a stored file entry."""
        evidence = self.store.get_evidence(evidence_id)
        if evidence.kind != "file" or not evidence.file_path:
            raise ValidationError("Evidence entry has no stored file")
        return evidence, self.object_store.get(evidence.file_path)
