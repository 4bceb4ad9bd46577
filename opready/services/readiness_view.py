"""
Project readiness view: optimistic view state with snapshot rollback.

The view holds the criteria list, loaded evidence trails and the allocation
selection of one project. Mutations are applied to the local state first,
then sent to the services. On failure the affected entity is restored from
the snapshot taken before the change, so derived fields such as
``status_label`` never go stale.

Every operation returns an ``OperationResult``; service errors never escape.
``ReconciliationFailure`` does escape: it means a rollback was requested
without a snapshot, which is a bug.
"""

import copy
import logging

from opready.core.exceptions import (
    NotFoundError,
    PersistenceError,
    ReconciliationFailure,
    StorageError,
    ValidationError,
)
from opready.models.criteria import STATUS_LABELS
from opready.services.criterion_lifecycle import normalize_field_patch, validate_status
from opready.services.template_allocator import AllocationSelection

logger = logging.getLogger(__name__)

_OPERATION_ERRORS = (ValidationError, NotFoundError, PersistenceError, StorageError)


class OperationResult:
    """Outcome of one view operation: a value or an error, never both."""

    __slots__ = ("ok", "value", "error", "reverted")

    def __init__(self, ok: bool, value=None, error: Exception | None = None, reverted: bool = False):
        self.ok = ok
        self.value = value
        self.error = error
        self.reverted = reverted

    @classmethod
    def success(cls, value=None):
        return cls(True, value=value)

    @classmethod
    def failure(cls, error: Exception, reverted: bool = False):
        return cls(False, error=error, reverted=reverted)

    @property
    def error_kind(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "value": self.value,
            "error": self.message,
            "error_kind": self.error_kind,
            "reverted": self.reverted,
        }

    def __repr__(self):
        if self.ok:
            return "<OperationResult ok>"
        return f"<OperationResult {self.error_kind}: {self.message}>"


class ProjectReadinessView:
    """In-memory view of one project's readiness, kept in step with the store."""

    def __init__(self, project_id: str, store, lifecycle, evidence, allocator):
        self.project_id = project_id
        self.store = store
        self.lifecycle = lifecycle
        self.evidence_manager = evidence
        self.allocator = allocator

        self.criteria: dict[str, dict] = {}
        self.trails: dict[str, list[dict]] = {}
        self.selection = AllocationSelection()
        self.pending_batch: list[dict] = []
        self._snapshots: dict[tuple, object] = {}

    # ── Loading ──────────────────────────────────────────────────────────

    def load(self) -> OperationResult:
        try:
            rows = self.store.get_criteria(self.project_id)
            existing = self.allocator.existing_template_ids(self.project_id)
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        self.criteria = {c.id: c.to_dict() for c in rows}
        self.trails = {cid: trail for cid, trail in self.trails.items() if cid in self.criteria}
        self.selection.reconcile(existing)
        return OperationResult.success(list(self.criteria.values()))

    def criterion(self, criterion_id: str) -> dict:
        return self.criteria[criterion_id]

    def open_trail(self, criterion_id: str) -> OperationResult:
        try:
            trail = self.evidence_manager.list_evidence(criterion_id)
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        self.trails[criterion_id] = trail
        return OperationResult.success(trail)

    # ── Snapshots ────────────────────────────────────────────────────────

    def _capture(self, key: tuple, state) -> None:
        self._snapshots[key] = copy.deepcopy(state)

    def _rollback(self, key: tuple):
        if key not in self._snapshots:
            raise ReconciliationFailure(f"No snapshot captured for {key!r}")
        state = self._snapshots.pop(key)
        kind, entity_id = key
        if kind == "criterion":
            self.criteria[entity_id] = state
        elif kind == "trail":
            if state is None:
                self.trails.pop(entity_id, None)
            else:
                self.trails[entity_id] = state
        return state

    def _commit(self, key: tuple) -> None:
        self._snapshots.pop(key, None)

    def _prepend(self, criterion_id: str, *entries) -> None:
        """Add fresh entries to a loaded trail, newest first."""
        if criterion_id not in self.trails:
            return
        fresh = [e for e in entries if e]
        self.trails[criterion_id] = list(reversed(fresh)) + self.trails[criterion_id]

    # ── Criterion mutations ──────────────────────────────────────────────

    def set_status(self, criterion_id: str, new_status: str, actor: str = "system") -> OperationResult:
        try:
            validate_status(new_status)
        except ValidationError as exc:
            return OperationResult.failure(exc)
        if criterion_id not in self.criteria:
            return OperationResult.failure(NotFoundError("Criterion", criterion_id))

        key = ("criterion", criterion_id)
        self._capture(key, self.criteria[criterion_id])
        local = self.criteria[criterion_id]
        local["status"] = new_status
        local["status_label"] = STATUS_LABELS[new_status]

        try:
            result = self.lifecycle.set_status(criterion_id, new_status, actor=actor)
        except _OPERATION_ERRORS as exc:
            self._rollback(key)
            logger.info("Status change on %s reverted: %s", criterion_id, exc)
            return OperationResult.failure(exc, reverted=True)

        self._commit(key)
        self.criteria[criterion_id] = result["criterion"]
        self._prepend(criterion_id, result["audit_note"])
        return OperationResult.success(result)

    def update_details(self, criterion_id: str, patch: dict, actor: str = "system") -> OperationResult:
        try:
            cleaned = normalize_field_patch(patch)
        except ValidationError as exc:
            return OperationResult.failure(exc)
        if criterion_id not in self.criteria:
            return OperationResult.failure(NotFoundError("Criterion", criterion_id))

        key = ("criterion", criterion_id)
        self._capture(key, self.criteria[criterion_id])
        local = self.criteria[criterion_id]
        for field, value in cleaned.items():
            local[field] = value.isoformat() if hasattr(value, "isoformat") else value

        try:
            result = self.lifecycle.update_details(criterion_id, patch, actor=actor)
        except _OPERATION_ERRORS as exc:
            self._rollback(key)
            return OperationResult.failure(exc, reverted=True)

        self._commit(key)
        self.criteria[criterion_id] = result["criterion"]
        self._prepend(criterion_id, *result["audit_notes"])
        return OperationResult.success(result)

    # ── Evidence ─────────────────────────────────────────────────────────

    def add_evidence(self, criterion_id: str, kind: str, narrative: str,
                     payload=None, actor: str = "system") -> OperationResult:
        try:
            result = self.evidence_manager.add_evidence(
                criterion_id, kind, narrative, payload, actor=actor,
            )
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        self._prepend(criterion_id, result["evidence"], result["cover_note"])
        return OperationResult.success(result)

    def delete_evidence(self, criterion_id: str, evidence_id: str, actor: str = "system") -> OperationResult:
        trail = self.trails.get(criterion_id)
        entry = next((e for e in trail or () if e["id"] == evidence_id), None)
        if entry is not None and entry["kind"] == "note":
            return OperationResult.failure(ValidationError("Notes cannot be deleted"))

        key = ("trail", criterion_id)
        self._capture(key, trail)
        if trail is not None:
            self.trails[criterion_id] = [e for e in trail if e["id"] != evidence_id]

        try:
            result = self.evidence_manager.delete_evidence(evidence_id, actor=actor)
        except _OPERATION_ERRORS as exc:
            self._rollback(key)
            return OperationResult.failure(exc, reverted=True)

        self._commit(key)
        self._prepend(criterion_id, result["removal_note"])
        return OperationResult.success(result)

    # ── Allocation ───────────────────────────────────────────────────────

    def preview_allocation(self, anchor: str | None = None) -> OperationResult:
        """Build the review batch from the current add selection."""
        try:
            batch = self.allocator.build_add_batch(
                self.project_id, sorted(self.selection.to_add), anchor=anchor,
            )
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        self.pending_batch = batch
        return OperationResult.success(batch)

    def confirm_allocation(self, batch: list[dict] | None = None) -> OperationResult:
        """Insert the reviewed batch; selection is kept as-is on failure."""
        batch = self.pending_batch if batch is None else batch
        try:
            existing = self.allocator.commit_add(self.project_id, batch)
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        return self._after_commit(existing)

    def remove_selected(self) -> OperationResult:
        try:
            existing = self.allocator.commit_remove(self.project_id, sorted(self.selection.to_remove))
        except _OPERATION_ERRORS as exc:
            return OperationResult.failure(exc)
        return self._after_commit(existing)

    def _after_commit(self, existing) -> OperationResult:
        self.pending_batch = []
        self.selection.clear()
        self.selection.reconcile(existing)
        loaded = self.load()
        if not loaded.ok:
            return loaded
        return OperationResult.success(sorted(existing))
