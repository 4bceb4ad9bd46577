"""
Exception hierarchy for the criterion lifecycle and evidence subsystem.

Services raise these types; blueprints register one handler per type and
get consistent HTTP status codes everywhere.

Usage:
    from opready.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Criterion", resource_id=cid)
    raise ValidationError("narrative is required", details={"narrative": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a requested row does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Criterion", "Evidence").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is rejected before any store write.

    Covers empty narratives, unrecognised statuses, note deletion attempts
    and malformed allocation batches. Always local and immediate.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the relational store rejects or fails an operation.

    The session has already been rolled back when this is raised. Callers
    surface it verbatim; nothing in the subsystem retries.

    Args:
        message: Human-readable description of the failed operation.
        operation: Store method name (``update_criterion_status`` etc.).
        conflict: True when the cause was an integrity violation (HTTP 409).
    """

    def __init__(self, message: str, operation: str | None = None, conflict: bool = False) -> None:
        self.operation = operation
        self.conflict = conflict
        super().__init__(message)


class StorageError(Exception):
    """Raised when the object store fails an upload or delete.

    Upload failures abort the evidence-add operation. Delete failures during
    evidence removal are logged and ignored by the evidence manager.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class ReconciliationFailure(RuntimeError):
    """Raised when optimistic view state cannot be restored.

    Only happens when a rollback is requested for an entity whose snapshot
    was never captured. This is a programming defect, not a user-facing
    error, and is never converted into an ``OperationResult``.
    """
