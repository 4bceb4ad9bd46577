"""Standardised API error responses.

Usage
-----
    from opready.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Criterion not found")
    return api_error(E.VALIDATION_REQUIRED, "narrative is required")
    return api_error(E.STORAGE, "Upload failed", details={"path": path})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention: ERR_ prefix for every application error.
    """

    # Malformed request – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business-rule rejection – HTTP 422
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / constraint – HTTP 409
    CONFLICT_CONSTRAINT = "ERR_CONFLICT_CONSTRAINT"

    # Collaborators – HTTP 500 / 502
    DATABASE = "ERR_DATABASE"
    STORAGE = "ERR_STORAGE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_CONSTRAINT: 409,
    E.DATABASE: 500,
    E.STORAGE: 502,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, storage path, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the subsystem's exception → response mapping to a blueprint."""
    import logging

    from flask import request
    from werkzeug.exceptions import HTTPException

    from opready.core.exceptions import (
        NotFoundError,
        PersistenceError,
        StorageError,
        ValidationError,
    )

    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        if error.conflict:
            return api_error(E.CONFLICT_CONSTRAINT, str(error))
        return api_error(E.DATABASE, str(error))

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        return api_error(E.STORAGE, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
