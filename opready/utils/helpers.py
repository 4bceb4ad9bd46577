"""Shared request/format helpers.

parse_date_input:  strict date parsing (raises ValueError on bad input)
actor:             audit author from the X-User header
"""
import logging
from datetime import date, datetime

logger = logging.getLogger(__name__)


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, DD.MM.YYYY, date objects. Empty values are None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        try:
            return datetime.strptime(value, "%d.%m.%Y").date()
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc


def actor():
    """Return the acting user for audit entries (``system`` when unknown)."""
    from flask import has_request_context, request

    if not has_request_context():
        return "system"
    return (request.headers.get("X-User") or "system").strip()[:200] or "system"
