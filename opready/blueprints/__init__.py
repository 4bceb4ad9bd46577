"""Shared blueprint helpers: pagination, request bodies and service wiring."""

from flask import current_app, request

from opready.integrations.object_store import get_object_store
from opready.models import db
from opready.services.criteria_store import CriteriaStore
from opready.services.criterion_lifecycle import CriterionLifecycle
from opready.services.evidence_service import EvidenceManager
from opready.services.template_allocator import TemplateAllocator


def paginate_items(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-loaded list.

    Query params:
        limit:  max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def json_body():
    """Request JSON object, or None when the body is missing or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def criteria_store() -> CriteriaStore:
    return CriteriaStore(db.session)


def criterion_lifecycle() -> CriterionLifecycle:
    return CriterionLifecycle(criteria_store(), object_store=get_object_store())


def evidence_manager() -> EvidenceManager:
    return EvidenceManager(criteria_store(), get_object_store())


def template_allocator() -> TemplateAllocator:
    return TemplateAllocator(
        criteria_store(),
        object_store=get_object_store(),
        default_anchor=current_app.config.get("DEFAULT_DUE_ANCHOR", "go_live"),
    )
