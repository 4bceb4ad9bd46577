"""
Criteria template catalog: create, import from outline text, seed defaults.
"""

import logging
import re

from opready.core.exceptions import ValidationError
from opready.models.criteria import CRITERION_STATUSES, DEFAULT_SEVERITY

logger = logging.getLogger(__name__)

_BULLET_RE = re.compile(r"^[-–•*]\s+|^\d+\.\s+")
MAX_OUTLINE_LINE = 140

DEFAULT_TEMPLATES = [
    {"title": "Service runbook published", "category": "Operations", "severity": "high",
     "default_due_offset_days": 14,
     "meta": {"prompts": ["Where is the runbook stored?", "Who reviewed it?"]}},
    {"title": "On-call rota agreed", "category": "Operations", "severity": "high",
     "default_due_offset_days": 7},
    {"title": "Monitoring and alerting in place", "category": "Monitoring", "severity": "high",
     "default_due_offset_days": 14,
     "meta": {"prompts": ["Link the dashboard", "List the alert routes"]}},
    {"title": "Log retention configured", "category": "Monitoring", "severity": "med",
     "default_due_offset_days": 14},
    {"title": "Backup schedule verified", "category": "Resilience", "severity": "high",
     "default_due_offset_days": 21},
    {"title": "Restore test completed", "category": "Resilience", "severity": "high",
     "default_due_offset_days": 14},
    {"title": "Disaster recovery plan signed off", "category": "Resilience", "severity": "med",
     "default_due_offset_days": 21},
    {"title": "Support handover completed", "category": "Service Desk", "severity": "med",
     "default_due_offset_days": 7},
    {"title": "Known errors documented", "category": "Service Desk", "severity": "low",
     "default_due_offset_days": 7},
    {"title": "Access reviews completed", "category": "Security", "severity": "high",
     "default_due_offset_days": 14},
    {"title": "Penetration test findings closed", "category": "Security", "severity": "high",
     "default_due_offset_days": 21},
    {"title": "Capacity plan reviewed", "category": None, "severity": "low",
     "default_due_offset_days": None},
]


def _text(data, key, max_length=None):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={key: "invalid type"})
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds {max_length} characters", details={key: "too long"})
    return value or None


def normalize_template(data: dict) -> dict:
    """Validate a template payload and return column values."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be an object")
    title = _text(data, "title", 300)
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    default_status = data.get("default_status") or "not_started"
    if default_status not in CRITERION_STATUSES:
        raise ValidationError(
            f"Unrecognised default_status: {default_status!r}",
            details={"default_status": f"must be one of {', '.join(CRITERION_STATUSES)}"},
        )

    offset = data.get("default_due_offset_days")
    if offset is not None and (isinstance(offset, bool) or not isinstance(offset, int) or offset < 0):
        raise ValidationError(
            "default_due_offset_days must be a non-negative integer or null",
            details={"default_due_offset_days": "invalid"},
        )

    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValidationError("version must be a positive integer", details={"version": "invalid"})

    meta = data.get("meta")
    if meta is not None and not isinstance(meta, dict):
        raise ValidationError("meta must be an object", details={"meta": "invalid type"})

    return {
        "org_id": _text(data, "org_id", 36),
        "title": title,
        "description": _text(data, "description"),
        "category": _text(data, "category", 100),
        "severity": _text(data, "severity", 20) or DEFAULT_SEVERITY,
        "default_status": default_status,
        "evidence_required": bool(data.get("evidence_required", True)),
        "version": version,
        "is_active": bool(data.get("is_active", True)),
        "default_due_offset_days": offset,
        "meta": meta,
    }


def create_template(store, data: dict) -> dict:
    template = store.insert_template(normalize_template(data))
    logger.info("Criteria template %s created (org=%s)", template.id, template.org_id)
    return template.to_dict()


def guess_items_from_text(text: str) -> list[dict]:
    """Propose template titles from an outline: bullets, numbered or short lines.

    Markers are stripped, titles under three characters are dropped and
    duplicates (case-insensitive) keep their first occurrence.
    """
    lines = [line.strip() for line in (text or "").splitlines()]
    candidates = [
        line for line in lines
        if line and (_BULLET_RE.match(line) or 2 < len(line) <= MAX_OUTLINE_LINE)
    ]
    items, seen = [], set()
    for position, line in enumerate(candidates, start=1):
        title = _BULLET_RE.sub("", line, count=1).strip()
        if len(title) < 3:
            continue
        key = title.lower()
        if key in seen:
            continue
        seen.add(key)
        items.append({"title": title, "category": None, "sort_order": position})
    return items


def import_outline(store, text: str, org_id: str | None = None,
                   category: str | None = None, default_due_offset_days: int | None = None) -> list[dict]:
    """Create one template per proposed outline item."""
    items = guess_items_from_text(text)
    if not items:
        raise ValidationError("No template items found in text", details={"text": "empty"})
    created = []
    for item in items:
        created.append(create_template(store, {
            "org_id": org_id,
            "title": item["title"][:300],
            "category": category,
            "default_due_offset_days": default_due_offset_days,
            "meta": {"sort_order": item["sort_order"], "source": "outline"},
        }))
    logger.info("Imported %d template(s) from outline (org=%s)", len(created), org_id)
    return created


def seed_default_templates(store) -> int:
    """Insert the default global catalog, skipping titles already present."""
    inserted = 0
    for entry in DEFAULT_TEMPLATES:
        if store.find_template_by_title(entry["title"]) is not None:
            continue
        store.insert_template(normalize_template(entry))
        inserted += 1
    return inserted
