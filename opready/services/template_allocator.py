"""
Template Allocator: bulk-populate a project's criteria from the catalog.

Flow:
  1. list_eligible_templates(org_id)     active global + org templates
  2. diff_against_project(project_id)    addable / already-present partition
  3. build_add_batch(project_id, ids)    draft rows for review (no write)
  4. commit_add(project_id, batch)       one batched INSERT
     commit_remove(project_id, ids)      one batched DELETE
  5. the existing template-id set is re-fetched from the store after every
     commit; local bookkeeping is never trusted for what is "already added".

Due dates are ``anchor - default_due_offset_days`` in whole calendar days,
where the anchor is the project's go-live date (default) or start date.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from opready.core.exceptions import ValidationError
from opready.models.criteria import CRITERION_STATUSES, DEFAULT_SEVERITY, UNCATEGORISED
from opready.services.criterion_lifecycle import release_blobs
from opready.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

DUE_ANCHORS = ("go_live", "start")
DEFAULT_ANCHOR = "go_live"


def validate_anchor(anchor) -> str:
    if anchor is None:
        return DEFAULT_ANCHOR
    if anchor not in DUE_ANCHORS:
        raise ValidationError(
            f"Unrecognised due-date anchor: {anchor!r}",
            details={"anchor": f"must be one of {', '.join(DUE_ANCHORS)}"},
        )
    return anchor


def compute_due_date(template, project, anchor: str = DEFAULT_ANCHOR) -> date | None:
    """Anchor date minus the template's offset, or None when either is missing.

    Works on calendar dates only, so no timezone shift can move the result.
    """
    anchor = validate_anchor(anchor)
    offset = template.default_due_offset_days
    anchor_date = project.anchor_date(anchor)
    if offset is None or anchor_date is None:
        return None
    if isinstance(anchor_date, datetime):
        anchor_date = anchor_date.astimezone(timezone.utc).date() if anchor_date.tzinfo else anchor_date.date()
    return anchor_date - timedelta(days=int(offset))


@dataclass
class AllocationDiff:
    """Catalog partitioned against one project's existing template ids."""

    addable: list = field(default_factory=list)
    present: list = field(default_factory=list)
    existing_ids: set = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "addable": [t.to_dict() for t in self.addable],
            "present": [t.to_dict() for t in self.present],
            "existing_template_ids": sorted(self.existing_ids),
        }


def partition_catalog(templates, existing_ids) -> AllocationDiff:
    """Split *templates* into addable and already-present by template id."""
    existing_ids = {tid for tid in existing_ids if tid}
    diff = AllocationDiff(existing_ids=existing_ids)
    for template in templates:
        if template.id in existing_ids:
            diff.present.append(template)
        else:
            diff.addable.append(template)
    return diff


def filter_catalog(templates, search: str | None = None, category: str | None = None,
                   exclude_ids=None) -> list:
    """Free-text and category filtering used by the allocation screen."""
    needle = (search or "").strip().lower()
    exclude_ids = set(exclude_ids or ())
    out = []
    for t in templates:
        if t.id in exclude_ids:
            continue
        if category and (t.category or UNCATEGORISED) != category:
            continue
        if needle:
            haystack = " ".join(
                v for v in (t.title, t.description, t.category, t.severity) if v
            ).lower()
            if needle not in haystack:
                continue
        out.append(t)
    return out


def catalog_categories(templates) -> list[str]:
    return sorted({t.category or UNCATEGORISED for t in templates})


class AllocationSelection:
    """Add/remove selection bookkeeping for one project.

    A template id is in at most one of ``to_add`` and ``to_remove``. Only
    absent templates can be selected for add, and only present ones for
    removal.
    """

    def __init__(self, existing_ids=()):
        self.existing_ids = set(existing_ids)
        self.to_add: set[str] = set()
        self.to_remove: set[str] = set()

    def toggle_add(self, template_id: str) -> bool:
        if template_id in self.existing_ids:
            raise ValidationError(
                "Template is already allocated to this project",
                details={"template_id": template_id},
            )
        if template_id in self.to_add:
            self.to_add.discard(template_id)
            return False
        self.to_remove.discard(template_id)
        self.to_add.add(template_id)
        return True

    def toggle_remove(self, template_id: str) -> bool:
        if template_id not in self.existing_ids:
            raise ValidationError(
                "Template is not allocated to this project",
                details={"template_id": template_id},
            )
        if template_id in self.to_remove:
            self.to_remove.discard(template_id)
            return False
        self.to_add.discard(template_id)
        self.to_remove.add(template_id)
        return True

    def select_all(self, template_ids) -> None:
        """Select every absent template in *template_ids* for add."""
        for tid in template_ids:
            if tid not in self.existing_ids:
                self.to_remove.discard(tid)
                self.to_add.add(tid)

    def clear(self) -> None:
        self.to_add.clear()
        self.to_remove.clear()

    def reconcile(self, existing_ids) -> None:
        """Adopt a freshly fetched existing set and drop stale selections."""
        self.existing_ids = set(existing_ids)
        self.to_add -= self.existing_ids
        self.to_remove &= self.existing_ids


class TemplateAllocator:
    """Catalog diffing and batched allocation for projects."""

    def __init__(self, store, object_store=None, default_anchor: str = DEFAULT_ANCHOR):
        self.store = store
        self.object_store = object_store
        self.default_anchor = validate_anchor(default_anchor)

    def list_eligible_templates(self, org_id: str | None) -> list:
        return self.store.list_templates(org_id=org_id, active=True)

    def existing_template_ids(self, project_id: str) -> set[str]:
        return self.store.existing_template_ids(project_id)

    def diff_against_project(self, project_id: str, templates=None) -> AllocationDiff:
        project = self.store.get_project(project_id)
        if templates is None:
            templates = self.list_eligible_templates(project.org_id)
        return partition_catalog(templates, self.existing_template_ids(project_id))

    def build_add_batch(self, project_id: str, selected_ids, anchor: str | None = None,
                        templates=None, now: datetime | None = None) -> list[dict]:
        """Draft criterion rows for review. Nothing is written."""
        anchor = validate_anchor(anchor or self.default_anchor)
        selected = [tid for tid in dict.fromkeys(selected_ids or ()) if tid]
        if not selected:
            raise ValidationError("Select at least one template", details={"template_ids": "empty"})

        project = self.store.get_project(project_id)
        diff = self.diff_against_project(project_id, templates)
        addable = {t.id: t for t in diff.addable}
        stamp = (now or datetime.now(timezone.utc)).isoformat()

        batch = []
        for tid in selected:
            template = addable.get(tid)
            if template is None:
                logger.debug("Template %s skipped for project %s (not addable)", tid, project_id)
                continue
            batch.append(self._draft_row(template, project, anchor, stamp))
        return batch

    @staticmethod
    def _draft_row(template, project, anchor: str, stamp: str) -> dict:
        status = template.default_status if template.default_status in CRITERION_STATUSES else "not_started"
        meta = dict(template.meta) if isinstance(template.meta, dict) else {}
        meta["provenance"] = {
            "source": "template",
            "template_version": template.version,
            "created_at": stamp,
        }
        due = compute_due_date(template, project, anchor)
        return {
            "project_id": project.id,
            "template_id": template.id,
            "title": template.title,
            "description": template.description,
            "category": template.category,
            "severity": template.severity or DEFAULT_SEVERITY,
            "status": status,
            "evidence_required": bool(template.evidence_required),
            "due_date": due.isoformat() if due else None,
            "meta": meta,
        }

    def _normalize_batch(self, project, batch, addable: dict, anchor: str, stamp: str) -> list[dict]:
        """Rebuild reviewed drafts from the catalog.

        Rows are regenerated from their template; only ``due_date`` and
        ``evidence_required`` are taken from the reviewed draft.
        """
        if not isinstance(batch, list) or not batch:
            raise ValidationError("Nothing to add", details={"rows": "empty"})

        rows, seen, ineligible = [], set(), []
        for index, draft in enumerate(batch):
            if not isinstance(draft, dict):
                raise ValidationError(f"Row {index} must be an object")
            if draft.get("project_id", project.id) != project.id:
                raise ValidationError(
                    f"Row {index} targets a different project",
                    details={"project_id": draft.get("project_id")},
                )
            tid = draft.get("template_id")
            if not tid or not isinstance(tid, str):
                raise ValidationError(f"Row {index} has no template_id")
            if tid in seen:
                raise ValidationError(
                    "Duplicate template in batch", details={"template_id": tid},
                )
            seen.add(tid)
            template = addable.get(tid)
            if template is None:
                ineligible.append(tid)
                continue

            row = self._draft_row(template, project, anchor, stamp)
            if "due_date" in draft:
                try:
                    row["due_date"] = parse_date_input(draft["due_date"])
                except ValueError as exc:
                    raise ValidationError(
                        str(exc), details={"row": index, "due_date": "invalid"},
                    ) from exc
            else:
                row["due_date"] = parse_date_input(row["due_date"])
            if "evidence_required" in draft:
                row["evidence_required"] = bool(draft["evidence_required"])
            row.update({"id": str(uuid.uuid4()), "org_id": project.org_id})
            rows.append(row)

        if ineligible:
            raise ValidationError(
                "Templates are not eligible for this project",
                details={"ineligible": ineligible},
            )
        return rows

    def commit_add(self, project_id: str, batch, anchor: str | None = None,
                   now: datetime | None = None) -> set[str]:
        """Insert a reviewed batch and return the re-fetched existing set."""
        anchor = validate_anchor(anchor or self.default_anchor)
        project = self.store.get_project(project_id)
        templates = {t.id: t for t in self.list_eligible_templates(project.org_id)}
        existing = self.existing_template_ids(project_id)
        stamp = (now or datetime.now(timezone.utc)).isoformat()

        candidates = {tid: t for tid, t in templates.items() if tid not in existing}
        if isinstance(batch, list):
            already = sorted(
                d["template_id"] for d in batch
                if isinstance(d, dict) and d.get("template_id") in existing
            )
            if already:
                raise ValidationError(
                    "Templates already allocated to this project",
                    details={"already_present": already},
                )
        rows = self._normalize_batch(project, batch, candidates, anchor, stamp)

        self.store.insert_criteria(rows)
        logger.info(
            "Allocated %d template(s) to project %s", len(rows), project_id,
            extra={"project_id": project_id, "event_type": "allocation_added"},
        )
        return self.existing_template_ids(project_id)

    def commit_remove(self, project_id: str, template_ids) -> set[str]:
        """Delete allocated criteria by template id and return the re-fetched set."""
        if not isinstance(template_ids, list) or not template_ids:
            raise ValidationError("Nothing to remove", details={"template_ids": "empty"})
        if not all(isinstance(t, str) and t for t in template_ids):
            raise ValidationError("template_ids must be non-empty strings")
        template_ids = list(dict.fromkeys(template_ids))

        self.store.get_project(project_id)
        paths = []
        if self.object_store is not None:
            doomed = [
                c.id for c in self.store.get_criteria(project_id)
                if c.template_id in set(template_ids)
            ]
            paths = self.store.file_paths_for(doomed)

        removed = self.store.delete_criteria(project_id, template_ids)
        logger.info(
            "Removed %d allocated criteria from project %s", removed, project_id,
            extra={"project_id": project_id, "event_type": "allocation_removed"},
        )
        release_blobs(self.object_store, paths)
        return self.existing_template_ids(project_id)
