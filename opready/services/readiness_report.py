"""
Readiness reporting: dashboard figures and acceptance certificate data.

Pure functions over criteria and evidence rows. Rendering (charts, PDF)
belongs to the presentation layer.
"""

from datetime import date, datetime, timedelta, timezone

from opready.models.criteria import STATUS_LABELS, UNCATEGORISED

OUTSTANDING_STATUSES = ("not_started", "in_progress", "delayed")


def _percent(part: int, total: int) -> int:
    """Whole percent, halves rounded up."""
    if not total:
        return 0
    return int(part * 100 / total + 0.5)


def _as_date(value):
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def is_overdue(criterion, today: date) -> bool:
    due = _as_date(criterion.due_date)
    return due is not None and due < today and criterion.status != "done"


def readiness_summary(criteria, today: date | None = None) -> dict:
    today = today or datetime.now(timezone.utc).date()
    counts = {status: 0 for status in STATUS_LABELS}
    overdue = 0
    for c in criteria:
        counts[c.status] = counts.get(c.status, 0) + 1
        if is_overdue(c, today):
            overdue += 1
    total = sum(counts.values())
    return {
        "total": total,
        **counts,
        "overdue": overdue,
        "percent_done": _percent(counts["done"], total),
    }


def category_breakdown(criteria) -> list[dict]:
    rows: dict[str, dict] = {}
    for c in criteria:
        key = c.category or UNCATEGORISED
        row = rows.setdefault(key, {"category": key, "total": 0, "done": 0})
        row["total"] += 1
        if c.status == "done":
            row["done"] += 1
    out = sorted(rows.values(), key=lambda r: r["category"])
    for row in out:
        row["percent"] = _percent(row["done"], row["total"])
    return out


def week_key(moment: datetime) -> str:
    """ISO date of the Monday starting the UTC week containing *moment*."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    day = moment.date()
    return (day - timedelta(days=day.weekday())).isoformat()


def evidence_by_week(evidence) -> list[dict]:
    rows: dict[str, dict] = {}
    for ev in evidence:
        if ev.uploaded_at is None:
            continue
        wk = week_key(ev.uploaded_at)
        row = rows.setdefault(wk, {"week": wk, "notes": 0, "links": 0, "files": 0})
        if ev.kind == "note":
            row["notes"] += 1
        elif ev.kind == "link":
            row["links"] += 1
        else:
            row["files"] += 1
    return [rows[k] for k in sorted(rows)]


def overdue_items(criteria, today: date | None = None) -> list[dict]:
    today = today or datetime.now(timezone.utc).date()
    items = [c for c in criteria if is_overdue(c, today)]
    items.sort(key=lambda c: _as_date(c.due_date))
    return [_brief(c) for c in items]


def caveat_items(criteria) -> list[dict]:
    items = [c for c in criteria if c.status == "caveat"]
    items.sort(key=lambda c: (c.category or "", c.title))
    return [_brief(c) for c in items]


def _brief(c) -> dict:
    due = _as_date(c.due_date)
    return {
        "id": c.id,
        "title": c.title,
        "category": c.category,
        "status": c.status,
        "status_label": STATUS_LABELS.get(c.status, c.status),
        "owner_email": c.owner_email,
        "due_date": due.isoformat() if due else None,
        "caveat_reason": c.caveat_reason,
    }


def project_dashboard(criteria, evidence, today: date | None = None) -> dict:
    return {
        "summary": readiness_summary(criteria, today),
        "by_category": category_breakdown(criteria),
        "evidence_by_week": evidence_by_week(evidence),
        "overdue": overdue_items(criteria, today),
        "caveats": caveat_items(criteria),
    }


def acceptance_certificate(project, criteria, now: datetime | None = None) -> dict:
    """Data for the Operational Acceptance Certificate."""
    now = now or datetime.now(timezone.utc)
    total = len(criteria)
    done = sum(1 for c in criteria if c.status == "done")
    caveats = [c for c in criteria if c.status == "caveat"]
    outstanding = [c for c in criteria if c.status in OUTSTANDING_STATUSES]
    return {
        "title": "Operational Acceptance Certificate",
        "project": {"id": project.id, "name": project.name},
        "generated_at": now.isoformat(),
        "summary": {
            "total": total,
            "completed": done,
            "outstanding": total - done,
            "caveats": len(caveats),
        },
        "outstanding_items": [
            {
                "title": c.title,
                "status": c.status,
                "owner_email": c.owner_email,
                "due_date": c.due_date.isoformat() if c.due_date else None,
            }
            for c in outstanding
        ],
        "caveat_items": [
            {"title": c.title, "caveat_reason": c.caveat_reason, "owner_email": c.owner_email}
            for c in caveats
        ],
        "suggested_filename": f"OAC_{project.name}_{now.date().isoformat()}.pdf",
    }
