"""Readiness reporting: dashboard figures and certificate data."""

from datetime import date, datetime, timezone

from opready.models.criteria import Criterion
from opready.models.evidence import Evidence
from opready.models.project import Project
from opready.services import readiness_report


def _c(title, status, category=None, due=None, **kw):
    return Criterion(id=title, title=title, status=status, category=category, due_date=due, **kw)


CRITERIA = [
    _c("Runbook", "done", "Operations", date(2025, 1, 1)),
    _c("Rota", "in_progress", "Operations", date(2025, 1, 5), owner_email="a@x"),
    _c("Alerts", "delayed", "Monitoring", date(2025, 2, 1)),
    _c("Backups", "caveat", None, None, caveat_reason="Partial restore only", owner_email="b@x"),
    _c("DR plan", "not_started", "Resilience", date(2024, 12, 1)),
]


class TestSummary:
    def test_counts_and_overdue(self):
        s = readiness_report.readiness_summary(CRITERIA, today=date(2025, 1, 10))
        assert s["total"] == 5
        assert s["done"] == 1
        assert s["in_progress"] == 1
        assert s["delayed"] == 1
        assert s["caveat"] == 1
        assert s["not_started"] == 1
        # done items are never overdue; Alerts is due later
        assert s["overdue"] == 2
        assert s["percent_done"] == 20

    def test_empty_project(self):
        s = readiness_report.readiness_summary([], today=date(2025, 1, 1))
        assert s["total"] == 0 and s["percent_done"] == 0

    def test_percent_rounds_half_up(self):
        rows = [_c("a", "done"), _c("b", "in_progress"), _c("c", "in_progress"),
                _c("d", "in_progress"), _c("e", "in_progress"), _c("f", "in_progress"),
                _c("g", "in_progress"), _c("h", "in_progress")]
        # 1/8 = 12.5%
        assert readiness_report.readiness_summary(rows, today=date(2025, 1, 1))["percent_done"] == 13


class TestBreakdowns:
    def test_category_breakdown(self):
        rows = readiness_report.category_breakdown(CRITERIA)
        assert [r["category"] for r in rows] == ["Monitoring", "Operations", "Resilience", "Uncategorised"]
        ops = rows[1]
        assert ops == {"category": "Operations", "total": 2, "done": 1, "percent": 50}

    def test_evidence_by_week_uses_utc_monday(self):
        evidence = [
            Evidence(kind="note", note="n", uploaded_at=datetime(2025, 1, 6, 0, 30, tzinfo=timezone.utc)),
            Evidence(kind="link", note="l", uploaded_at=datetime(2025, 1, 12, 23, 0, tzinfo=timezone.utc)),
            Evidence(kind="file", note="f", uploaded_at=datetime(2025, 1, 13, 9, 0, tzinfo=timezone.utc)),
        ]
        rows = readiness_report.evidence_by_week(evidence)
        assert rows == [
            {"week": "2025-01-06", "notes": 1, "links": 1, "files": 0},
            {"week": "2025-01-13", "notes": 0, "links": 0, "files": 1},
        ]

    def test_overdue_sorted_by_due_date(self):
        items = readiness_report.overdue_items(CRITERIA, today=date(2025, 1, 10))
        assert [i["title"] for i in items] == ["DR plan", "Rota"]


class TestCertificate:
    def test_certificate_data(self):
        project = Project(id="p1", name="Payments", org_id="o")
        cert = readiness_report.acceptance_certificate(
            project, CRITERIA, now=datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc),
        )
        assert cert["summary"] == {"total": 5, "completed": 1, "outstanding": 4, "caveats": 1}
        assert [i["title"] for i in cert["outstanding_items"]] == ["Rota", "Alerts", "DR plan"]
        assert cert["caveat_items"] == [
            {"title": "Backups", "caveat_reason": "Partial restore only", "owner_email": "b@x"},
        ]
        assert cert["suggested_filename"] == "OAC_Payments_2025-01-15.pdf"
