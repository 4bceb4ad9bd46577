"""Persistent-store adapter for criteria, evidence, templates and projects.

Every public method is one store call: it commits on success, or rolls the
session back and raises PersistenceError on failure. Services receive a
CriteriaStore through their constructor and never touch the session
themselves.

Rules:
  - Status changes go through ``update_criterion_status``, a single-column
    UPDATE statement, never a full-row write, so concurrent edits of other
    columns are not overwritten by a stale row.
  - Field edits go through ``update_criterion_field`` and may only touch
    ``owner_email``, ``due_date`` and ``caveat_reason``.
  - Batch allocation uses one INSERT statement or one DELETE transaction.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from opready.core.exceptions import NotFoundError, PersistenceError, ValidationError
from opready.models import db
from opready.models.criteria import CriteriaTemplate, Criterion
from opready.models.evidence import Evidence
from opready.models.project import Project

logger = logging.getLogger(__name__)

FIELD_PATCH_KEYS = frozenset({"owner_email", "due_date", "caveat_reason"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CriteriaStore:
    """Store handle wrapping a SQLAlchemy session."""

    def __init__(self, session=None) -> None:
        self.session = session if session is not None else db.session

    # ── Transaction helpers ──────────────────────────────────────────────

    @contextmanager
    def _write(self, operation: str):
        try:
            yield
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Store %s rejected: %s", operation, exc.orig)
            raise PersistenceError(
                f"{operation} failed: constraint violation", operation=operation, conflict=True,
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Store %s failed", operation)
            raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc
        except Exception:
            self.session.rollback()
            raise

    @contextmanager
    def _read(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Store %s failed", operation)
            raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc

    # ── Projects ─────────────────────────────────────────────────────────

    def get_project(self, project_id: str) -> Project:
        with self._read("get_project"):
            project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def list_projects(self, org_id: str | None = None) -> list[Project]:
        stmt = select(Project).order_by(Project.created_at.desc())
        if org_id:
            stmt = stmt.where(Project.org_id == org_id)
        with self._read("list_projects"):
            return list(self.session.execute(stmt).scalars())

    def insert_project(self, row: dict) -> Project:
        project = Project(**row)
        with self._write("insert_project"):
            self.session.add(project)
        return project

    def delete_project(self, project_id: str) -> None:
        """Delete a project together with its criteria and their evidence."""
        criterion_ids = select(Criterion.id).where(Criterion.project_id == project_id)
        with self._write("delete_project"):
            self.session.execute(
                delete(Evidence).where(Evidence.criterion_id.in_(criterion_ids)),
                execution_options={"synchronize_session": False},
            )
            self.session.execute(
                delete(Criterion).where(Criterion.project_id == project_id),
                execution_options={"synchronize_session": False},
            )
            result = self.session.execute(
                delete(Project).where(Project.id == project_id),
                execution_options={"synchronize_session": False},
            )
            if result.rowcount == 0:
                raise NotFoundError("Project", project_id)

    # ── Criteria ─────────────────────────────────────────────────────────

    def get_criterion(self, criterion_id: str) -> Criterion:
        with self._read("get_criterion"):
            criterion = self.session.get(Criterion, criterion_id, populate_existing=True)
        if criterion is None:
            raise NotFoundError("Criterion", criterion_id)
        return criterion

    def get_criteria(self, project_id: str) -> list[Criterion]:
        stmt = (
            select(Criterion)
            .where(Criterion.project_id == project_id)
            .order_by(Criterion.category, Criterion.title)
            .execution_options(populate_existing=True)
        )
        with self._read("get_criteria"):
            return list(self.session.execute(stmt).scalars())

    def existing_template_ids(self, project_id: str) -> set[str]:
        """Template ids already allocated to the project (nulls ignored)."""
        stmt = select(Criterion.template_id).where(
            Criterion.project_id == project_id,
            Criterion.template_id.is_not(None),
        )
        with self._read("existing_template_ids"):
            return {tid for tid in self.session.execute(stmt).scalars() if tid}

    def insert_criterion(self, row: dict) -> Criterion:
        criterion = Criterion(**row)
        with self._write("insert_criterion"):
            self.session.add(criterion)
        return criterion

    def delete_criterion(self, criterion_id: str) -> None:
        with self._write("delete_criterion"):
            self.session.execute(
                delete(Evidence).where(Evidence.criterion_id == criterion_id),
                execution_options={"synchronize_session": False},
            )
            result = self.session.execute(
                delete(Criterion).where(Criterion.id == criterion_id),
                execution_options={"synchronize_session": False},
            )
            if result.rowcount == 0:
                raise NotFoundError("Criterion", criterion_id)

    def update_criterion_status(self, criterion_id: str, status: str) -> None:
        stmt = (
            update(Criterion)
            .where(Criterion.id == criterion_id)
            .values(status=status, updated_at=_utcnow())
        )
        with self._write("update_criterion_status"):
            result = self.session.execute(stmt, execution_options={"synchronize_session": False})
            if result.rowcount == 0:
                raise NotFoundError("Criterion", criterion_id)

    def update_criterion_field(self, criterion_id: str, patch: dict) -> None:
        unknown = set(patch) - FIELD_PATCH_KEYS
        if unknown:
            raise ValidationError(
                f"Fields cannot be patched: {', '.join(sorted(unknown))}",
                details={k: "not patchable" for k in sorted(unknown)},
            )
        if not patch:
            return
        stmt = (
            update(Criterion)
            .where(Criterion.id == criterion_id)
            .values(**patch, updated_at=_utcnow())
        )
        with self._write("update_criterion_field"):
            result = self.session.execute(stmt, execution_options={"synchronize_session": False})
            if result.rowcount == 0:
                raise NotFoundError("Criterion", criterion_id)

    def insert_criteria(self, rows: list[dict]) -> int:
        """Insert all rows in one statement; nothing is inserted on failure."""
        if not rows:
            return 0
        with self._write("insert_criteria"):
            self.session.execute(insert(Criterion), rows)
        return len(rows)

    def delete_criteria(self, project_id: str, template_ids: list[str]) -> int:
        """Delete the project's criteria allocated from *template_ids*."""
        if not template_ids:
            return 0
        match = (
            Criterion.project_id == project_id,
            Criterion.template_id.in_(template_ids),
        )
        with self._write("delete_criteria"):
            self.session.execute(
                delete(Evidence).where(
                    Evidence.criterion_id.in_(select(Criterion.id).where(*match))
                ),
                execution_options={"synchronize_session": False},
            )
            result = self.session.execute(
                delete(Criterion).where(*match),
                execution_options={"synchronize_session": False},
            )
        return result.rowcount

    # ── Evidence ─────────────────────────────────────────────────────────

    def get_evidence(self, evidence_id: str) -> Evidence:
        with self._read("get_evidence"):
            evidence = self.session.get(Evidence, evidence_id)
        if evidence is None:
            raise NotFoundError("Evidence", evidence_id)
        return evidence

    def list_evidence(self, criterion_id: str) -> list[Evidence]:
        stmt = (
            select(Evidence)
            .where(Evidence.criterion_id == criterion_id)
            .order_by(Evidence.uploaded_at.desc())
        )
        with self._read("list_evidence"):
            return list(self.session.execute(stmt).scalars())

    def file_paths_for(self, criterion_ids) -> list[str]:
        """Stored blob paths of file evidence attached to *criterion_ids*."""
        ids = list(criterion_ids)
        if not ids:
            return []
        stmt = select(Evidence.file_path).where(
            Evidence.criterion_id.in_(ids),
            Evidence.kind == "file",
            Evidence.file_path.is_not(None),
        )
        with self._read("file_paths_for"):
            return list(self.session.execute(stmt).scalars())

    def insert_evidence(self, row: dict) -> Evidence:
        evidence = Evidence(**row)
        with self._write("insert_evidence"):
            self.session.add(evidence)
        return evidence

    def delete_evidence(self, evidence_id: str) -> None:
        with self._write("delete_evidence"):
            result = self.session.execute(
                delete(Evidence).where(Evidence.id == evidence_id),
                execution_options={"synchronize_session": False},
            )
            if result.rowcount == 0:
                raise NotFoundError("Evidence", evidence_id)

    # ── Templates ────────────────────────────────────────────────────────

    def list_templates(self, org_id: str | None = None, active: bool = True) -> list[CriteriaTemplate]:
        """Global templates plus those scoped to *org_id*, by category then title."""
        scope = CriteriaTemplate.org_id.is_(None)
        if org_id:
            scope = or_(scope, CriteriaTemplate.org_id == org_id)
        stmt = (
            select(CriteriaTemplate)
            .where(scope, CriteriaTemplate.is_active.is_(active))
            .order_by(CriteriaTemplate.category, CriteriaTemplate.title)
        )
        with self._read("list_templates"):
            return list(self.session.execute(stmt).scalars())

    def get_template(self, template_id: str) -> CriteriaTemplate:
        with self._read("get_template"):
            template = self.session.get(CriteriaTemplate, template_id)
        if template is None:
            raise NotFoundError("CriteriaTemplate", template_id)
        return template

    def find_template_by_title(self, title: str, org_id: str | None = None) -> CriteriaTemplate | None:
        scope = CriteriaTemplate.org_id.is_(None) if org_id is None else CriteriaTemplate.org_id == org_id
        stmt = select(CriteriaTemplate).where(CriteriaTemplate.title == title, scope)
        with self._read("find_template_by_title"):
            return self.session.execute(stmt).scalars().first()

    def insert_template(self, row: dict) -> CriteriaTemplate:
        template = CriteriaTemplate(**row)
        with self._write("insert_template"):
            self.session.add(template)
        return template

    def list_project_evidence(self, project_id: str) -> list[Evidence]:
        stmt = (
            select(Evidence)
            .join(Criterion, Evidence.criterion_id == Criterion.id)
            .where(Criterion.project_id == project_id)
            .order_by(Evidence.uploaded_at)
        )
        with self._read("list_project_evidence"):
            return list(self.session.execute(stmt).scalars())
