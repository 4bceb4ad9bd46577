"""
Shared pytest fixtures for the Operational Readiness Tracker test suite.

Provides:
    - app: Flask application (session-scoped, evidence files in a temp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - store / object_store: the collaborators services are built from
    - project, template, criterion: pre-created domain rows
"""

from datetime import date

import pytest

from opready import create_app
from opready.integrations.object_store import LocalObjectStore
from opready.models import db as _db
from opready.services.criteria_store import CriteriaStore
from opready.services.criterion_lifecycle import CriterionLifecycle
from opready.services.evidence_service import EvidenceManager
from opready.services.template_allocator import TemplateAllocator


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    root = tmp_path_factory.mktemp("evidence")
    application.config["OBJECT_STORE_ROOT"] = str(root)
    application.extensions["object_store"] = LocalObjectStore(str(root), "evidence")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Collaborators ────────────────────────────────────────────────────────


@pytest.fixture()
def store():
    return CriteriaStore(_db.session)


@pytest.fixture()
def object_store(app):
    return app.extensions["object_store"]


@pytest.fixture()
def lifecycle(store, object_store):
    return CriterionLifecycle(store, object_store=object_store)


@pytest.fixture()
def evidence_manager(store, object_store):
    return EvidenceManager(store, object_store)


@pytest.fixture()
def allocator(store, object_store):
    return TemplateAllocator(store, object_store=object_store)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(store):
    """Project going live on 2025-01-20."""
    return store.insert_project({
        "org_id": "org-1",
        "name": "Payments Platform",
        "start_date": date(2024, 10, 1),
        "go_live_date": date(2025, 1, 20),
    })


@pytest.fixture()
def template(store):
    """Global template due seven days before the anchor."""
    return store.insert_template({
        "org_id": None,
        "title": "Runbook published",
        "description": "Operations runbook reviewed and stored",
        "category": "Operations",
        "severity": "high",
        "default_status": "not_started",
        "evidence_required": True,
        "version": 3,
        "default_due_offset_days": 7,
        "meta": {"prompts": ["Where is it stored?"]},
    })


@pytest.fixture()
def criterion(store, project):
    """Manual criterion in ``not_started``."""
    return store.insert_criterion({
        "project_id": project.id,
        "org_id": project.org_id,
        "title": "Monitoring dashboards live",
        "category": "Monitoring",
        "status": "not_started",
    })
