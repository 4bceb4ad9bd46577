"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready:  simple 200 for load balancers
    GET /api/v1/health/live:   database and object store status
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from opready.integrations.object_store import LocalObjectStore, get_object_store
from opready.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe; always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Object store ─────────────────────────────────────────────────
    store = get_object_store()
    backend = current_app.config.get("OBJECT_STORE_BACKEND", "local")
    if isinstance(store, LocalObjectStore):
        root = os.path.join(store.root, store.bucket)
        writable = os.access(root if os.path.isdir(root) else store.root, os.W_OK)
        checks["object_store"] = {
            "status": "ok" if writable else "error",
            "backend": backend,
            "bucket": store.bucket,
        }
        if not writable:
            overall = False
    else:
        # Remote backends are not probed per request
        checks["object_store"] = {"status": "skipped", "backend": backend, "bucket": store.bucket}

    checks["app"] = {
        "name": "Operational Readiness Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
