"""
Project registry blueprint.

Blueprint: project_bp
Prefix: /api/v1

Endpoints:
    GET/POST    /projects                    list / create
    GET/DELETE  /projects/<project_id>       read / delete with criteria and evidence
    GET         /projects/<project_id>/dashboard
    GET         /projects/<project_id>/certificate
"""

import logging
from datetime import date

from flask import Blueprint, jsonify, request

from opready.blueprints import criteria_store, criterion_lifecycle, json_body, paginate_items
from opready.core.exceptions import ValidationError
from opready.services import readiness_report
from opready.utils.errors import E, api_error, register_error_handlers
from opready.utils.helpers import actor, parse_date_input

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


def _date_field(data, key):
    try:
        return parse_date_input(data.get(key))
    except ValueError as exc:
        raise ValidationError(str(exc), details={key: "invalid date"}) from exc


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = criteria_store().list_projects(org_id=request.args.get("org_id") or None)
    items, total = paginate_items(projects)
    return jsonify({"projects": [p.to_dict() for p in items], "total": total}), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    name = (data.get("name") or "").strip() if isinstance(data.get("name"), str) else ""
    org_id = (data.get("org_id") or "").strip() if isinstance(data.get("org_id"), str) else ""
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if not org_id:
        return api_error(E.VALIDATION_REQUIRED, "org_id is required")

    project = criteria_store().insert_project({
        "org_id": org_id,
        "name": name[:200],
        "description": data.get("description"),
        "project_code": data.get("project_code"),
        "owner_email": data.get("owner_email"),
        "start_date": _date_field(data, "start_date"),
        "go_live_date": _date_field(data, "go_live_date"),
    })
    logger.info("Project %s created by %s", project.id, actor(), extra={"project_id": project.id})
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(criteria_store().get_project(project_id).to_dict()), 200


@project_bp.route("/projects/<project_id>", methods=["DELETE"])
def delete_project(project_id):
    result = criterion_lifecycle().delete_project(project_id, actor=actor())
    return jsonify({
        "message": "Project deleted",
        "id": project_id,
        "files_released": result["files_released"],
        "files_total": result["files_total"],
    }), 200


@project_bp.route("/projects/<project_id>/dashboard", methods=["GET"])
def project_dashboard(project_id):
    store = criteria_store()
    store.get_project(project_id)
    today = None
    if request.args.get("today"):
        try:
            today = date.fromisoformat(request.args["today"])
        except ValueError:
            return api_error(E.VALIDATION_INVALID, "today must be YYYY-MM-DD")
    data = readiness_report.project_dashboard(
        store.get_criteria(project_id), store.list_project_evidence(project_id), today,
    )
    return jsonify(data), 200


@project_bp.route("/projects/<project_id>/certificate", methods=["GET"])
def project_certificate(project_id):
    store = criteria_store()
    project = store.get_project(project_id)
    data = readiness_report.acceptance_certificate(project, store.get_criteria(project_id))
    return jsonify(data), 200
