"""
Criteria blueprint: criterion reads, status transitions and field edits.

Blueprint: criteria_bp
Prefix: /api/v1

Endpoints:
    GET/POST          /projects/<project_id>/criteria
    GET/PATCH/DELETE  /criteria/<criterion_id>
    PUT               /criteria/<criterion_id>/status
"""

import logging

from flask import Blueprint, jsonify, request

from opready.blueprints import criteria_store, criterion_lifecycle, json_body, paginate_items
from opready.models.criteria import UNCATEGORISED
from opready.utils.errors import E, api_error, register_error_handlers
from opready.utils.helpers import actor

logger = logging.getLogger(__name__)

criteria_bp = Blueprint("criteria", __name__, url_prefix="/api/v1")
register_error_handlers(criteria_bp)


@criteria_bp.route("/projects/<project_id>/criteria", methods=["GET"])
def list_criteria(project_id):
    store = criteria_store()
    store.get_project(project_id)
    rows = store.get_criteria(project_id)

    status = request.args.get("status", "")
    if status:
        rows = [c for c in rows if c.status == status]
    category = request.args.get("category", "")
    if category:
        rows = [c for c in rows if (c.category or UNCATEGORISED) == category]

    items, total = paginate_items(rows)
    return jsonify({"criteria": [c.to_dict() for c in items], "total": total}), 200


@criteria_bp.route("/projects/<project_id>/criteria", methods=["POST"])
def create_criterion(project_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    created = criterion_lifecycle().create_criterion(project_id, data, actor=actor())
    return jsonify(created), 201


@criteria_bp.route("/criteria/<criterion_id>", methods=["GET"])
def get_criterion(criterion_id):
    return jsonify(criteria_store().get_criterion(criterion_id).to_dict()), 200


@criteria_bp.route("/criteria/<criterion_id>", methods=["PATCH"])
def update_criterion(criterion_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    result = criterion_lifecycle().update_details(criterion_id, data, actor=actor())
    return jsonify(result), 200


@criteria_bp.route("/criteria/<criterion_id>", methods=["DELETE"])
def delete_criterion(criterion_id):
    result = criterion_lifecycle().delete_criterion(criterion_id, actor=actor())
    return jsonify(result), 200


@criteria_bp.route("/criteria/<criterion_id>/status", methods=["PUT"])
def set_status(criterion_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if "status" not in data:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    result = criterion_lifecycle().set_status(criterion_id, data["status"], actor=actor())
    return jsonify(result), 200
