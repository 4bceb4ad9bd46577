"""
Template allocation blueprint.

Blueprint: allocation_bp
Prefix: /api/v1

Endpoints:
    GET   /projects/<project_id>/allocation            catalog diff (+ search/category/exclude_existing)
    POST  /projects/<project_id>/allocation/preview    draft rows for review
    POST  /projects/<project_id>/allocation/commit     insert reviewed rows
    POST  /projects/<project_id>/allocation/remove     delete by template id

Commit and remove respond with the existing template-id set re-read from
the database after the write.
"""

import logging

from flask import Blueprint, jsonify, request

from opready.blueprints import json_body, template_allocator
from opready.services.template_allocator import catalog_categories, filter_catalog
from opready.utils.errors import E, api_error, register_error_handlers
from opready.utils.helpers import actor

logger = logging.getLogger(__name__)

allocation_bp = Blueprint("allocation", __name__, url_prefix="/api/v1")
register_error_handlers(allocation_bp)


def _truthy(value) -> bool:
    return str(value or "").lower() in ("1", "true", "yes", "on")


@allocation_bp.route("/projects/<project_id>/allocation", methods=["GET"])
def allocation_diff(project_id):
    allocator = template_allocator()
    project = allocator.store.get_project(project_id)
    templates = allocator.list_eligible_templates(project.org_id)
    diff = allocator.diff_against_project(project_id, templates)

    exclude = diff.existing_ids if _truthy(request.args.get("exclude_existing")) else ()
    visible = filter_catalog(
        templates,
        search=request.args.get("search"),
        category=request.args.get("category") or None,
        exclude_ids=exclude,
    )
    body = diff.to_dict()
    body["visible"] = [t.to_dict() for t in visible]
    body["categories"] = catalog_categories(templates)
    return jsonify(body), 200


@allocation_bp.route("/projects/<project_id>/allocation/preview", methods=["POST"])
def allocation_preview(project_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    template_ids = data.get("template_ids")
    if not isinstance(template_ids, list):
        return api_error(E.VALIDATION_REQUIRED, "template_ids must be a list")
    anchor = data.get("anchor")
    rows = template_allocator().build_add_batch(project_id, template_ids, anchor=anchor)
    return jsonify({"rows": rows, "total": len(rows)}), 200


@allocation_bp.route("/projects/<project_id>/allocation/commit", methods=["POST"])
def allocation_commit(project_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    rows = data.get("rows")
    if not isinstance(rows, list):
        return api_error(E.VALIDATION_REQUIRED, "rows must be a list")
    existing = template_allocator().commit_add(project_id, rows, anchor=data.get("anchor"))
    logger.info("Allocation committed for project %s by %s", project_id, actor(),
                extra={"project_id": project_id})
    return jsonify({"added": len(rows), "existing_template_ids": sorted(existing)}), 201


@allocation_bp.route("/projects/<project_id>/allocation/remove", methods=["POST"])
def allocation_remove(project_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    template_ids = data.get("template_ids")
    if not isinstance(template_ids, list):
        return api_error(E.VALIDATION_REQUIRED, "template_ids must be a list")
    existing = template_allocator().commit_remove(project_id, template_ids)
    logger.info("Allocation removal for project %s by %s", project_id, actor(),
                extra={"project_id": project_id})
    return jsonify({"existing_template_ids": sorted(existing)}), 200
