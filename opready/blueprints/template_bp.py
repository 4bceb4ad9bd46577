"""
Criteria template catalog blueprint.

Blueprint: template_bp
Prefix: /api/v1

Endpoints:
    GET   /criteria-templates?org_id=&search=&category=
    POST  /criteria-templates
    POST  /criteria-templates/import      create templates from a plain-text outline
"""

import logging

from flask import Blueprint, jsonify, request

from opready.blueprints import criteria_store, json_body, paginate_items
from opready.services import template_catalog
from opready.services.template_allocator import catalog_categories, filter_catalog
from opready.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1")
register_error_handlers(template_bp)


@template_bp.route("/criteria-templates", methods=["GET"])
def list_templates():
    templates = criteria_store().list_templates(org_id=request.args.get("org_id") or None)
    filtered = filter_catalog(
        templates,
        search=request.args.get("search"),
        category=request.args.get("category") or None,
    )
    items, total = paginate_items(filtered)
    return jsonify({
        "templates": [t.to_dict() for t in items],
        "categories": catalog_categories(templates),
        "total": total,
    }), 200


@template_bp.route("/criteria-templates", methods=["POST"])
def create_template():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(template_catalog.create_template(criteria_store(), data)), 201


@template_bp.route("/criteria-templates/import", methods=["POST"])
def import_templates():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        return api_error(E.VALIDATION_REQUIRED, "text is required")
    created = template_catalog.import_outline(
        criteria_store(),
        text,
        org_id=data.get("org_id"),
        category=data.get("category"),
        default_due_offset_days=data.get("default_due_offset_days"),
    )
    return jsonify({"templates": created, "total": len(created)}), 201
