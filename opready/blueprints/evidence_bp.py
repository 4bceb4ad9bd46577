"""
Evidence blueprint: a criterion's trail of notes, links and files.

Blueprint: evidence_bp
Prefix: /api/v1

Endpoints:
    GET/POST  /criteria/<criterion_id>/evidence    list / add (JSON or multipart)
    DELETE    /evidence/<evidence_id>              remove a link or file entry
    GET       /evidence/<evidence_id>/file         download a stored file

Adding a file uses multipart/form-data with fields ``narrative`` and
``file``. Notes and links use JSON ``{"kind", "narrative", "url"}``.
"""

import io
import logging

from flask import Blueprint, jsonify, request, send_file

from opready.blueprints import evidence_manager, json_body, paginate_items
from opready.services.evidence_service import EvidenceFile
from opready.utils.errors import E, api_error, register_error_handlers
from opready.utils.helpers import actor

logger = logging.getLogger(__name__)

evidence_bp = Blueprint("evidence", __name__, url_prefix="/api/v1")
register_error_handlers(evidence_bp)


@evidence_bp.route("/criteria/<criterion_id>/evidence", methods=["GET"])
def list_evidence(criterion_id):
    trail = evidence_manager().list_evidence(criterion_id)
    kind = request.args.get("kind", "")
    if kind:
        trail = [e for e in trail if e["kind"] == kind]
    items, total = paginate_items(trail)
    return jsonify({"evidence": items, "total": total}), 200


@evidence_bp.route("/criteria/<criterion_id>/evidence", methods=["POST"])
def add_evidence(criterion_id):
    if request.files or request.mimetype == "multipart/form-data":
        upload = request.files.get("file")
        payload = EvidenceFile.from_storage(upload) if upload else None
        kind = request.form.get("kind", "file")
        narrative = request.form.get("narrative", "")
    else:
        data = json_body()
        if data is None:
            return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
        kind = data.get("kind", "note")
        narrative = data.get("narrative", "")
        payload = data.get("url") if kind == "link" else None
        if kind == "file":
            return api_error(E.VALIDATION_INVALID, "File evidence must be sent as multipart/form-data")

    result = evidence_manager().add_evidence(criterion_id, kind, narrative, payload, actor=actor())
    return jsonify(result), 201


@evidence_bp.route("/evidence/<evidence_id>", methods=["DELETE"])
def delete_evidence(evidence_id):
    result = evidence_manager().delete_evidence(evidence_id, actor=actor())
    return jsonify(result), 200


@evidence_bp.route("/evidence/<evidence_id>/file", methods=["GET"])
def download_evidence_file(evidence_id):
    evidence, data = evidence_manager().read_file(evidence_id)
    name = (evidence.meta or {}).get("file_name") or evidence.file_path.rsplit("/", 1)[-1]
    return send_file(
        io.BytesIO(data),
        mimetype=evidence.mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=name,
    )
