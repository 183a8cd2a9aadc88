"""
Project Delivery Platform
Template Blueprint.

Endpoints:
    GET  /api/v1/templates        — active templates with phase counts
    GET  /api/v1/templates/<id>   — template with ordered phases + deliverables
    POST /api/v1/templates        — create template with nested phases (admin)
"""

import logging

from flask import Blueprint, jsonify

from app.auth import current_user_id, require_auth, require_role
from app.blueprints import json_body, register_error_handlers
from app.services import template_service

logger = logging.getLogger(__name__)

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1/templates")
register_error_handlers(template_bp)


@template_bp.route("", methods=["GET"])
@require_auth
def list_templates():
    return jsonify([t.to_dict() for t in template_service.list_templates()])


@template_bp.route("/<int:tid>", methods=["GET"])
@require_auth
def get_template(tid):
    template = template_service.get_template(tid)
    return jsonify(template.to_dict(include_phases=True))


@template_bp.route("", methods=["POST"])
@require_auth
@require_role("admin")
def create_template():
    """
    Body: { "name", "description"?, "category"?,
            "phases": [{ "name", "phase_order", "default_duration_days"?,
                         "deliverables": [{ "name", "deliverable_type"?,
                                            "is_ai_generatable"?, "template_content"? }] }] }
    """
    template = template_service.create_template(json_body(), current_user_id())
    return jsonify({
        "message": "Template created successfully",
        "template": template.to_dict(include_phases=True),
    }), 201
