"""
Project Delivery Platform
Deliverable Blueprint.

Endpoints:
    POST   /api/v1/deliverables                        — create in a project phase
    GET    /api/v1/deliverables/<id>                   — detail with version history
    PUT    /api/v1/deliverables/<id>                   — update (content → new version)
    DELETE /api/v1/deliverables/<id>                   — delete (admin, pm)
    PATCH  /api/v1/deliverables/<id>/status            — status; approval may close the phase
    POST   /api/v1/deliverables/<id>/generate          — AI draft via the LLM gateway
    GET    /api/v1/deliverables/project/<project_id>   — deliverables of a project
    GET    /api/v1/deliverables/user/<user_id>         — deliverables assigned to a user

Clients have read access only.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from app.auth import current_role, current_user_id, require_auth, require_role
from app.blueprints import json_body, register_error_handlers
from app.services import deliverable_service, project_service

logger = logging.getLogger(__name__)

deliverable_bp = Blueprint("deliverables", __name__, url_prefix="/api/v1/deliverables")
register_error_handlers(deliverable_bp)

_WRITERS = ("admin", "pm", "team_member")


def _check_project(project):
    project_service.ensure_project_access(project, current_user_id(), current_role())


def _load(did):
    deliverable = deliverable_service.get_deliverable(did)
    _check_project(deliverable.phase.project)
    return deliverable


# ── Collections ──────────────────────────────────────────────────────────


@deliverable_bp.route("/project/<int:project_id>", methods=["GET"])
@require_auth
def list_for_project(project_id):
    _check_project(project_service.get_project(project_id))
    items = deliverable_service.list_for_project(project_id)
    return jsonify([d.to_dict() for d in items])


@deliverable_bp.route("/user/<int:user_id>", methods=["GET"])
@require_auth
def list_for_user(user_id):
    if current_role() != "admin" and current_user_id() != user_id:
        return jsonify({"error": "Access denied"}), 403
    items = deliverable_service.list_for_user(user_id)
    return jsonify([d.to_dict() for d in items])


# ── CRUD ─────────────────────────────────────────────────────────────────


@deliverable_bp.route("", methods=["POST"])
@require_auth
@require_role(*_WRITERS)
def create_deliverable():
    """Body: { "project_id", "phase_id", "name", "description"?, "deliverable_type"?,
    "assigned_to"?, "due_date"? }"""
    data = json_body()
    project_id = deliverable_service.required_id(data, "project_id")
    _check_project(project_service.get_project(project_id))
    deliverable = deliverable_service.create_deliverable(data, acting_user_id=current_user_id())
    return jsonify({
        "message": "Deliverable created successfully",
        "deliverable": deliverable.to_dict(),
    }), 201


@deliverable_bp.route("/<int:did>", methods=["GET"])
@require_auth
def get_deliverable(did):
    return jsonify(_load(did).to_dict(include_versions=True))


@deliverable_bp.route("/<int:did>", methods=["PUT"])
@require_auth
@require_role(*_WRITERS)
def update_deliverable(did):
    deliverable = deliverable_service.update_deliverable(
        _load(did), json_body(), acting_user_id=current_user_id(),
    )
    return jsonify({
        "message": "Deliverable updated successfully",
        "deliverable": deliverable.to_dict(),
    })


@deliverable_bp.route("/<int:did>", methods=["DELETE"])
@require_auth
@require_role("admin", "pm")
def delete_deliverable(did):
    deliverable_service.delete_deliverable(_load(did))
    return jsonify({"message": "Deliverable deleted successfully", "id": did})


# ── Workflow ─────────────────────────────────────────────────────────────


@deliverable_bp.route("/<int:did>/status", methods=["PATCH"])
@require_auth
@require_role(*_WRITERS)
def update_status(did):
    """
    Body: { "status": "approved" }

    The response includes the phase status: approving the last open
    deliverable of an in-progress phase completes the phase.
    """
    status = json_body().get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400

    deliverable = deliverable_service.set_deliverable_status(
        _load(did), status, acting_user_id=current_user_id(),
    )
    return jsonify({
        "message": "Deliverable status updated successfully",
        "deliverable": deliverable.to_dict(),
        "phase_status": deliverable.phase.status,
    })


@deliverable_bp.route("/<int:did>/generate", methods=["POST"])
@require_auth
@require_role(*_WRITERS)
def generate(did):
    deliverable = deliverable_service.generate_deliverable_content(
        _load(did), acting_user_id=current_user_id(),
    )
    return jsonify({
        "message": "Deliverable generated successfully",
        "deliverable": deliverable.to_dict(),
    })
