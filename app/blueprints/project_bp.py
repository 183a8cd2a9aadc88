"""
Project Delivery Platform
Project & Phase Blueprint.

Endpoints:
    GET    /api/v1/projects                        — visible projects (?status=, ?pm_id=)
    POST   /api/v1/projects                        — create from template (admin, pm)
    GET    /api/v1/projects/<id>                   — detail with phases + contacts
    PUT    /api/v1/projects/<id>                   — update descriptive fields
    DELETE /api/v1/projects/<id>                   — delete (admin)
    PUT    /api/v1/projects/<id>/status            — workflow transition
    GET    /api/v1/projects/<id>/activity          — activity log, newest first
    POST   /api/v1/projects/<id>/contacts          — add client contact

    PUT    /api/v1/phases/<id>/status              — workflow transition
    GET    /api/v1/phases/<id>/stakeholders        — list stakeholders
    POST   /api/v1/phases/<id>/stakeholders        — add stakeholder
    GET    /api/v1/phases/<id>/completion          — all deliverables approved?

Status changes go through app.services.workflow_engine; everything else
through app.services.project_service.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.auth import current_role, current_user_id, require_auth, require_role
from app.blueprints import json_body, query_limit, register_error_handlers
from app.core.exceptions import ValidationError
from app.services import project_service, workflow_engine
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


def _load_project(pid, *, write=False):
    project = project_service.get_project(pid)
    project_service.ensure_project_access(project, current_user_id(), current_role(), write=write)
    return project


def _load_phase(phase_id, *, write=False):
    phase = project_service.get_phase(phase_id)
    project_service.ensure_project_access(
        phase.project, current_user_id(), current_role(), write=write,
    )
    return phase


def _body_date(data, field):
    try:
        return parse_date_input(data.get(field))
    except ValueError as exc:
        raise ValidationError(f"{field}: {exc}", {field: data.get(field)})


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
@require_auth
def list_projects():
    projects = project_service.list_projects(
        user_id=current_user_id(), role=current_role(),
        status=request.args.get("status"), pm_id=request.args.get("pm_id", type=int),
    )
    return jsonify([p.to_dict() for p in projects])


@project_bp.route("/projects", methods=["POST"])
@require_auth
@require_role("admin", "pm")
def create_project():
    project = project_service.create_project(
        json_body(), acting_user_id=current_user_id(), acting_role=current_role(),
    )
    return jsonify({
        "message": "Project created successfully",
        "project": project_service.get_project_detail(project),
    }), 201


@project_bp.route("/projects/<int:pid>", methods=["GET"])
@require_auth
def get_project(pid):
    project = _load_project(pid)
    return jsonify(project_service.get_project_detail(project))


@project_bp.route("/projects/<int:pid>", methods=["PUT"])
@require_auth
def update_project(pid):
    project = _load_project(pid, write=True)
    project = project_service.update_project(project, json_body(), acting_user_id=current_user_id())
    return jsonify({"message": "Project updated successfully", "project": project.to_dict()})


@project_bp.route("/projects/<int:pid>", methods=["DELETE"])
@require_auth
@require_role("admin")
def delete_project(pid):
    project = project_service.get_project(pid)
    project_service.delete_project(project)
    return jsonify({"message": "Project deleted successfully", "id": pid})


@project_bp.route("/projects/<int:pid>/status", methods=["PUT"])
@require_auth
def update_project_status(pid):
    """Body: { "status": "active" }"""
    data = json_body()
    status = data.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400
    if not isinstance(status, str):
        return jsonify({"error": "status must be a string"}), 400

    _load_project(pid, write=True)
    project = workflow_engine.transition_project_status(pid, status, current_user_id())
    return jsonify({"message": "Project status updated successfully", "project": project.to_dict()})


@project_bp.route("/projects/<int:pid>/activity", methods=["GET"])
@require_auth
def project_activity(pid):
    _load_project(pid)
    entries = workflow_engine.get_activity_log(pid, limit=query_limit(default=100))
    return jsonify([e.to_dict() for e in entries])


@project_bp.route("/projects/<int:pid>/contacts", methods=["POST"])
@require_auth
def add_contact(pid):
    project = _load_project(pid, write=True)
    contact = project_service.add_client_contact(project, json_body())
    return jsonify(contact.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# PHASES
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/phases/<int:phase_id>/status", methods=["PUT"])
@require_auth
def update_phase_status(phase_id):
    """
    Body: { "status": "in_progress", "actual_start_date"?: "YYYY-MM-DD",
            "actual_end_date"?: "YYYY-MM-DD" }

    The response carries the project status too, since completing the last
    phase completes the project.
    """
    data = json_body()
    status = data.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400
    if not isinstance(status, str):
        return jsonify({"error": "status must be a string"}), 400

    _load_phase(phase_id, write=True)
    phase = workflow_engine.progress_phase(
        phase_id, status, current_user_id(),
        actual_start_date=_body_date(data, "actual_start_date"),
        actual_end_date=_body_date(data, "actual_end_date"),
    )
    return jsonify({
        "message": "Phase status updated successfully",
        "phase": phase.to_dict(),
        "project_status": phase.project.status,
    })


@project_bp.route("/phases/<int:phase_id>/stakeholders", methods=["GET"])
@require_auth
def list_stakeholders(phase_id):
    phase = _load_phase(phase_id)
    return jsonify([s.to_dict() for s in project_service.list_phase_stakeholders(phase)])


@project_bp.route("/phases/<int:phase_id>/stakeholders", methods=["POST"])
@require_auth
def add_stakeholder(phase_id):
    """Body: { "user_id": 7, "role": "reviewer" }"""
    data = json_body()
    if data.get("user_id") is None:
        return jsonify({"error": "user_id is required"}), 400

    phase = _load_phase(phase_id, write=True)
    stakeholder = project_service.add_phase_stakeholder(phase, data["user_id"], data.get("role"))
    return jsonify(stakeholder.to_dict()), 201


@project_bp.route("/phases/<int:phase_id>/completion", methods=["GET"])
@require_auth
def phase_completion(phase_id):
    phase = _load_phase(phase_id)
    return jsonify({
        "phase_id": phase.id,
        "status": phase.status,
        "all_deliverables_approved": workflow_engine.check_phase_completion(phase.id),
    })
