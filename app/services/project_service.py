"""Project CRUD service with PM ownership checks.

Transaction policy: public write functions call db.session.commit() on
success. Status changes are not handled here; they go through
app.services.workflow_engine.

Provides:
- Project create (template initialisation, contacts, phase plan, stakeholders)
- List / detail / update / delete
- Client contacts and phase stakeholders
- Access checks: admin sees everything, a PM only their own projects
"""

from __future__ import annotations

import logging

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import db
from app.models.activity import write_activity
from app.models.project import PROJECT_STATUSES, ClientContact, Phase, PhaseStakeholder, Project
from app.models.user import User
from app.services.template_service import get_template, initialize_project_from_template
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "start_date", "end_date")
_DATE_FIELDS = ("start_date", "end_date")


# ── Access ───────────────────────────────────────────────────────────────


def ensure_project_access(project: Project, user_id: int, role: str, *, write: bool = False) -> None:
    """Raise PermissionDeniedError unless the caller may see (or change) *project*."""
    if role == "admin":
        return
    if role == "pm":
        if project.pm_id != user_id:
            raise PermissionDeniedError("Access denied")
        return
    if write:
        raise PermissionDeniedError("Only the project manager or an admin can change this project")


# ── Helpers ──────────────────────────────────────────────────────────────


def _date(data: dict, field: str):
    try:
        return parse_date_input(data.get(field))
    except ValueError as exc:
        raise ValidationError(f"{field}: {exc}", {field: data.get(field)})


def _check_date_order(start, end, label="end_date"):
    if start and end and end < start:
        raise ValidationError(f"{label} must not be before start date")


def _require_user(user_id, field="user_id") -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if not user:
        raise ValidationError(f"{field} does not reference an existing user", {field: user_id})
    return user


# ── Queries ──────────────────────────────────────────────────────────────


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", project_id)
    return project


def get_phase(phase_id: int) -> Phase:
    phase = db.session.get(Phase, phase_id)
    if not phase:
        raise NotFoundError("Phase", phase_id)
    return phase


def list_projects(*, user_id: int, role: str, status: str | None = None,
                  pm_id: int | None = None) -> list[Project]:
    """Projects visible to the caller, newest first. PMs only see their own."""
    q = Project.query
    if role == "pm":
        q = q.filter(Project.pm_id == user_id)
    elif pm_id is not None:
        q = q.filter(Project.pm_id == pm_id)
    if status:
        if status not in PROJECT_STATUSES:
            raise ValidationError(f"Unknown status: {status}")
        q = q.filter(Project.status == status)
    return q.order_by(Project.created_at.desc(), Project.id.desc()).all()


def get_project_detail(project: Project) -> dict:
    """Project with ordered phases (deliverables + counts) and contacts."""
    data = project.to_dict()
    data["phases"] = [p.to_dict(include_deliverables=True) for p in project.phases]
    data["contacts"] = [
        c.to_dict()
        for c in project.contacts.order_by(ClientContact.is_primary.desc(), ClientContact.name)
    ]
    return data


# ── Create / update / delete ─────────────────────────────────────────────


def create_project(data: dict, *, acting_user_id: int, acting_role: str) -> Project:
    """Create a draft project from a template.

    Expected shape::

        {"template_id": 1, "name": "...", "description": "...", "pm_id": 3,
         "start_date": "2026-01-05", "end_date": "2026-06-30",
         "contacts": [{"name": "...", "email": "...", "is_primary": true}],
         "phases": [{"template_phase_id": 4, "start_date": ..., "end_date": ...,
                     "stakeholders": [{"user_id": 7, "role": "reviewer"}]}]}
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    if data.get("template_id") is None:
        raise ValidationError("template_id is required")

    template = get_template(data["template_id"])

    pm_id = data.get("pm_id")
    if pm_id is None and acting_role == "pm":
        pm_id = acting_user_id
    if pm_id is None:
        raise ValidationError("pm_id is required")
    if acting_role == "pm" and pm_id != acting_user_id:
        raise PermissionDeniedError("A project manager can only create their own projects")
    pm = _require_user(pm_id, "pm_id")
    if pm.role not in ("pm", "admin"):
        raise ValidationError("pm_id must reference a project manager", {"pm_id": pm_id})

    start, end = _date(data, "start_date"), _date(data, "end_date")
    _check_date_order(start, end)

    project = Project(
        template_id=template.id,
        name=name,
        description=data.get("description", ""),
        pm_id=pm_id,
        status="draft",
        start_date=start,
        end_date=end,
    )
    db.session.add(project)
    db.session.flush()

    phases = initialize_project_from_template(template.id, project.id)

    for contact in data.get("contacts") or []:
        _add_contact(project, contact)

    by_template_phase = {p.template_phase_id: p for p in phases}
    for plan in data.get("phases") or []:
        phase = by_template_phase.get(plan.get("template_phase_id"))
        if phase is None:
            raise ValidationError(
                "phases[].template_phase_id does not belong to the template",
                {"template_phase_id": plan.get("template_phase_id")},
            )
        phase.start_date = _date(plan, "start_date")
        phase.end_date = _date(plan, "end_date")
        _check_date_order(phase.start_date, phase.end_date, f"Phase '{phase.name}' end_date")
        for sh in plan.get("stakeholders") or []:
            _add_stakeholder(phase, sh.get("user_id"), sh.get("role"))

    write_activity(
        project_id=project.id,
        user_id=acting_user_id,
        activity_type="project_created",
        description=f'Project "{name}" created',
        metadata={"template_id": template.id, "phase_count": len(phases)},
    )
    db.session.commit()
    logger.info("Project created id=%s template=%s phases=%d", project.id, template.id, len(phases))
    return project


def update_project(project: Project, data: dict, *, acting_user_id: int) -> Project:
    """Update descriptive fields. Status is rejected; it moves only through the workflow engine."""
    if "status" in data:
        raise ValidationError("status cannot be updated here; use the status endpoint")

    changed = {}
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = _date(data, field) if field in _DATE_FIELDS else data[field]
        if field == "name" and not (value or "").strip():
            raise ValidationError("name cannot be empty")
        setattr(project, field, value)
        changed[field] = value

    if not changed:
        raise ValidationError("No valid fields to update")
    _check_date_order(project.start_date, project.end_date)

    write_activity(
        project_id=project.id,
        user_id=acting_user_id,
        activity_type="project_updated",
        description="Project details updated",
        metadata={"fields": sorted(changed)},
    )
    db.session.commit()
    return project


def delete_project(project: Project) -> None:
    db.session.delete(project)
    db.session.commit()
    logger.info("Project deleted id=%s", project.id)


# ── Contacts / stakeholders ──────────────────────────────────────────────


def _add_contact(project: Project, data: dict) -> ClientContact:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("contact name is required")
    contact = ClientContact(
        project_id=project.id,
        name=name,
        email=data.get("email"),
        phone=data.get("phone"),
        role=data.get("role"),
        is_primary=bool(data.get("is_primary", False)),
    )
    db.session.add(contact)
    return contact


def add_client_contact(project: Project, data: dict) -> ClientContact:
    contact = _add_contact(project, data)
    db.session.commit()
    return contact


def _add_stakeholder(phase: Phase, user_id, role) -> PhaseStakeholder:
    _require_user(user_id)
    exists = PhaseStakeholder.query.filter_by(phase_id=phase.id, user_id=user_id).first()
    if exists:
        raise ConflictError("PhaseStakeholder", "user_id", str(user_id))
    stakeholder = PhaseStakeholder(phase_id=phase.id, user_id=user_id, role=role)
    db.session.add(stakeholder)
    db.session.flush()
    return stakeholder


def add_phase_stakeholder(phase: Phase, user_id: int, role: str | None = None) -> PhaseStakeholder:
    stakeholder = _add_stakeholder(phase, user_id, role)
    db.session.commit()
    return stakeholder


def list_phase_stakeholders(phase: Phase) -> list[PhaseStakeholder]:
    return phase.stakeholders.order_by(PhaseStakeholder.id).all()
