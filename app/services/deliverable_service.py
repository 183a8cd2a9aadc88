"""Deliverable service layer.

Transaction policy: public write functions call db.session.commit() on success.

Provides:
- Deliverable CRUD with content versioning (every content change = new version)
- Status updates; approving the last open deliverable of an in-progress
  phase completes the phase through the workflow engine
- AI drafting through the LLM gateway
"""
import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func

from app.ai.assistants.deliverable_writer import DeliverableWriter
from app.ai.gateway import LLMGateway
from app.core.exceptions import (
    ConcurrentConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.activity import write_activity
from app.models.deliverable import DELIVERABLE_STATUSES, Deliverable, DeliverableVersion
from app.models.project import Phase
from app.models.user import User
from app.services import workflow_engine
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "content", "file_path", "assigned_to", "due_date")


# ── Helpers ──────────────────────────────────────────────────────────────


def _due_date(value):
    try:
        return parse_date_input(value)
    except ValueError as exc:
        raise ValidationError(f"due_date: {exc}", {"due_date": value})


def _check_assignee(user_id):
    if user_id is not None and not db.session.get(User, user_id):
        raise ValidationError("assigned_to does not reference an existing user",
                              {"assigned_to": user_id})


def next_version_number(deliverable_id):
    latest = (
        db.session.query(func.coalesce(func.max(DeliverableVersion.version_number), 0))
        .filter(DeliverableVersion.deliverable_id == deliverable_id)
        .scalar()
    )
    return latest + 1


def _add_version(deliverable, content, created_by, change_notes, file_path=None):
    version = DeliverableVersion(
        deliverable_id=deliverable.id,
        version_number=next_version_number(deliverable.id),
        content=content,
        file_path=file_path,
        created_by=created_by,
        change_notes=change_notes,
    )
    db.session.add(version)
    db.session.flush()
    return version


# ── Queries ──────────────────────────────────────────────────────────────


def get_deliverable(deliverable_id):
    deliverable = db.session.get(Deliverable, deliverable_id)
    if not deliverable:
        raise NotFoundError("Deliverable", deliverable_id)
    return deliverable


def list_for_project(project_id):
    """Deliverables of a project in phase order."""
    return (
        Deliverable.query
        .join(Phase, Deliverable.phase_id == Phase.id)
        .filter(Deliverable.project_id == project_id)
        .order_by(Phase.phase_order, Deliverable.created_at, Deliverable.id)
        .all()
    )


def list_for_user(user_id):
    """Deliverables assigned to a user, soonest due first, undated last."""
    return (
        Deliverable.query
        .filter(Deliverable.assigned_to == user_id)
        .order_by(
            Deliverable.due_date.is_(None),
            Deliverable.due_date,
            Deliverable.created_at.desc(),
        )
        .all()
    )


# ── Create / update / delete ─────────────────────────────────────────────


def required_id(data, field):
    value = data.get(field)
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None


def create_deliverable(data, *, acting_user_id):
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    project_id = required_id(data, "project_id")
    phase_id = required_id(data, "phase_id")

    phase = db.session.get(Phase, phase_id)
    if not phase:
        raise NotFoundError("Phase", phase_id)
    if phase.project_id != project_id:
        raise ValidationError("phase_id does not belong to project_id")
    _check_assignee(data.get("assigned_to"))

    deliverable = Deliverable(
        project_id=phase.project_id,
        phase_id=phase.id,
        name=name,
        description=data.get("description", ""),
        deliverable_type=data.get("deliverable_type"),
        assigned_to=data.get("assigned_to"),
        due_date=_due_date(data.get("due_date")),
        status="pending",
    )
    db.session.add(deliverable)
    db.session.flush()

    write_activity(
        project_id=phase.project_id,
        user_id=acting_user_id,
        activity_type="deliverable_created",
        description=f'Deliverable "{name}" created',
        metadata={"deliverable_id": deliverable.id, "phase_id": phase.id},
    )
    db.session.commit()
    return deliverable


def update_deliverable(deliverable, data, *, acting_user_id):
    """Update fields; a changed ``content`` records a new version first."""
    if "status" in data:
        raise ValidationError("status cannot be updated here; use the status endpoint")

    new_content = data.get("content")
    if new_content and new_content != deliverable.content:
        _add_version(
            deliverable, new_content, acting_user_id,
            data.get("change_notes") or "Updated content",
            file_path=data.get("file_path", deliverable.file_path),
        )

    changed = []
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "due_date":
            value = _due_date(value)
        elif field == "assigned_to":
            _check_assignee(value)
        elif field == "name" and not (value or "").strip():
            raise ValidationError("name cannot be empty")
        setattr(deliverable, field, value)
        changed.append(field)

    if not changed:
        raise ValidationError("No valid fields to update")

    write_activity(
        project_id=deliverable.project_id,
        user_id=acting_user_id,
        activity_type="deliverable_updated",
        description=f'Deliverable "{deliverable.name}" updated',
        metadata={"deliverable_id": deliverable.id, "fields": sorted(changed)},
    )
    db.session.commit()
    return deliverable


def delete_deliverable(deliverable):
    db.session.delete(deliverable)
    db.session.commit()


# ── Status ───────────────────────────────────────────────────────────────


def set_deliverable_status(deliverable, status, *, acting_user_id):
    """Change deliverable status and, on approval, try to close the phase.

    Returns:
        The deliverable. ``deliverable.phase.status`` reflects any
        phase completion that followed.
    """
    if status not in DELIVERABLE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(DELIVERABLE_STATUSES)}", {"status": status},
        )

    old_status = deliverable.status
    deliverable.status = status
    if status == "approved":
        deliverable.completed_at = datetime.now(timezone.utc)

    write_activity(
        project_id=deliverable.project_id,
        user_id=acting_user_id,
        activity_type="deliverable_updated",
        description=f'Deliverable "{deliverable.name}" status updated to {status}',
        metadata={"deliverable_id": deliverable.id, "from": old_status, "to": status},
    )
    db.session.commit()

    if status == "approved" and current_app.config.get("AUTO_COMPLETE_PHASES", True):
        _maybe_complete_phase(deliverable.phase_id, acting_user_id)
        db.session.refresh(deliverable)
    return deliverable


def _maybe_complete_phase(phase_id, acting_user_id):
    phase = db.session.get(Phase, phase_id)
    if phase is None or phase.status != "in_progress":
        return None
    if not workflow_engine.check_phase_completion(phase_id):
        return None
    try:
        return workflow_engine.progress_phase(phase_id, "completed", acting_user_id)
    except (InvalidTransitionError, ConcurrentConflictError) as exc:
        logger.info("Phase %s not auto-completed: %s", phase_id, exc)
        return None


# ── AI generation ────────────────────────────────────────────────────────


def generate_deliverable_content(deliverable, *, acting_user_id, gateway=None):
    """Draft content with the LLM, store it as a new version and move to review."""
    if deliverable.status == "approved":
        raise ValidationError("Approved deliverables cannot be regenerated")

    phase = deliverable.phase
    project = phase.project
    writer = DeliverableWriter(
        gateway=gateway or LLMGateway(current_app.config.get("LLM_DEFAULT_CHAT_MODEL")),
    )
    content = writer.generate(deliverable, project, phase, user=acting_user_id)

    deliverable.content = content
    deliverable.is_ai_generated = True
    deliverable.status = "review"
    _add_version(deliverable, content, acting_user_id, "AI-generated content")

    write_activity(
        project_id=project.id,
        user_id=acting_user_id,
        activity_type="deliverable_generated",
        description=f'Deliverable "{deliverable.name}" generated using AI',
        metadata={"deliverable_id": deliverable.id},
    )
    db.session.commit()
    logger.info("Deliverable %s drafted by AI (%d chars)", deliverable.id, len(content))
    return deliverable
