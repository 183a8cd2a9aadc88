"""
Project Delivery Platform
Workflow Engine.

Validates and executes project / phase status transitions and runs their
cascades. This module is the only writer of ``projects.status`` and
``project_phases.status``.

Transition shape (both entities):
    1. load              → NotFoundError
    2. validate edge     → InvalidTransitionError
    3. conditional write → ConcurrentConflictError when 0 rows match
    4. commit
    5. activity log      (best-effort)
    6. cascade           (notifications best-effort)

Cascade call depth is at most two:
    progress_phase(completed) → transition_project_status(completed)
The project cascade writes phase 1 directly and never re-enters
progress_phase.

Usage:
    from app.services.workflow_engine import transition_project_status

    project = transition_project_status(project_id, "active", acting_user_id=user.id)
"""

import logging
from datetime import date, datetime, timedelta, timezone

import sqlalchemy as sa
from flask import current_app

from app.core.exceptions import (
    ConcurrentConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from app.models import db
from app.models.activity import ActivityLog, write_activity
from app.models.deliverable import CLOSED_DELIVERABLE_STATUSES, Deliverable
from app.models.project import (
    Phase,
    PhaseStakeholder,
    Project,
    validate_phase_transition,
    validate_project_transition,
)
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_WARNING_DAYS = 3


# ═════════════════════════════════════════════════════════════════════════════
# Project transitions
# ═════════════════════════════════════════════════════════════════════════════


def transition_project_status(project_id, target_status, acting_user_id):
    """
    Move a project to *target_status* and run the project cascade.

    Returns:
        The refreshed Project.

    Raises:
        NotFoundError: project does not exist.
        InvalidTransitionError: edge not in PROJECT_TRANSITIONS.
        ConcurrentConflictError: status changed between read and write.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    old_status = project.status
    if not validate_project_transition(old_status, target_status):
        raise InvalidTransitionError("Project", old_status, target_status)

    _conditional_status_write(Project, "Project", project_id, old_status, target_status)
    db.session.commit()
    db.session.refresh(project)

    logger.info(
        "Project %s transitioned %s -> %s by user %s",
        project_id, old_status, target_status, acting_user_id,
    )
    _safe_log_activity(
        project_id, acting_user_id, "project_status_change",
        f"Project status changed from {old_status} to {target_status}",
        {"from": old_status, "to": target_status},
    )

    _run_project_cascade(project, target_status)
    return project


def _run_project_cascade(project, new_status):
    if new_status == "active":
        first_phase = Phase.query.filter_by(project_id=project.id, phase_order=1).first()
        if first_phase is not None and first_phase.status == "pending":
            if _start_pending_phase(first_phase.id):
                db.session.commit()
                db.session.refresh(first_phase)
        _notify(
            project.pm_id, "Project Activated",
            f"Project '{project.name}' is now active",
            "project_activated", project.id,
        )
    elif new_status == "completed":
        _notify_many(
            _project_stakeholder_ids(project.id), "Project Completed",
            f"Project '{project.name}' has been completed",
            "project_completed", project.id,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Phase transitions
# ═════════════════════════════════════════════════════════════════════════════


def progress_phase(phase_id, target_status, acting_user_id, *,
                   actual_start_date=None, actual_end_date=None):
    """
    Move a phase to *target_status* and run the phase cascade.

    ``actual_start_date`` / ``actual_end_date`` are stamped with today on the
    first entry into in_progress / completed. An explicitly supplied date is
    written as given.

    Raises:
        NotFoundError, InvalidTransitionError, ConcurrentConflictError
    """
    phase = db.session.get(Phase, phase_id)
    if phase is None:
        raise NotFoundError("Phase", phase_id)

    old_status = phase.status
    if not validate_phase_transition(old_status, target_status):
        raise InvalidTransitionError("Phase", old_status, target_status)

    extra = {}
    if target_status == "in_progress":
        extra["actual_start_date"] = (
            actual_start_date if actual_start_date is not None
            else sa.func.coalesce(Phase.actual_start_date, date.today())
        )
    elif target_status == "completed":
        extra["actual_end_date"] = (
            actual_end_date if actual_end_date is not None
            else sa.func.coalesce(Phase.actual_end_date, date.today())
        )

    _conditional_status_write(Phase, "Phase", phase_id, old_status, target_status, **extra)
    db.session.commit()
    db.session.refresh(phase)

    logger.info(
        "Phase %s (project %s) transitioned %s -> %s by user %s",
        phase_id, phase.project_id, old_status, target_status, acting_user_id,
    )
    _safe_log_activity(
        phase.project_id, acting_user_id, "phase_status_change",
        f"Phase '{phase.name}' status changed from {old_status} to {target_status}",
        {"phase_id": phase.id, "from": old_status, "to": target_status},
    )

    _run_phase_cascade(phase, target_status, acting_user_id)
    return phase


def _run_phase_cascade(phase, new_status, acting_user_id):
    if new_status == "completed":
        auto_progress_to_next_phase(phase.project_id, phase.phase_order)

        remaining = (
            Phase.query
            .filter(Phase.project_id == phase.project_id, Phase.status != "completed")
            .count()
        )
        if remaining == 0:
            try:
                transition_project_status(phase.project_id, "completed", acting_user_id)
            except (InvalidTransitionError, ConcurrentConflictError) as exc:
                logger.warning(
                    "Project %s not auto-completed after last phase: %s",
                    phase.project_id, exc,
                )
    elif new_status == "in_progress":
        project_name = phase.project.name if phase.project else ""
        _notify_many(
            _phase_stakeholder_ids(phase.id), "Phase In Progress",
            f"Phase '{phase.name}' of project '{project_name}' is now in progress",
            "phase_in_progress", phase.project_id,
        )


def auto_progress_to_next_phase(project_id, current_phase_order):
    """
    Start the phase that follows *current_phase_order* if it is pending.

    Returns:
        The started Phase, or None when there is no pending successor.
    """
    next_phase = Phase.query.filter_by(
        project_id=project_id,
        phase_order=current_phase_order + 1,
        status="pending",
    ).first()
    if next_phase is None:
        return None

    if not _start_pending_phase(next_phase.id):
        return None
    db.session.commit()
    db.session.refresh(next_phase)

    logger.info("Phase %s (order %s) auto-started for project %s",
                next_phase.id, next_phase.phase_order, project_id)

    project_name = next_phase.project.name if next_phase.project else ""
    _notify_many(
        _phase_stakeholder_ids(next_phase.id), "Phase Started",
        f"Phase '{next_phase.name}' of project '{project_name}' has started",
        "phase_start", project_id,
    )
    _safe_log_activity(
        project_id, None, "phase_auto_start",
        f"Phase '{next_phase.name}' started automatically",
        {"phase_id": next_phase.id, "phase_order": next_phase.phase_order},
    )
    return next_phase


def check_phase_completion(phase_id):
    """True iff the phase has deliverables and every one of them is approved."""
    total, approved = db.session.execute(
        sa.select(
            sa.func.count(Deliverable.id),
            sa.func.sum(sa.case((Deliverable.status == "approved", 1), else_=0)),
        ).where(Deliverable.phase_id == phase_id)
    ).one()
    return total > 0 and total == (approved or 0)


# ═════════════════════════════════════════════════════════════════════════════
# Deadline sweep
# ═════════════════════════════════════════════════════════════════════════════


def check_deadlines():
    """
    Notify owners of work due within the warning window.

    In-progress phases ending in the window notify the project PM;
    open deliverables due in the window notify their assignee.
    Every call re-notifies; no sent-state is kept.

    Returns:
        {"phases_notified": int, "deliverables_notified": int, "window_days": int}
    """
    window_days = current_app.config.get("DEADLINE_WARNING_DAYS", DEFAULT_DEADLINE_WARNING_DAYS)
    today = date.today()
    horizon = today + timedelta(days=window_days)

    phases = (
        Phase.query
        .join(Project, Phase.project_id == Project.id)
        .filter(
            Phase.status == "in_progress",
            Phase.end_date.isnot(None),
            Phase.end_date >= today,
            Phase.end_date <= horizon,
        )
        .order_by(Phase.end_date, Phase.id)
        .all()
    )
    phases_notified = 0
    for phase in phases:
        project = phase.project
        if project.pm_id is None:
            continue
        sent = _notify(
            project.pm_id, "Phase Deadline Approaching",
            f"Phase '{phase.name}' of project '{project.name}' is due on "
            f"{phase.end_date.isoformat()}",
            "deadline_warning", project.id,
        )
        phases_notified += sent is not None

    deliverables = (
        Deliverable.query
        .filter(
            Deliverable.status.notin_(CLOSED_DELIVERABLE_STATUSES),
            Deliverable.assigned_to.isnot(None),
            Deliverable.due_date.isnot(None),
            Deliverable.due_date >= today,
            Deliverable.due_date <= horizon,
        )
        .order_by(Deliverable.due_date, Deliverable.id)
        .all()
    )
    deliverables_notified = 0
    for deliverable in deliverables:
        sent = _notify(
            deliverable.assigned_to, "Deliverable Due Soon",
            f"Deliverable '{deliverable.name}' is due on {deliverable.due_date.isoformat()}",
            "deadline_warning", deliverable.project_id,
        )
        deliverables_notified += sent is not None

    logger.info(
        "Deadline sweep: %d phase and %d deliverable reminders (window %d days)",
        phases_notified, deliverables_notified, window_days,
    )
    return {
        "phases_notified": phases_notified,
        "deliverables_notified": deliverables_notified,
        "window_days": window_days,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Activity log
# ═════════════════════════════════════════════════════════════════════════════


def log_activity(project_id, user_id, activity_type, description, metadata=None):
    """Append and commit one activity row. Errors propagate to the caller."""
    entry = write_activity(
        project_id=project_id,
        user_id=user_id,
        activity_type=activity_type,
        description=description,
        metadata=metadata,
    )
    db.session.commit()
    return entry


def get_activity_log(project_id, limit=50):
    """Activity rows for a project, newest first."""
    return (
        ActivityLog.query
        .filter_by(project_id=project_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )


# ── Internals ────────────────────────────────────────────────────────────────


def _conditional_status_write(model, resource, entity_id, expected_status,
                              target_status, **values):
    """UPDATE … WHERE id = ? AND status = ?; zero rows → ConcurrentConflictError."""
    result = db.session.execute(
        sa.update(model)
        .where(model.id == entity_id, model.status == expected_status)
        .values(status=target_status, updated_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "%s %s status write lost race (expected %s, target %s)",
            resource, entity_id, expected_status, target_status,
        )
        raise ConcurrentConflictError(resource, entity_id, expected_status)


def _start_pending_phase(phase_id):
    """Direct pending → in_progress write. Returns False if the phase was no longer pending."""
    result = db.session.execute(
        sa.update(Phase)
        .where(Phase.id == phase_id, Phase.status == "pending")
        .values(
            status="in_progress",
            actual_start_date=sa.func.coalesce(Phase.actual_start_date, date.today()),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _phase_stakeholder_ids(phase_id):
    rows = (
        db.session.query(PhaseStakeholder.user_id)
        .filter(PhaseStakeholder.phase_id == phase_id)
        .order_by(PhaseStakeholder.user_id)
        .all()
    )
    return [r.user_id for r in rows]


def _project_stakeholder_ids(project_id):
    rows = (
        db.session.query(PhaseStakeholder.user_id)
        .join(Phase, PhaseStakeholder.phase_id == Phase.id)
        .filter(Phase.project_id == project_id)
        .distinct()
        .order_by(PhaseStakeholder.user_id)
        .all()
    )
    return [r.user_id for r in rows]


def _notify(user_id, title, message, notification_type, project_id):
    if user_id is None:
        return None
    try:
        return NotificationService.send(
            user_id, title, message, notification_type, related_project_id=project_id,
        )
    except Exception:
        db.session.rollback()
        logger.warning(
            "Notification failed user_id=%s type=%s project_id=%s",
            user_id, notification_type, project_id, exc_info=True,
        )
        return None


def _notify_many(user_ids, title, message, notification_type, project_id):
    try:
        return NotificationService.send_batch(
            user_ids, title, message, notification_type, related_project_id=project_id,
        )
    except Exception:
        db.session.rollback()
        logger.warning(
            "Notification fan-out failed type=%s project_id=%s",
            notification_type, project_id, exc_info=True,
        )
        return []


def _safe_log_activity(project_id, user_id, activity_type, description, metadata=None):
    """log_activity that never unwinds an already-committed transition."""
    try:
        return log_activity(project_id, user_id, activity_type, description, metadata)
    except Exception:
        db.session.rollback()
        logger.warning(
            "Activity log write failed project_id=%s type=%s",
            project_id, activity_type, exc_info=True,
        )
        return None
