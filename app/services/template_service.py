"""Template service layer — reusable project blueprints.

Transaction policy: public functions call db.session.commit() on success,
except initialize_project_from_template which only flushes (it runs inside
project creation).

Provides:
- Template list / detail / nested create (phases + deliverables)
- Project initialisation: one pending Phase per template phase, one pending
  Deliverable per template deliverable
"""
import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.deliverable import Deliverable
from app.models.project import Phase
from app.models.template import ProjectTemplate, TemplateDeliverable, TemplatePhase

logger = logging.getLogger(__name__)


# ── Queries ──────────────────────────────────────────────────────────────


def list_templates():
    """Active templates, newest first."""
    return (
        ProjectTemplate.query
        .filter_by(is_active=True)
        .order_by(ProjectTemplate.created_at.desc(), ProjectTemplate.id.desc())
        .all()
    )


def get_template(template_id):
    template = db.session.get(ProjectTemplate, template_id)
    if not template:
        raise NotFoundError("Template", template_id)
    return template


# ── Create ───────────────────────────────────────────────────────────────


def _validate_phases(phases):
    orders = []
    for idx, phase in enumerate(phases):
        if not (phase.get("name") or "").strip():
            raise ValidationError(f"phases[{idx}].name is required")
        order = phase.get("phase_order")
        if not isinstance(order, int) or isinstance(order, bool) or order < 1:
            raise ValidationError(
                f"phases[{idx}].phase_order must be a positive integer",
                {"phase_order": order},
            )
        orders.append(order)
        for d_idx, deliverable in enumerate(phase.get("deliverables") or []):
            if not (deliverable.get("name") or "").strip():
                raise ValidationError(f"phases[{idx}].deliverables[{d_idx}].name is required")
    if len(orders) != len(set(orders)):
        raise ValidationError("phase_order values must be unique within a template")


def create_template(data, created_by):
    """Create a template with nested phases and deliverables.

    Expected shape::

        {"name": ..., "description": ..., "category": ...,
         "phases": [{"name": ..., "phase_order": 1, "default_duration_days": 10,
                     "deliverables": [{"name": ..., "deliverable_type": ...,
                                       "is_ai_generatable": true,
                                       "template_content": ...}]}]}
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    phases = data.get("phases") or []
    _validate_phases(phases)

    template = ProjectTemplate(
        name=name,
        description=data.get("description", ""),
        category=data.get("category"),
        created_by=created_by,
    )
    db.session.add(template)
    db.session.flush()

    for phase_data in phases:
        phase = TemplatePhase(
            template_id=template.id,
            name=phase_data["name"].strip(),
            description=phase_data.get("description", ""),
            phase_order=phase_data["phase_order"],
            default_duration_days=phase_data.get("default_duration_days"),
        )
        db.session.add(phase)
        db.session.flush()
        for d in phase_data.get("deliverables") or []:
            db.session.add(TemplateDeliverable(
                phase_id=phase.id,
                name=d["name"].strip(),
                description=d.get("description", ""),
                deliverable_type=d.get("deliverable_type"),
                is_ai_generatable=bool(d.get("is_ai_generatable", False)),
                template_content=d.get("template_content"),
            ))

    db.session.commit()
    logger.info("Template created id=%s phases=%d", template.id, len(phases))
    return template


# ── Project initialisation ───────────────────────────────────────────────


def initialize_project_from_template(template_id, project_id):
    """Materialise the template's phases and deliverables for a project.

    Returns:
        List of created Phase instances (flushed, not committed).
    """
    template = get_template(template_id)
    created = []
    for tp in template.phases:
        phase = Phase(
            project_id=project_id,
            template_phase_id=tp.id,
            name=tp.name,
            description=tp.description,
            phase_order=tp.phase_order,
            status="pending",
        )
        db.session.add(phase)
        db.session.flush()
        created.append(phase)

        for td in tp.deliverables:
            db.session.add(Deliverable(
                project_id=project_id,
                phase_id=phase.id,
                template_deliverable_id=td.id,
                name=td.name,
                description=td.description,
                deliverable_type=td.deliverable_type,
                status="pending",
            ))
    db.session.flush()
    return created
