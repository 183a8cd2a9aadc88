"""
Project Delivery Platform
Project domain model.

Models:
    - Project: delivery unit created from a template, owned by a PM
    - ClientContact: external contact attached to a project
    - Phase: ordered execution stage of a project (one per template phase)
    - PhaseStakeholder: user assigned to a phase, receives phase notifications

Lifecycle tables:
    PROJECT_TRANSITIONS and PHASE_TRANSITIONS are the only legal status
    edges. Status columns are written exclusively by
    app.services.workflow_engine.
"""

from datetime import datetime, timezone
from types import MappingProxyType

from app.models import db


# ── Status Registry ──────────────────────────────────────────────────────────

PROJECT_STATUSES = ("draft", "active", "on_hold", "completed", "cancelled")
PHASE_STATUSES = ("pending", "in_progress", "blocked", "completed")

PROJECT_TRANSITIONS = MappingProxyType({
    "draft":     frozenset({"active", "cancelled"}),
    "active":    frozenset({"on_hold", "completed", "cancelled"}),
    "on_hold":   frozenset({"active", "cancelled"}),
    "completed": frozenset(),   # terminal
    "cancelled": frozenset(),   # terminal
})

PHASE_TRANSITIONS = MappingProxyType({
    "pending":     frozenset({"in_progress"}),
    "in_progress": frozenset({"completed", "blocked"}),
    "blocked":     frozenset({"in_progress"}),
    "completed":   frozenset(),  # terminal
})


def is_legal(transitions, current_status, target_status):
    """Membership test against one edge table. Unknown statuses are never legal."""
    if not isinstance(target_status, str):
        return False
    return target_status in transitions.get(current_status, ())


def validate_project_transition(old_status, new_status):
    """Return True if Project status transition is valid."""
    return is_legal(PROJECT_TRANSITIONS, old_status, new_status)


def validate_phase_transition(old_status, new_status):
    """Return True if Phase status transition is valid."""
    return is_legal(PHASE_TRANSITIONS, old_status, new_status)


# ── Models ───────────────────────────────────────────────────────────────────


class Project(db.Model):
    """Delivery unit instantiated from a ProjectTemplate."""

    __tablename__ = "projects"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft', 'active', 'on_hold', 'completed', 'cancelled')",
            name="ck_projects_status",
        ),
        db.Index("ix_projects_pm_id", "pm_id"),
        db.Index("ix_projects_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="SET NULL"), nullable=True,
        comment="Origin template; immutable after creation",
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    pm_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="draft")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "Phase", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Phase.phase_order",
    )
    contacts = db.relationship(
        "ClientContact", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    pm = db.relationship("User", foreign_keys=[pm_id])
    template = db.relationship("ProjectTemplate", foreign_keys=[template_id])

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "template_id": self.template_id,
            "template_name": self.template.name if self.template else None,
            "name": self.name,
            "description": self.description,
            "pm_id": self.pm_id,
            "pm_name": self.pm.full_name if self.pm else None,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name} [{self.status}]>"


class ClientContact(db.Model):
    __tablename__ = "client_contacts"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(db.String(100), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_primary": self.is_primary,
        }


class Phase(db.Model):
    """
    Project phase instance.

    phase_order is 1-based and unique within a project. actual_start_date /
    actual_end_date are stamped on first entry into in_progress / completed.
    """

    __tablename__ = "project_phases"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase_order", name="uq_project_phase_order"),
        db.CheckConstraint(
            "status IN ('pending', 'in_progress', 'blocked', 'completed')",
            name="ck_project_phases_status",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_phase_id = db.Column(
        db.Integer, db.ForeignKey("template_phases.id", ondelete="SET NULL"), nullable=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    phase_order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(50), nullable=False, default="pending")
    start_date = db.Column(db.Date, nullable=True, comment="Planned start")
    end_date = db.Column(db.Date, nullable=True, comment="Planned end; drives deadline sweep")
    actual_start_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    stakeholders = db.relationship(
        "PhaseStakeholder", backref="phase", lazy="dynamic", cascade="all, delete-orphan",
    )
    deliverables = db.relationship(
        "Deliverable", backref="phase", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Deliverable.created_at",
    )

    def to_dict(self, include_deliverables=False) -> dict:
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "template_phase_id": self.template_phase_id,
            "name": self.name,
            "description": self.description,
            "phase_order": self.phase_order,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "actual_start_date": self.actual_start_date.isoformat() if self.actual_start_date else None,
            "actual_end_date": self.actual_end_date.isoformat() if self.actual_end_date else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_deliverables:
            items = self.deliverables.all()
            d["deliverables"] = [x.to_dict() for x in items]
            d["deliverable_count"] = len(items)
            d["approved_count"] = sum(1 for x in items if x.status == "approved")
        return d

    def __repr__(self) -> str:
        return f"<Phase {self.id}: #{self.phase_order} {self.name} [{self.status}]>"


class PhaseStakeholder(db.Model):
    __tablename__ = "phase_stakeholders"
    __table_args__ = (
        db.UniqueConstraint("phase_id", "user_id", name="uq_phase_stakeholder"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "user_id": self.user_id,
            "role": self.role,
            "first_name": self.user.first_name if self.user else None,
            "last_name": self.user.last_name if self.user else None,
            "email": self.user.email if self.user else None,
        }
