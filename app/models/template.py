"""
Project Delivery Platform
Template domain model.

Models:
    - ProjectTemplate: reusable project blueprint (category, active flag)
    - TemplatePhase: ordered phase definition inside a template
    - TemplateDeliverable: standard deliverable expected in a template phase
"""

from datetime import datetime, timezone

from app.models import db


class ProjectTemplate(db.Model):
    __tablename__ = "project_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "TemplatePhase", backref="template", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TemplatePhase.phase_order",
    )
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self, include_phases=False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "creator_name": self.creator.full_name if self.creator else None,
            "phase_count": self.phases.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_phases:
            d["phases"] = [p.to_dict(include_deliverables=True) for p in self.phases]
        return d

    def __repr__(self):
        return f"<ProjectTemplate {self.id}: {self.name}>"


class TemplatePhase(db.Model):
    __tablename__ = "template_phases"
    __table_args__ = (
        db.UniqueConstraint("template_id", "phase_order", name="uq_template_phase_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    phase_order = db.Column(db.Integer, nullable=False)
    default_duration_days = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    deliverables = db.relationship(
        "TemplateDeliverable", backref="phase", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TemplateDeliverable.name",
    )

    def to_dict(self, include_deliverables=False) -> dict:
        d = {
            "id": self.id,
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "phase_order": self.phase_order,
            "default_duration_days": self.default_duration_days,
            "deliverable_count": self.deliverables.count(),
        }
        if include_deliverables:
            d["deliverables"] = [td.to_dict() for td in self.deliverables]
        return d

    def __repr__(self):
        return f"<TemplatePhase {self.id}: #{self.phase_order} {self.name}>"


class TemplateDeliverable(db.Model):
    __tablename__ = "template_deliverables"

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("template_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deliverable_type = db.Column(db.String(100), nullable=True)
    is_ai_generatable = db.Column(db.Boolean, nullable=False, default=False)
    template_content = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "name": self.name,
            "description": self.description,
            "deliverable_type": self.deliverable_type,
            "is_ai_generatable": self.is_ai_generatable,
            "template_content": self.template_content,
        }

    def __repr__(self):
        return f"<TemplateDeliverable {self.id}: {self.name}>"
