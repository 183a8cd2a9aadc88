"""
Project Delivery Platform
Deliverable domain model.

Models:
    - Deliverable: work product expected within a project phase
    - DeliverableVersion: content snapshot, one row per content change
"""

from datetime import datetime, timezone

from app.models import db


DELIVERABLE_STATUSES = ("pending", "in_progress", "review", "approved", "rejected")
CLOSED_DELIVERABLE_STATUSES = ("approved", "rejected")


class Deliverable(db.Model):
    __tablename__ = "deliverables"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'in_progress', 'review', 'approved', 'rejected')",
            name="ck_deliverables_status",
        ),
        db.Index("ix_deliverables_project_id", "project_id"),
        db.Index("ix_deliverables_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_deliverable_id = db.Column(
        db.Integer, db.ForeignKey("template_deliverables.id", ondelete="SET NULL"), nullable=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deliverable_type = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="pending")
    is_ai_generated = db.Column(db.Boolean, nullable=False, default=False)
    content = db.Column(db.Text, nullable=True)
    file_path = db.Column(db.String(500), nullable=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    versions = db.relationship(
        "DeliverableVersion", backref="deliverable", lazy="dynamic",
        cascade="all, delete-orphan", order_by="DeliverableVersion.version_number.desc()",
    )
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    template_deliverable = db.relationship("TemplateDeliverable", foreign_keys=[template_deliverable_id])

    def to_dict(self, include_versions=False) -> dict:
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "phase_name": self.phase.name if self.phase else None,
            "template_deliverable_id": self.template_deliverable_id,
            "name": self.name,
            "description": self.description,
            "deliverable_type": self.deliverable_type,
            "status": self.status,
            "is_ai_generated": self.is_ai_generated,
            "content": self.content,
            "file_path": self.file_path,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assignee.full_name if self.assignee else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_versions:
            d["versions"] = [v.to_dict() for v in self.versions]
        return d

    def __repr__(self):
        return f"<Deliverable {self.id}: {self.name} [{self.status}]>"


class DeliverableVersion(db.Model):
    __tablename__ = "deliverable_versions"
    __table_args__ = (
        db.UniqueConstraint("deliverable_id", "version_number", name="uq_deliverable_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=True)
    file_path = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    change_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deliverable_id": self.deliverable_id,
            "version_number": self.version_number,
            "content": self.content,
            "file_path": self.file_path,
            "created_by": self.created_by,
            "creator_name": self.creator.full_name if self.creator else None,
            "change_notes": self.change_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
