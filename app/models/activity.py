"""
Project Delivery Platform
Activity log domain model.

Models:
    - ActivityLog: immutable, append-only project activity trail.
"""

import json
from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = {
    # Workflow engine
    "project_status_change",
    "phase_status_change",
    "phase_auto_start",
    # CRUD
    "project_created",
    "project_updated",
    "deliverable_created",
    "deliverable_updated",
    "deliverable_generated",
}


class ActivityLog(db.Model):
    """
    Immutable project activity trail.

    One row per event. ``metadata_json`` carries structured context such as
    ``{"from": "draft", "to": "active"}`` for status changes.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_project_id", "project_id"),
        db.Index("ix_activity_logs_created_at", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="NULL for system-initiated events (e.g. phase auto-start)",
    )
    activity_type = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    metadata_json = db.Column(db.Text, default="{}")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def meta(self) -> dict:
        """Deserialise *metadata_json* to a Python dict."""
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "user_name": self.user.full_name if self.user else None,
            "activity_type": self.activity_type,
            "description": self.description,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.activity_type} on project {self.project_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    project_id: int,
    activity_type: str,
    description: str = "",
    user_id: int | None = None,
    metadata: dict | None = None,
) -> ActivityLog:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    log = ActivityLog(
        project_id=project_id,
        user_id=user_id,
        activity_type=activity_type,
        description=description,
        metadata_json=json.dumps(metadata or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
