"""
Project Delivery Platform
Notification & Scheduling Blueprint.

Provides:
    - In-app notifications of the current user (list, unread count, mark read)
    - Scheduled job management (list, manual trigger) for admins
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.auth import current_user_id, require_auth, require_role
from app.blueprints import query_limit, register_error_handlers
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService, get_registered_jobs

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS (current user)
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_auth
def list_notifications():
    """Newest first. Query params: unread_only=true, limit (default 50)."""
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    notifications = NotificationService.list_for_user(
        current_user_id(), unread_only=unread_only, limit=query_limit(),
    )
    return jsonify([n.to_dict() for n in notifications])


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_auth
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_user_id())})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_auth
def mark_read(nid):
    notif = NotificationService.mark_read(nid, current_user_id())
    if not notif:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_auth
def mark_all_read():
    count = NotificationService.mark_all_read(current_user_id())
    return jsonify({"marked_read": count})


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS (admin)
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
@require_auth
@require_role("admin")
def list_jobs():
    return jsonify(SchedulerService.list_jobs())


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
@require_auth
@require_role("admin")
def trigger_job(job_name):
    """Run a registered job now and return its run record."""
    if job_name not in get_registered_jobs():
        return jsonify({"error": f"Unknown job: {job_name}"}), 404

    logger.info("Job %s triggered manually by user %s", job_name, current_user_id(),
                extra={"job_name": job_name})
    result = SchedulerService.run_job(job_name)
    status_code = 200 if result["status"] == "success" else 500
    return jsonify(result), status_code
