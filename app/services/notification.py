"""
Project Delivery Platform
Notification Service.

Central sink for in-app (and, when SMTP is configured, email) notifications.

Delivery is best-effort: ``send`` never raises. A failed insert is rolled
back and logged; a failed email leaves the committed in-app row in place.
Callers (the workflow engine in particular) can therefore fan out to many
recipients without one failure aborting the rest.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func

from app.models import db
from app.models.notification import Notification
from app.models.user import User

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def send(user_id, title, message="", notification_type="system", related_project_id=None):
        """
        Deliver one notification to one user.

        Returns:
            The committed Notification, or None when delivery failed.
        """
        if user_id is None:
            logger.debug("Notification '%s' skipped: no recipient", title)
            return None

        try:
            notif = Notification(
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
                related_project_id=related_project_id,
            )
            db.session.add(notif)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.warning(
                "Notification delivery failed user_id=%s type=%s",
                user_id, notification_type, exc_info=True,
            )
            return None

        NotificationService._maybe_email(notif)
        return notif

    @staticmethod
    def send_batch(user_ids, title, message="", notification_type="system", related_project_id=None):
        """
        Send the same notification to several users, sequentially.

        Returns:
            List of Notification instances that were delivered.
        """
        delivered = []
        for uid in user_ids:
            try:
                notif = NotificationService.send(
                    uid, title, message, notification_type, related_project_id,
                )
            except Exception:
                db.session.rollback()
                logger.warning("Batch notification failed user_id=%s", uid, exc_info=True)
                continue
            if notif is not None:
                delivered.append(notif)
        return delivered

    @staticmethod
    def _maybe_email(notif):
        """Mirror the notification by email when SMTP is configured."""
        from app.services.email_service import EmailService

        if not EmailService.is_configured():
            return
        try:
            user = db.session.get(User, notif.user_id)
            if not user or not user.email:
                return
            EmailService.send_from_template(
                to_email=user.email,
                to_name=user.full_name,
                template_name="notification_alert",
                context={"title": notif.title, "message": notif.message},
                notification_type=notif.notification_type,
                notification_id=notif.id,
                project_id=notif.related_project_id,
            )
            db.session.commit()
        except Exception:
            logger.warning("Email notification failed notification_id=%s",
                           notif.id, exc_info=True)
            NotificationService._settle_failed_email()

    @staticmethod
    def _settle_failed_email():
        """Keep the failed EmailLog row when the session survived, else discard it."""
        try:
            if db.session.is_active:
                db.session.commit()
            else:
                db.session.rollback()
        except Exception:
            db.session.rollback()
            logger.warning("Could not record failed email", exc_info=True)

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50):
        """Retrieve notifications for a user, newest first."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def unread_count(user_id):
        return (
            db.session.query(func.count(Notification.id))
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .scalar()
        ) or 0

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read. Only the owner may do so."""
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all unread notifications for a user as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
