"""
Notification tests.

Covers:
    1. NotificationService.send / send_batch (best-effort delivery)
    2. Email mirroring when SMTP is configured
    3. Read tracking
    4. Notification API (current user only)
"""

import smtplib
from unittest.mock import patch

import pytest

from app.models import db
from app.models.notification import Notification
from app.models.scheduling import EmailLog
from app.services.email_service import EmailService
from app.services.notification import NotificationService


# ═════════════════════════════════════════════════════════════════════════════
# 1. Sending
# ═════════════════════════════════════════════════════════════════════════════


class TestSend:

    def test_send_persists_unread(self, member, make_project, pm):
        project = make_project(pm)
        notif = NotificationService.send(member.id, "Heads up", "Body", "system",
                                         related_project_id=project.id)

        assert notif.id is not None
        assert notif.is_read is False
        assert notif.to_dict()["project_name"] == "Acme Rollout"

    def test_no_recipient_is_a_no_op(self):
        assert NotificationService.send(None, "Nobody") is None
        assert Notification.query.count() == 0

    def test_failed_insert_returns_none(self, member):
        assert NotificationService.send(55555, "Ghost") is None
        # the session is usable again after the failure
        assert NotificationService.send(member.id, "Real") is not None

    def test_batch_skips_failures(self, member, other_member):
        delivered = NotificationService.send_batch(
            [member.id, 55555, other_member.id], "Batch", "x",
        )
        assert [n.user_id for n in delivered] == [member.id, other_member.id]


# ═════════════════════════════════════════════════════════════════════════════
# 2. Email mirroring
# ═════════════════════════════════════════════════════════════════════════════


class TestEmailMirror:

    def test_no_email_without_smtp(self, member):
        NotificationService.send(member.id, "In-app only")
        assert EmailLog.query.count() == 0

    def test_email_sent_when_configured(self, app, monkeypatch, member):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.test")

        with patch.object(EmailService, "_send_smtp") as smtp:
            notif = NotificationService.send(member.id, "Phase Started", "<b>Build</b>",
                                             "phase_start")

        smtp.assert_called_once()
        assert "&lt;b&gt;Build&lt;/b&gt;" in smtp.call_args.kwargs["html_body"]
        log = EmailLog.query.one()
        assert log.status == "sent"
        assert log.recipient_email == "member@example.com"
        assert log.subject == "[Project Delivery] Phase Started"
        assert log.notification_id == notif.id

    def test_smtp_failure_keeps_notification(self, app, monkeypatch, member):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.test")

        with patch.object(EmailService, "_send_smtp",
                          side_effect=smtplib.SMTPException("relay denied")):
            notif = NotificationService.send(member.id, "Still delivered")

        assert notif is not None
        assert Notification.query.count() == 1
        log = EmailLog.query.one()
        assert log.status == "failed"
        assert "relay denied" in log.error_message

    def test_email_log_write_failure_does_not_escape(self, app, monkeypatch, member,
                                                     other_member):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.test")

        def broken_log(**kwargs):
            db.session.add(EmailLog(recipient_email=None, subject="unsendable"))
            db.session.flush()

        with patch.object(EmailService, "send_from_template", side_effect=broken_log):
            notif = NotificationService.send(member.id, "Still delivered")

        assert notif is not None
        assert Notification.query.filter_by(user_id=member.id).count() == 1
        assert EmailLog.query.count() == 0
        # the session is usable again for the next recipient
        monkeypatch.setitem(app.config, "MAIL_SERVER", None)
        assert NotificationService.send(other_member.id, "Next") is not None

    def test_dev_mode_send_logs_only(self, member):
        log = EmailService.send_from_template(
            to_email="member@example.com", template_name="notification_alert",
            context={"title": "Hi", "message": "There"},
        )
        assert log.status == "sent"
        assert log.sent_at is not None

    def test_unknown_template(self):
        assert EmailService.send_from_template(
            to_email="x@example.com", template_name="missing", context={},
        ) is None


# ═════════════════════════════════════════════════════════════════════════════
# 3. Read tracking
# ═════════════════════════════════════════════════════════════════════════════


class TestReadTracking:

    def test_unread_count_and_mark_all(self, member, other_member):
        for i in range(3):
            NotificationService.send(member.id, f"N{i}")
        NotificationService.send(other_member.id, "Other")

        assert NotificationService.unread_count(member.id) == 3
        assert NotificationService.mark_all_read(member.id) == 3
        assert NotificationService.unread_count(member.id) == 0
        assert NotificationService.unread_count(other_member.id) == 1

    def test_mark_read_only_for_owner(self, member, other_member):
        notif = NotificationService.send(member.id, "Mine")

        assert NotificationService.mark_read(notif.id, other_member.id) is None
        marked = NotificationService.mark_read(notif.id, member.id)
        assert marked.is_read is True
        assert marked.read_at is not None


# ═════════════════════════════════════════════════════════════════════════════
# 4. API
# ═════════════════════════════════════════════════════════════════════════════


class TestNotificationApi:

    @pytest.fixture()
    def inbox(self, member, other_member):
        ids = [NotificationService.send(member.id, f"N{i}").id for i in range(3)]
        NotificationService.send(other_member.id, "Not yours")
        return ids

    def test_list_own_newest_first(self, client, member, auth_headers, inbox):
        res = client.get("/api/v1/notifications", headers=auth_headers(member))
        assert [n["id"] for n in res.get_json()] == list(reversed(inbox))

    def test_unread_only_and_limit(self, client, member, auth_headers, inbox):
        NotificationService.mark_read(inbox[0], member.id)
        headers = auth_headers(member)

        unread = client.get("/api/v1/notifications?unread_only=true", headers=headers).get_json()
        assert {n["id"] for n in unread} == set(inbox[1:])
        limited = client.get("/api/v1/notifications?limit=1", headers=headers).get_json()
        assert len(limited) == 1

    def test_unread_count(self, client, member, auth_headers, inbox):
        res = client.get("/api/v1/notifications/unread-count", headers=auth_headers(member))
        assert res.get_json() == {"unread_count": 3}

    def test_mark_read(self, client, member, other_member, auth_headers, inbox):
        url = f"/api/v1/notifications/{inbox[0]}/read"

        assert client.post(url, headers=auth_headers(other_member)).status_code == 404
        res = client.post(url, headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

    def test_read_all(self, client, member, auth_headers, inbox):
        res = client.post("/api/v1/notifications/read-all", headers=auth_headers(member))
        assert res.get_json() == {"marked_read": 3}
        assert db.session.query(Notification).filter_by(is_read=False).count() == 1

    def test_requires_token(self, client):
        assert client.get("/api/v1/notifications").status_code == 401
