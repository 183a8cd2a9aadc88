"""
Scheduler tests — job registry, run recording, admin API, CLI commands.
"""

from datetime import date, timedelta
from unittest.mock import patch

from app.models import db
from app.models.notification import Notification
from app.models.scheduling import ScheduledJob
from app.services import workflow_engine
from app.services.scheduler_service import SchedulerService, get_registered_jobs


def _phase_due_soon(pm, make_project, phases_of):
    project = make_project(pm, status="active", phase_statuses=["in_progress"])
    phase = phases_of(project)[0]
    phase.end_date = date.today() + timedelta(days=1)
    db.session.commit()
    return project


class TestRegistry:

    def test_deadline_sweep_is_registered(self):
        assert "deadline_sweep" in get_registered_jobs()

    def test_ensure_jobs_registered_is_idempotent(self):
        created = SchedulerService.ensure_jobs_registered()
        assert [j.job_name for j in created] == ["deadline_sweep"]
        assert SchedulerService.ensure_jobs_registered() == []

        job = ScheduledJob.query.filter_by(job_name="deadline_sweep").one()
        assert job.schedule_config["hour"] == "8"


class TestRunJob:

    def test_success_records_run(self, pm, make_project, phases_of):
        _phase_due_soon(pm, make_project, phases_of)

        result = SchedulerService.run_job("deadline_sweep")

        assert result["status"] == "success"
        assert result["result"]["phases_notified"] == 1
        job = ScheduledJob.query.filter_by(job_name="deadline_sweep").one()
        assert job.run_count == 1
        assert job.last_run_status == "success"
        assert job.last_run_result["phases_notified"] == 1

    def test_failure_is_recorded_not_raised(self):
        with patch.object(workflow_engine, "check_deadlines", side_effect=RuntimeError("boom")):
            result = SchedulerService.run_job("deadline_sweep")

        assert result["status"] == "failed"
        assert result["error"] == "boom"
        job = ScheduledJob.query.filter_by(job_name="deadline_sweep").one()
        assert job.error_count == 1
        assert job.last_error == "boom"

    def test_unknown_job(self):
        result = SchedulerService.run_job("nope")
        assert result["status"] == "error"
        assert ScheduledJob.query.count() == 0


class TestSchedulerApi:

    def test_list_jobs(self, client, admin, auth_headers):
        res = client.get("/api/v1/scheduler/jobs", headers=auth_headers(admin))
        assert res.status_code == 200
        assert [j["job_name"] for j in res.get_json()] == ["deadline_sweep"]

    def test_trigger(self, client, admin, pm, auth_headers, make_project, phases_of):
        _phase_due_soon(pm, make_project, phases_of)

        res = client.post("/api/v1/scheduler/jobs/deadline_sweep/trigger",
                          headers=auth_headers(admin))

        assert res.status_code == 200
        assert res.get_json()["result"]["phases_notified"] == 1
        assert Notification.query.filter_by(user_id=pm.id,
                                             notification_type="deadline_warning").count() == 1

    def test_trigger_failure_is_500(self, client, admin, auth_headers):
        with patch.object(workflow_engine, "check_deadlines", side_effect=RuntimeError("boom")):
            res = client.post("/api/v1/scheduler/jobs/deadline_sweep/trigger",
                              headers=auth_headers(admin))
        assert res.status_code == 500
        assert res.get_json()["status"] == "failed"

    def test_trigger_unknown_job(self, client, admin, auth_headers):
        res = client.post("/api/v1/scheduler/jobs/nope/trigger", headers=auth_headers(admin))
        assert res.status_code == 404

    def test_admin_only(self, client, pm, auth_headers):
        assert client.get("/api/v1/scheduler/jobs", headers=auth_headers(pm)).status_code == 403
        res = client.post("/api/v1/scheduler/jobs/deadline_sweep/trigger",
                          headers=auth_headers(pm))
        assert res.status_code == 403


class TestCli:

    def test_check_deadlines(self, app, pm, make_project, phases_of):
        _phase_due_soon(pm, make_project, phases_of)

        result = app.test_cli_runner().invoke(args=["check-deadlines"])

        assert result.exit_code == 0
        assert "deadline_sweep: success" in result.output
        assert Notification.query.filter_by(notification_type="deadline_warning").count() == 1

    def test_run_job_unknown_exits_nonzero(self, app):
        result = app.test_cli_runner().invoke(args=["run-job", "nope"])
        assert result.exit_code == 1
        assert "Unknown job" in result.output
