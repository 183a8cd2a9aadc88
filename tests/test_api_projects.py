"""
Project & phase API tests.

Covers:
    1. Project creation from a template (phases, deliverables, contacts, plan)
    2. Visibility and write access (admin / owning PM / other roles)
    3. Descriptive updates and deletion
    4. Project status endpoint (cascade, 409 mapping)
    5. Phase status endpoint (explicit dates, project auto-completion)
    6. Stakeholders, completion check, contacts, activity feed
"""

from datetime import date

import pytest

from app.models import db
from app.models.activity import ActivityLog
from app.models.deliverable import Deliverable
from app.models.project import Project
from app.models.template import TemplatePhase


def _template_phase_ids(template):
    return [
        tp.id for tp in
        TemplatePhase.query.filter_by(template_id=template.id).order_by(TemplatePhase.phase_order)
    ]


def _create(client, headers, template, **overrides):
    payload = {"template_id": template.id, "name": "Acme Portal", "description": "Customer portal"}
    payload.update(overrides)
    return client.post("/api/v1/projects", json=payload, headers=headers)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateProject:

    def test_materialises_template(self, client, pm, auth_headers, make_template):
        template = make_template()

        res = _create(client, auth_headers(pm), template, contacts=[
            {"name": "Dana Client", "email": "dana@acme.test", "is_primary": True},
        ])

        assert res.status_code == 201
        project = res.get_json()["project"]
        assert project["status"] == "draft"
        assert project["pm_id"] == pm.id
        assert project["template_name"] == "Website Delivery"
        assert [p["name"] for p in project["phases"]] == ["Discovery", "Build", "Launch"]
        assert [p["phase_order"] for p in project["phases"]] == [1, 2, 3]
        assert {p["status"] for p in project["phases"]} == {"pending"}
        assert [p["deliverable_count"] for p in project["phases"]] == [1, 2, 1]
        assert project["contacts"][0]["name"] == "Dana Client"

        created = ActivityLog.query.filter_by(project_id=project["id"]).one()
        assert created.activity_type == "project_created"

    def test_phase_plan_and_stakeholders(self, client, pm, member, auth_headers, make_template):
        template = make_template()
        first_tp = _template_phase_ids(template)[0]

        res = _create(client, auth_headers(pm), template, phases=[{
            "template_phase_id": first_tp,
            "start_date": "2026-03-01",
            "end_date": "2026-03-20",
            "stakeholders": [{"user_id": member.id, "role": "reviewer"}],
        }])

        assert res.status_code == 201
        first = res.get_json()["project"]["phases"][0]
        assert first["start_date"] == "2026-03-01"
        assert first["end_date"] == "2026-03-20"

        stakeholders = client.get(f"/api/v1/phases/{first['id']}/stakeholders",
                                  headers=auth_headers(pm)).get_json()
        assert [s["user_id"] for s in stakeholders] == [member.id]

    def test_phase_plan_with_foreign_template_phase(self, client, pm, auth_headers, make_template):
        template = make_template()
        other = make_template(name="Other")

        res = _create(client, auth_headers(pm), template,
                      phases=[{"template_phase_id": _template_phase_ids(other)[0]}])

        assert res.status_code == 422
        assert Project.query.count() == 0

    def test_admin_assigns_pm(self, client, admin, pm, auth_headers, make_template):
        res = _create(client, auth_headers(admin), make_template(), pm_id=pm.id)
        assert res.status_code == 201
        assert res.get_json()["project"]["pm_id"] == pm.id

    def test_admin_must_name_pm(self, client, admin, auth_headers, make_template):
        res = _create(client, auth_headers(admin), make_template())
        assert res.status_code == 422

    def test_pm_cannot_create_for_another_pm(self, client, pm, other_pm, auth_headers, make_template):
        res = _create(client, auth_headers(pm), make_template(), pm_id=other_pm.id)
        assert res.status_code == 403

    def test_pm_id_must_be_a_manager(self, client, admin, member, auth_headers, make_template):
        res = _create(client, auth_headers(admin), make_template(), pm_id=member.id)
        assert res.status_code == 422

    @pytest.mark.parametrize("role_fixture", ["member", "client_user"])
    def test_other_roles_cannot_create(self, request, client, auth_headers, make_template,
                                       role_fixture):
        user = request.getfixturevalue(role_fixture)
        res = _create(client, auth_headers(user), make_template())
        assert res.status_code == 403

    def test_name_required(self, client, pm, auth_headers, make_template):
        res = _create(client, auth_headers(pm), make_template(), name="  ")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"

    def test_unknown_template(self, client, pm, auth_headers):
        res = client.post("/api/v1/projects", json={"template_id": 999, "name": "X"},
                          headers=auth_headers(pm))
        assert res.status_code == 404

    def test_end_before_start(self, client, pm, auth_headers, make_template):
        res = _create(client, auth_headers(pm), make_template(),
                      start_date="2026-05-01", end_date="2026-04-01")
        assert res.status_code == 422

    def test_bad_date_format(self, client, pm, auth_headers, make_template):
        res = _create(client, auth_headers(pm), make_template(), start_date="05/01/2026")
        assert res.status_code == 422

    def test_requires_token(self, client, make_template):
        res = client.post("/api/v1/projects", json={"template_id": 1, "name": "X"})
        assert res.status_code == 401


# ═════════════════════════════════════════════════════════════════════════════
# 2. Read access
# ═════════════════════════════════════════════════════════════════════════════


class TestProjectVisibility:

    def test_pm_lists_only_own_projects(self, client, pm, other_pm, auth_headers, make_project):
        make_project(pm, name="Mine")
        make_project(other_pm, name="Theirs")

        names = [p["name"] for p in client.get("/api/v1/projects", headers=auth_headers(pm)).get_json()]
        assert names == ["Mine"]

    def test_admin_lists_everything(self, client, admin, pm, other_pm, auth_headers, make_project):
        make_project(pm, name="Mine")
        make_project(other_pm, name="Theirs")

        res = client.get("/api/v1/projects", headers=auth_headers(admin))
        assert {p["name"] for p in res.get_json()} == {"Mine", "Theirs"}

    def test_status_filter(self, client, admin, pm, auth_headers, make_project):
        make_project(pm, name="Draft")
        make_project(pm, name="Live", status="active")

        res = client.get("/api/v1/projects?status=active", headers=auth_headers(admin))
        assert [p["name"] for p in res.get_json()] == ["Live"]

    def test_admin_pm_filter(self, client, admin, pm, other_pm, auth_headers, make_project):
        make_project(pm, name="Mine")
        make_project(other_pm, name="Theirs")

        res = client.get(f"/api/v1/projects?pm_id={other_pm.id}", headers=auth_headers(admin))
        assert [p["name"] for p in res.get_json()] == ["Theirs"]

    def test_unknown_status_filter(self, client, admin, auth_headers):
        res = client.get("/api/v1/projects?status=archived", headers=auth_headers(admin))
        assert res.status_code == 422

    def test_pm_cannot_read_foreign_project(self, client, pm, other_pm, auth_headers, make_project):
        project = make_project(other_pm)
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(pm))
        assert res.status_code == 403

    def test_member_reads_project_detail(self, client, pm, member, auth_headers, make_project):
        project = make_project(pm)
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(member))
        assert res.status_code == 200
        assert len(res.get_json()["phases"]) == 3

    def test_missing_project(self, client, admin, auth_headers):
        res = client.get("/api/v1/projects/4040", headers=auth_headers(admin))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Update / delete
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateDelete:

    def test_pm_updates_description(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}",
                         json={"name": "Renamed", "end_date": "2026-12-31"},
                         headers=auth_headers(pm))

        assert res.status_code == 200
        body = res.get_json()["project"]
        assert body["name"] == "Renamed"
        assert body["end_date"] == "2026-12-31"
        entry = ActivityLog.query.filter_by(project_id=project.id,
                                            activity_type="project_updated").one()
        assert entry.meta["fields"] == ["end_date", "name"]

    def test_status_is_not_writable_here(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}", json={"status": "active"},
                         headers=auth_headers(pm))
        assert res.status_code == 422
        assert db.session.get(Project, project.id).status == "draft"

    def test_member_cannot_update(self, client, pm, member, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}", json={"name": "x"},
                         headers=auth_headers(member))
        assert res.status_code == 403

    def test_empty_update(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}", json={"unknown": 1},
                         headers=auth_headers(pm))
        assert res.status_code == 422

    def test_only_admin_deletes(self, client, admin, pm, auth_headers, make_project):
        project = make_project(pm)

        assert client.delete(f"/api/v1/projects/{project.id}",
                             headers=auth_headers(pm)).status_code == 403
        assert client.delete(f"/api/v1/projects/{project.id}",
                             headers=auth_headers(admin)).status_code == 200
        assert client.get(f"/api/v1/projects/{project.id}",
                          headers=auth_headers(admin)).status_code == 404
        assert Deliverable.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# 4. Project status
# ═════════════════════════════════════════════════════════════════════════════


class TestProjectStatusEndpoint:

    def test_activate_starts_first_phase(self, client, pm, auth_headers, make_project):
        project = make_project(pm)

        res = client.put(f"/api/v1/projects/{project.id}/status", json={"status": "active"},
                         headers=auth_headers(pm))

        assert res.status_code == 200
        assert res.get_json()["project"]["status"] == "active"
        detail = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(pm)).get_json()
        assert [p["status"] for p in detail["phases"]] == ["in_progress", "pending", "pending"]
        assert detail["phases"][0]["actual_start_date"] == date.today().isoformat()

    def test_scenario_d_completed_project_rejects_reactivation(
        self, client, pm, auth_headers, make_project,
    ):
        project = make_project(pm, status="completed", phase_statuses=["completed"])

        res = client.put(f"/api/v1/projects/{project.id}/status", json={"status": "active"},
                         headers=auth_headers(pm))

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"] == {"current_status": "completed", "target_status": "active"}
        assert db.session.get(Project, project.id).status == "completed"

    def test_status_required(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}/status", json={},
                         headers=auth_headers(pm))
        assert res.status_code == 400

    @pytest.mark.parametrize("status", [["active"], {"x": 1}, 7])
    def test_non_string_status_rejected(self, client, pm, auth_headers, make_project, status):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}/status", json={"status": status},
                         headers=auth_headers(pm))
        assert res.status_code == 400
        assert db.session.get(Project, project.id).status == "draft"

    def test_member_cannot_transition(self, client, pm, member, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}/status", json={"status": "active"},
                         headers=auth_headers(member))
        assert res.status_code == 403

    def test_foreign_pm_cannot_transition(self, client, pm, other_pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}/status", json={"status": "cancelled"},
                         headers=auth_headers(other_pm))
        assert res.status_code == 403

    def test_unknown_project(self, client, admin, auth_headers):
        res = client.put("/api/v1/projects/777/status", json={"status": "active"},
                         headers=auth_headers(admin))
        assert res.status_code == 404

    def test_form_body_is_rejected(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.put(f"/api/v1/projects/{project.id}/status", data="status=active",
                         headers={**auth_headers(pm),
                                  "Content-Type": "application/x-www-form-urlencoded"})
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# 5. Phase status
# ═════════════════════════════════════════════════════════════════════════════


class TestPhaseStatusEndpoint:

    def test_completing_last_phase_completes_project(
        self, client, pm, auth_headers, make_project, phases_of,
    ):
        project = make_project(pm, status="active", phase_statuses=["completed", "in_progress"])
        last = phases_of(project)[1]

        res = client.put(f"/api/v1/phases/{last.id}/status", json={"status": "completed"},
                         headers=auth_headers(pm))

        assert res.status_code == 200
        body = res.get_json()
        assert body["phase"]["status"] == "completed"
        assert body["project_status"] == "completed"

    def test_completion_starts_next_phase(self, client, pm, auth_headers, make_project, phases_of):
        project = make_project(pm, status="active", phase_statuses=["in_progress", "pending"])
        first = phases_of(project)[0]

        res = client.put(f"/api/v1/phases/{first.id}/status", json={"status": "completed"},
                         headers=auth_headers(pm))

        assert res.get_json()["project_status"] == "active"
        assert [p.status for p in phases_of(project)] == ["completed", "in_progress"]

    def test_explicit_actual_start_date(self, client, pm, auth_headers, make_project, phases_of):
        project = make_project(pm, status="active", phase_statuses=["pending"])
        phase = phases_of(project)[0]

        res = client.put(f"/api/v1/phases/{phase.id}/status",
                         json={"status": "in_progress", "actual_start_date": "2026-02-02"},
                         headers=auth_headers(pm))

        assert res.get_json()["phase"]["actual_start_date"] == "2026-02-02"

    def test_bad_actual_date(self, client, pm, auth_headers, make_project, phases_of):
        project = make_project(pm, status="active", phase_statuses=["pending"])
        phase = phases_of(project)[0]

        res = client.put(f"/api/v1/phases/{phase.id}/status",
                         json={"status": "in_progress", "actual_start_date": "not-a-date"},
                         headers=auth_headers(pm))

        assert res.status_code == 422
        assert phases_of(project)[0].status == "pending"

    def test_pending_cannot_skip_to_completed(self, client, pm, auth_headers, make_project,
                                              phases_of):
        project = make_project(pm, status="active", phase_statuses=["pending"])
        phase = phases_of(project)[0]

        res = client.put(f"/api/v1/phases/{phase.id}/status", json={"status": "completed"},
                         headers=auth_headers(pm))

        assert res.status_code == 409
        assert res.get_json()["details"]["current_status"] == "pending"

    @pytest.mark.parametrize("status", [["in_progress"], {"x": 1}, 7])
    def test_non_string_status_rejected(self, client, pm, auth_headers, make_project,
                                        phases_of, status):
        project = make_project(pm, status="active", phase_statuses=["pending"])
        phase = phases_of(project)[0]
        res = client.put(f"/api/v1/phases/{phase.id}/status", json={"status": status},
                         headers=auth_headers(pm))
        assert res.status_code == 400
        assert phases_of(project)[0].status == "pending"

    def test_unknown_phase(self, client, admin, auth_headers):
        res = client.put("/api/v1/phases/999/status", json={"status": "in_progress"},
                         headers=auth_headers(admin))
        assert res.status_code == 404

    def test_member_cannot_transition_phase(self, client, pm, member, auth_headers,
                                            make_project, phases_of):
        project = make_project(pm, status="active", phase_statuses=["pending"])
        res = client.put(f"/api/v1/phases/{phases_of(project)[0].id}/status",
                         json={"status": "in_progress"}, headers=auth_headers(member))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# 6. Stakeholders / completion / contacts / activity
# ═════════════════════════════════════════════════════════════════════════════


class TestPhaseExtras:

    def test_add_and_list_stakeholders(self, client, pm, member, auth_headers, make_project,
                                       phases_of):
        phase = phases_of(make_project(pm))[0]
        url = f"/api/v1/phases/{phase.id}/stakeholders"

        res = client.post(url, json={"user_id": member.id, "role": "reviewer"},
                          headers=auth_headers(pm))
        assert res.status_code == 201
        assert res.get_json()["email"] == "member@example.com"

        listed = client.get(url, headers=auth_headers(pm)).get_json()
        assert [(s["user_id"], s["role"]) for s in listed] == [(member.id, "reviewer")]

    def test_duplicate_stakeholder(self, client, pm, member, auth_headers, make_project,
                                   phases_of, add_stakeholder):
        phase = phases_of(make_project(pm))[0]
        add_stakeholder(phase, member)

        res = client.post(f"/api/v1/phases/{phase.id}/stakeholders",
                          json={"user_id": member.id}, headers=auth_headers(pm))
        assert res.status_code == 409

    def test_stakeholder_validation(self, client, pm, auth_headers, make_project, phases_of):
        phase = phases_of(make_project(pm))[0]
        url = f"/api/v1/phases/{phase.id}/stakeholders"

        assert client.post(url, json={}, headers=auth_headers(pm)).status_code == 400
        assert client.post(url, json={"user_id": 9999}, headers=auth_headers(pm)).status_code == 422

    def test_completion_check(self, client, pm, auth_headers, make_project, phases_of):
        project = make_project(pm, status="active", phase_statuses=["in_progress"])
        phase = phases_of(project)[0]
        url = f"/api/v1/phases/{phase.id}/completion"

        assert client.get(url, headers=auth_headers(pm)).get_json()["all_deliverables_approved"] is False

        Deliverable.query.filter_by(phase_id=phase.id).update({"status": "approved"})
        db.session.commit()

        body = client.get(url, headers=auth_headers(pm)).get_json()
        assert body == {"phase_id": phase.id, "status": "in_progress",
                        "all_deliverables_approved": True}

    def test_add_contact(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.post(f"/api/v1/projects/{project.id}/contacts",
                          json={"name": "Sam Sponsor", "role": "Sponsor"},
                          headers=auth_headers(pm))
        assert res.status_code == 201
        assert res.get_json()["project_id"] == project.id

    def test_contact_name_required(self, client, pm, auth_headers, make_project):
        project = make_project(pm)
        res = client.post(f"/api/v1/projects/{project.id}/contacts", json={"email": "a@b.test"},
                          headers=auth_headers(pm))
        assert res.status_code == 422

    def test_activity_feed_newest_first(self, client, pm, auth_headers, make_project):
        project = make_project(pm, phase_statuses=["pending", "pending"])
        headers = auth_headers(pm)
        client.put(f"/api/v1/projects/{project.id}/status", json={"status": "active"},
                   headers=headers)
        client.put(f"/api/v1/projects/{project.id}/status", json={"status": "on_hold"},
                   headers=headers)

        feed = client.get(f"/api/v1/projects/{project.id}/activity", headers=headers).get_json()
        assert [e["metadata"]["to"] for e in feed] == ["on_hold", "active"]

        limited = client.get(f"/api/v1/projects/{project.id}/activity?limit=1",
                             headers=headers).get_json()
        assert len(limited) == 1
