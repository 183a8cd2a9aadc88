"""
Shared pytest fixtures for the Project Delivery Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / pm / member / other_member / client_user: pre-created users
    - auth_headers: factory building a Bearer header for a user
    - make_user / make_template / make_project / add_stakeholder / phases_of:
      ORM factories (DB-level, bypass the API to set arbitrary states)
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.deliverable import Deliverable
from app.models.project import Phase, PhaseStakeholder, Project
from app.models.template import ProjectTemplate, TemplateDeliverable, TemplatePhase
from app.models.user import User
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password

DEFAULT_PASSWORD = "Passw0rd!123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(email, role="team_member", first_name="Test", last_name="User"):
    """Create and commit a User with the default password."""
    user = User(
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return _make_user("admin@example.com", role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture()
def pm():
    return _make_user("pm@example.com", role="pm", first_name="Pat", last_name="Manager")


@pytest.fixture()
def other_pm():
    return _make_user("pm2@example.com", role="pm", first_name="Quinn", last_name="Other")


@pytest.fixture()
def member():
    return _make_user("member@example.com", first_name="Mo", last_name="Member")


@pytest.fixture()
def other_member():
    return _make_user("member2@example.com", first_name="Noor", last_name="Member")


@pytest.fixture()
def client_user():
    return _make_user("client@example.com", role="client", first_name="Cli", last_name="Ent")


@pytest.fixture()
def auth_headers():
    """Factory: ``auth_headers(user)`` → Authorization header dict."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _headers


# ── Templates & projects (ORM factories) ─────────────────────────────────


def _make_template(name="Website Delivery", phases=None, created_by=None):
    """Create a template; *phases* is a list of (name, [deliverable names])."""
    if phases is None:
        phases = [
            ("Discovery", ["Requirements Document"]),
            ("Build", ["Implementation Plan", "Test Report"]),
            ("Launch", ["Go-Live Checklist"]),
        ]
    template = ProjectTemplate(name=name, description=f"{name} template", created_by=created_by)
    _db.session.add(template)
    _db.session.flush()
    for order, (phase_name, deliverables) in enumerate(phases, start=1):
        tp = TemplatePhase(template_id=template.id, name=phase_name, phase_order=order,
                           default_duration_days=14)
        _db.session.add(tp)
        _db.session.flush()
        for d_name in deliverables:
            _db.session.add(TemplateDeliverable(
                phase_id=tp.id, name=d_name, deliverable_type="document",
                is_ai_generatable=True,
                template_content=f"# {d_name}\n## Summary\n",
            ))
    _db.session.commit()
    return template


def _make_project(pm_user, *, status="draft", phase_statuses=None, name="Acme Rollout",
                 template=None):
    """Create a project with phases built directly (no template materialisation).

    *phase_statuses* is a list of statuses, one per phase in order.
    Each phase gets one pending deliverable.
    """
    phase_statuses = phase_statuses or ["pending", "pending", "pending"]
    project = Project(
        name=name,
        description="Test project",
        pm_id=pm_user.id if pm_user else None,
        status=status,
        template_id=template.id if template else None,
    )
    _db.session.add(project)
    _db.session.flush()
    for order, phase_status in enumerate(phase_statuses, start=1):
        phase = Phase(project_id=project.id, name=f"Phase {order}", phase_order=order,
                      status=phase_status)
        _db.session.add(phase)
        _db.session.flush()
        _db.session.add(Deliverable(project_id=project.id, phase_id=phase.id,
                                    name=f"Deliverable {order}", status="pending"))
    _db.session.commit()
    return project


def _add_stakeholder(phase, user, role="reviewer"):
    _db.session.add(PhaseStakeholder(phase_id=phase.id, user_id=user.id, role=role))
    _db.session.commit()


def _phases_of(project):
    return Phase.query.filter_by(project_id=project.id).order_by(Phase.phase_order).all()


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_template():
    return _make_template


@pytest.fixture()
def make_project():
    return _make_project


@pytest.fixture()
def add_stakeholder():
    return _add_stakeholder


@pytest.fixture()
def phases_of():
    return _phases_of
