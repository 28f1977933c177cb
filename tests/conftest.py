"""
Shared pytest fixtures for the CETI test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite, tmp uploads)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset (autouse)
    - client: Flask test client
    - admin / collaborator / other_collaborator: persisted users
    - auth_headers: Bearer header factory for a user
    - make_program / make_task: persisted domain objects
"""

from datetime import date

import pytest

from ceti import create_app
from ceti.models import db as _db
from ceti.models.program import Program, ProgramMember
from ceti.models.task import Task, TaskAssignee
from ceti.models.user import ROLE_ADMIN, ROLE_COLLABORATOR, User
from ceti.services.jwt_service import generate_access_token
from ceti.utils.crypto import hash_password

TEST_PASSWORD = "secreto123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("uploads"))
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


def _make_user(name, email, role, is_active=True):
    user = User(
        name=name,
        email=email,
        role=role,
        is_active=is_active,
        password_hash=hash_password(TEST_PASSWORD),
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_user():
    """Factory: make_user(name, email, role=COLLABORATOR, is_active=True)."""
    def _factory(name, email, role=ROLE_COLLABORATOR, is_active=True):
        return _make_user(name, email, role, is_active)
    return _factory


@pytest.fixture()
def user_password():
    """Plain-text password shared by every fixture user."""
    return TEST_PASSWORD


@pytest.fixture()
def admin():
    return _make_user("Administrador CETI", "admin@ceti.mx", ROLE_ADMIN)


@pytest.fixture()
def collaborator():
    return _make_user("María López", "maria.lopez@ceti.mx", ROLE_COLLABORATOR)


@pytest.fixture()
def other_collaborator():
    return _make_user("Carlos Rodríguez", "carlos.rodriguez@ceti.mx", ROLE_COLLABORATOR)


@pytest.fixture()
def auth_headers():
    """Factory: auth_headers(user) → Authorization header with a fresh access token."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _headers


# ── Domain objects ───────────────────────────────────────────────────────


@pytest.fixture()
def make_program():
    """Factory: make_program(name="Lab Upgrade", members=()) → Program."""
    def _factory(name="Lab Upgrade", members=(), status="ACTIVE",
                 start=date(2025, 1, 1), end=date(2025, 6, 30)):
        program = Program(
            name=name,
            general_objective="Mejorar la infraestructura de laboratorios",
            description="Programa de prueba",
            start_date=start,
            end_date=end,
            status=status,
        )
        _db.session.add(program)
        _db.session.flush()
        for user in members:
            _db.session.add(ProgramMember(program_id=program.id, user_id=user.id))
        _db.session.commit()
        return program
    return _factory


@pytest.fixture()
def make_task():
    """Factory: make_task(program, name, assignees=(), status="TODO", **fields) → Task."""
    def _factory(program, name="Inventario de equipos", assignees=(), status="TODO", creator=None, **fields):
        task = Task(
            name=name,
            program_id=program.id,
            creator_id=creator.id if creator else None,
            status=status,
            progress=fields.pop("progress", 0),
            reference_links=fields.pop("reference_links", []),
            **fields,
        )
        _db.session.add(task)
        _db.session.flush()
        for user in assignees:
            _db.session.add(TaskAssignee(task_id=task.id, user_id=user.id))
        _db.session.commit()
        return task
    return _factory
