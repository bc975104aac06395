import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="classroom-tests-")

# must be in place before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["SECURITY_LOG_FILE"] = os.path.join(_TMP, "security.log")
os.environ["ADMIN_SETUP_KEY"] = "test-admin-key"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ALGORITHM"] = "HS256"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
for name in ("RESEND_API_KEY", "S3_BUCKET", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
    os.environ.pop(name, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from app.main import app
from app import db
from app.db import get_session
from app.models import STUDENT, TEACHER, ADMIN
from app.crud.user import create_user
from app.crud.classes import create_class, add_student_to_class
from app.utils.security import hash_password
from tests.helpers import PASSWORD


@pytest.fixture()
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine, monkeypatch):
    def override_get_session():
        with Session(engine) as session:
            yield session

    # sockets open their own sessions from app.db
    monkeypatch.setattr(db, "engine", engine)
    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session):
    def _make(username, role=STUDENT, name=None, email=None, credit_points=0):
        user = create_user(
            session,
            name=name or username.title(),
            username=username,
            hashed_password=hash_password(PASSWORD),
            role=role,
            email=email,
        )
        if credit_points:
            user.credit_points = credit_points
            session.add(user)
            session.commit()
            session.refresh(user)
        return user

    return _make


@pytest.fixture()
def teacher(make_user):
    return make_user("mrs_reyes", role=TEACHER, name="Maria Reyes", email="reyes@example.com")


@pytest.fixture()
def student(make_user):
    return make_user("juan", role=STUDENT, name="Juan Cruz", email="juan@example.com")


@pytest.fixture()
def admin(make_user):
    return make_user("root", role=ADMIN, name="Admin")


@pytest.fixture()
def classroom(session, teacher, student):
    """A class owned by ``teacher`` with ``student`` enrolled."""
    klass = create_class(session, name="Physics 101", teacher=teacher.username, code="PHY101", section="A", year="2024")
    add_student_to_class(session, klass.id, student.username)
    return klass
