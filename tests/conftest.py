"""Pytest configuration and fixtures for the civic issue API tests."""
import os

# settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["MODERATE_UPLOADS"] = "false"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_ROLE", None)

import pytest
from fastapi.testclient import TestClient

from app.core.security import hash_password, make_tokens
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.main import app
from app.models import Issue, IssueStatus, User, UserRole


@pytest.fixture(autouse=True)
def fresh_db():
    """Recreate every table so each test starts from an empty database."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """A test client sharing one event loop across HTTP and websocket calls."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def make_user(email, role=UserRole.citizen, password="correct-horse", is_active=True):
    session = SessionLocal()
    try:
        user = User(
            email=email,
            name=email.split("@")[0],
            hashed_password=hash_password(password),
            role=role,
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.id
    finally:
        session.close()


def make_issue(**fields):
    session = SessionLocal()
    try:
        values = {"title": "Pothole on Main St", "category": "roads", "status": IssueStatus.pending}
        values.update(fields)
        issue = Issue(**values)
        session.add(issue)
        session.commit()
        session.refresh(issue)
        return issue.id
    finally:
        session.close()


def auth_headers(email, role):
    return {"Authorization": f"Bearer {make_tokens(email, role)['access_token']}"}


@pytest.fixture
def admin_headers():
    make_user("admin@civicmail.org", role=UserRole.admin)
    return auth_headers("admin@civicmail.org", "admin")


@pytest.fixture
def citizen_headers():
    make_user("resident@civicmail.org")
    return auth_headers("resident@civicmail.org", "citizen")
