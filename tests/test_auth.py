"""Tests for registration, login and route guards."""
from app.core.config import settings
from app.core.security import ensure_admin_account, verify_password
from app.db.session import SessionLocal
from app.models import User, UserRole
from tests.conftest import auth_headers, make_user


def test_register_and_me(client):
    r = client.post("/auth/register", json={
        "name": "Asha", "email": "Asha@CivicMail.org", "password": "streetlight-42",
    })
    assert r.status_code == 201
    tokens = r.json()
    assert tokens["token_type"] == "bearer"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "asha@civicmail.org"
    assert me.json()["role"] == "citizen"


def test_register_duplicate_email(client):
    body = {"name": "Asha", "email": "asha@civicmail.org", "password": "streetlight-42"}
    assert client.post("/auth/register", json=body).status_code == 201
    assert client.post("/auth/register", json=body).status_code == 400


def test_register_short_password(client):
    r = client.post("/auth/register", json={"name": "Asha", "email": "asha@civicmail.org", "password": "short"})
    assert r.status_code == 422


def test_login(client):
    make_user("ravi@civicmail.org", password="pothole-patrol")
    ok = client.post("/auth/login", json={"email": "ravi@civicmail.org", "password": "pothole-patrol"})
    assert ok.status_code == 200
    assert "access_token" in ok.json()

    bad = client.post("/auth/login", json={"email": "ravi@civicmail.org", "password": "wrong-password"})
    assert bad.status_code == 401
    unknown = client.post("/auth/login", json={"email": "nobody@civicmail.org", "password": "pothole-patrol"})
    assert unknown.status_code == 401


def test_inactive_user(client):
    make_user("gone@civicmail.org", password="pothole-patrol", is_active=False)
    r = client.post("/auth/login", json={"email": "gone@civicmail.org", "password": "pothole-patrol"})
    assert r.status_code == 403
    assert client.get("/auth/me", headers=auth_headers("gone@civicmail.org", "citizen")).status_code == 403


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_ensure_admin_account(monkeypatch):
    monkeypatch.setattr(settings, "admin_email", "ops@civicmail.org")
    monkeypatch.setattr(settings, "admin_password", "council-chamber")
    db = SessionLocal()
    try:
        first = ensure_admin_account(db)
        second = ensure_admin_account(db)
        assert first.id == second.id
        assert first.role == UserRole.admin
        assert verify_password("council-chamber", first.hashed_password)
        assert db.query(User).count() == 1
    finally:
        db.close()


def test_ensure_admin_account_not_configured():
    db = SessionLocal()
    try:
        assert ensure_admin_account(db) is None
    finally:
        db.close()
