from __future__ import annotations

from pathlib import Path

import pytest

from homelab import create_app
from homelab.auth.service import RegisterService
from homelab.bootstrap import bootstrap_defaults
from homelab.common.rate_limit import login_rate_limiter
from homelab.extensions import db
from homelab.models import UserRole


ALICE = {
    "first_name": "Alice",
    "last_name": "Walker",
    "username": "alice",
    "email": "alice@example.com",
    "phone": "5550001",
    "password": "alicepass1",
}
BOB = {
    "first_name": "Bob",
    "last_name": "Stone",
    "username": "bob",
    "email": "bob@example.com",
    "password": "bobpass123",
}
ADMIN = {
    "first_name": "Ada",
    "last_name": "Admin",
    "username": "admin",
    "email": "admin@example.com",
    "password": "adminpass1",
}


@pytest.fixture
def app(tmp_path: Path):
    db_path = tmp_path / "test.db"

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORAGE_ROOT": str(tmp_path / "storage" / "private"),
            "AVATAR_ROOT": str(tmp_path / "storage" / "public" / "avatars"),
            "JWT_SECRET_KEY": "test-secret-key-at-least-32-bytes-long",
            "ALLOW_REGISTRATION": True,
            "MAX_UPLOAD_SIZE_BYTES": 5 * 1024 * 1024,
            "STORAGE_QUOTA_BYTES": 10 * 1024 * 1024,
            "FRONTEND_ORIGINS": ["http://localhost:5173"],
        }
    )
    login_rate_limiter.reset()

    with app.app_context():
        db.create_all()
        bootstrap_defaults(commit=True)

        service = RegisterService()
        for payload, role in ((ALICE, UserRole.USER), (BOB, UserRole.USER), (ADMIN, UserRole.ADMIN)):
            result = service.register(dict(payload), role=role)
            assert result.ok, result.message

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
    login_rate_limiter.reset()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(identifier: str = "alice", password: str = "alicepass1", user_agent: str | None = None) -> dict[str, str]:
        headers = {"User-Agent": user_agent} if user_agent else {}
        response = client.post("/auth/login", json={"identifier": identifier, "password": password}, headers=headers)
        assert response.status_code == 200, response.get_json()
        return {"Authorization": f"Bearer {response.get_json()['access_token']}"}

    return _login
