from __future__ import annotations

import shutil
from pathlib import Path

from argon2 import PasswordHasher

from homelab.auth.service import AuthService
from homelab.extensions import db
from homelab.models import Folder, User, UserStatus


def _login(client, identifier: str, password: str):
    return client.post("/auth/login", json={"identifier": identifier, "password": password})


def test_login_by_username_email_and_phone(client):
    for identifier in ("alice", "ALICE@example.com", "5550001"):
        response = _login(client, identifier, "alicepass1")
        assert response.status_code == 200, identifier
        payload = response.get_json()
        assert payload["user"]["username"] == "alice"
        assert "password_hash" not in payload["user"]
        assert payload["session"] == {
            "user_id": payload["user"]["id"],
            "first_name": "Alice",
            "last_name": "Walker",
            "email": "alice@example.com",
            "phone": "5550001",
            "status": "active",
            "role": "user",
        }


def test_unknown_user_and_wrong_password_are_indistinguishable(client):
    unknown = _login(client, "nobody", "whatever1")
    wrong = _login(client, "alice", "wrong-password")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.get_json()["message"] == wrong.get_json()["message"] == "Incorrect credentials."


def test_incomplete_credentials(client):
    response = _login(client, "  ", "")
    assert response.status_code == 400
    assert response.get_json()["message"] == "Incomplete credentials."


def test_disabled_accounts_cannot_log_in(client, app):
    with app.app_context():
        user = User.query.filter_by(username="alice").one()
        user.status = UserStatus.SUSPENDED
        db.session.commit()

    response = _login(client, "alice", "alicepass1")
    assert response.status_code == 403
    assert response.get_json()["message"] == "Account disabled or without permissions."


def test_disabled_account_token_is_rejected(client, app, login):
    headers = login()
    with app.app_context():
        user = User.query.filter_by(username="alice").one()
        user.status = UserStatus.BANNED
        db.session.commit()

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 403
    assert response.get_json()["error"]["code"] == "ACCOUNT_DISABLED"


def test_outdated_hash_is_upgraded_on_login(client, app):
    weak = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)
    with app.app_context():
        user = User.query.filter_by(username="alice").one()
        user.password_hash = weak.hash("alicepass1")
        db.session.commit()
        assert user.password_needs_rehash()

    assert _login(client, "alice", "alicepass1").status_code == 200

    with app.app_context():
        user = User.query.filter_by(username="alice").one()
        assert not user.password_needs_rehash()
        assert user.verify_password("alicepass1")


def test_login_recreates_missing_storage_folders(client, app):
    with app.app_context():
        user_id = User.query.filter_by(username="alice").one().id
    user_dir = Path(app.config["STORAGE_ROOT"]) / f"user_{user_id}"
    shutil.rmtree(user_dir / "Videos")

    assert _login(client, "alice", "alicepass1").status_code == 200
    assert (user_dir / "Videos").is_dir()


def test_storage_sync_falls_back_to_default_layout(app):
    with app.app_context():
        user = User.query.filter_by(username="bob").one()
        Folder.query.filter_by(user_id=user.id).delete()
        db.session.commit()
        user_dir = Path(app.config["STORAGE_ROOT"]) / f"user_{user.id}"
        shutil.rmtree(user_dir)

        AuthService().ensure_user_storage_structure(user.id)

        assert sorted(path.name for path in user_dir.iterdir()) == sorted(app.config["DEFAULT_FOLDERS"])


def test_register_creates_user_folders_and_directories(client, app):
    response = client.post(
        "/auth/register",
        json={
            "first_name": "Carol",
            "last_name": "Diaz",
            "username": "carol",
            "email": "carol@example.com",
            "password": "carolpass1",
        },
    )
    assert response.status_code == 201
    payload = response.get_json()
    assert payload["folders_created"]["database"] == 4
    assert sorted(payload["folders_created"]["filesystem"]) == sorted(app.config["DEFAULT_FOLDERS"])

    with app.app_context():
        user = db.session.get(User, payload["user_id"])
        folders = Folder.query.filter_by(user_id=user.id).all()
        assert sorted(folder.folder_path for folder in folders) == sorted(f"/{name}" for name in app.config["DEFAULT_FOLDERS"])
        assert all(folder.parent_folder_id is None for folder in folders)

    for name in app.config["DEFAULT_FOLDERS"]:
        assert (Path(app.config["STORAGE_ROOT"]) / f"user_{payload['user_id']}" / name).is_dir()


def test_register_validation_and_conflicts(client):
    base = {
        "first_name": "Dan",
        "last_name": "Park",
        "username": "danpark",
        "email": "dan@example.com",
        "password": "danpass12",
    }

    assert client.post("/auth/register", json={**base, "email": "not-an-email"}).status_code == 400
    assert client.post("/auth/register", json={**base, "password": "short"}).status_code == 400
    assert client.post("/auth/register", json={**base, "username": "dp"}).status_code == 400
    assert client.post("/auth/register", json={**base, "last_name": ""}).status_code == 400

    email_taken = client.post("/auth/register", json={**base, "email": "ALICE@example.com"})
    assert email_taken.status_code == 409
    assert email_taken.get_json()["field"] == "email"

    assert client.post("/auth/register", json={**base, "username": "Alice"}).status_code == 409
    assert client.post("/auth/register", json={**base, "phone": "5550001"}).status_code == 409


def test_registration_storage_failure_rolls_back(client, app, monkeypatch):
    from homelab.common.results import ErrorKind, ServiceResult
    from homelab.common.storage import StorageService

    def failing_directory(self, user_id, folder_names=None):
        return ServiceResult.error(ErrorKind.INFRA, "disk full")

    monkeypatch.setattr(StorageService, "create_user_directory", failing_directory)

    response = client.post(
        "/auth/register",
        json={
            "first_name": "Eve",
            "last_name": "Stone",
            "username": "evestone",
            "email": "eve@example.com",
            "password": "evepass12",
        },
    )
    assert response.status_code == 500

    with app.app_context():
        assert User.query.filter_by(username="evestone").one_or_none() is None
        assert Folder.query.count() == 3 * len(app.config["DEFAULT_FOLDERS"])


def test_registration_can_be_disabled(client, app):
    app.config["ALLOW_REGISTRATION"] = False
    response = client.post("/auth/register", json={"username": "frank"})
    assert response.status_code == 403
    assert response.get_json()["error"]["code"] == "REGISTRATION_DISABLED"


def test_login_rate_limit(client, app):
    app.config["LOGIN_RATE_LIMIT_MAX_ATTEMPTS"] = 3
    for _ in range(3):
        assert _login(client, "alice", "bad-password").status_code == 401

    blocked = _login(client, "alice", "alicepass1")
    assert blocked.status_code == 429
    assert blocked.get_json()["error"]["code"] == "RATE_LIMITED"

    assert _login(client, "bob", "bobpass123").status_code == 200


def test_check_role_and_me(client, login):
    headers = login("admin", "adminpass1")

    role = client.get("/auth/check-role", headers=headers).get_json()
    assert role == {"status": "success", "role": "admin", "is_admin": True}

    me = client.get("/auth/me", headers=headers).get_json()
    assert me["user"]["username"] == "admin"


def test_health_is_public(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["timestamp"]
