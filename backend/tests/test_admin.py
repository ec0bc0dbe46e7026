from __future__ import annotations

from homelab.models import SessionCloseReason, User, UserSession, UserStatus


def _user_id(app, username: str) -> int:
    with app.app_context():
        return User.query.filter_by(username=username).one().id


def test_admin_routes_reject_regular_users(client, login):
    headers = login()
    response = client.get("/admin/users", headers=headers)
    assert response.status_code == 403
    assert client.get("/admin/stats", headers=headers).status_code == 403


def test_list_and_filter_users(client, login):
    headers = login("admin", "adminpass1")

    everyone = client.get("/admin/users", headers=headers).get_json()
    assert everyone["total"] == 3

    admins = client.get("/admin/users?role=admin", headers=headers).get_json()
    assert [user["username"] for user in admins["users"]] == ["admin"]

    assert client.get("/admin/users?status=sleepy", headers=headers).status_code == 400


def test_user_detail_includes_storage_and_sessions(client, app, login):
    login()
    headers = login("admin", "adminpass1")

    response = client.get(f"/admin/users/{_user_id(app, 'alice')}", headers=headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["user"]["username"] == "alice"
    assert payload["storage"]["total_files"] == 0
    assert payload["storage"]["total_folders"] == len(app.config["DEFAULT_FOLDERS"])
    assert payload["active_sessions"] == 1

    assert client.get("/admin/users/99999", headers=headers).status_code == 404


def test_admin_creates_users_even_when_registration_is_closed(client, app, login):
    app.config["ALLOW_REGISTRATION"] = False
    headers = login("admin", "adminpass1")

    response = client.post(
        "/admin/users",
        json={
            "first_name": "Sam",
            "last_name": "Supervisor",
            "username": "sam",
            "email": "sam@example.com",
            "password": "sampass12",
            "role": "supervisor",
        },
        headers=headers,
    )
    assert response.status_code == 201
    assert response.get_json()["user"]["role"] == "supervisor"

    duplicate = client.post(
        "/admin/users",
        json={
            "first_name": "Sam",
            "last_name": "Again",
            "username": "sam",
            "email": "sam2@example.com",
            "password": "sampass12",
        },
        headers=headers,
    )
    assert duplicate.status_code == 409


def test_disabling_a_user_closes_their_sessions(client, app, login):
    alice = login()
    login()
    headers = login("admin", "adminpass1")

    response = client.patch(f"/admin/users/{_user_id(app, 'alice')}", json={"status": "suspended"}, headers=headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["sessions_closed"] == 2
    assert payload["user"]["status"] == "suspended"

    assert client.get("/auth/me", headers=alice).status_code == 401

    with app.app_context():
        rows = UserSession.query.filter_by(user_id=_user_id(app, "alice")).all()
        assert {row.close_reason for row in rows} == {SessionCloseReason.REMOTE}
        assert {row.closed_by for row in rows} == {_user_id(app, "admin")}


def test_update_user_fields_and_conflicts(client, app, login):
    headers = login("admin", "adminpass1")
    bob_id = _user_id(app, "bob")

    updated = client.patch(
        f"/admin/users/{bob_id}",
        json={"first_name": "Robert", "password": "newbobpass1", "phone": "5550100"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert set(updated.get_json()["updated_fields"]) == {"first_name", "password", "phone"}
    assert client.post("/auth/login", json={"identifier": "bob", "password": "newbobpass1"}).status_code == 200

    assert client.patch(f"/admin/users/{bob_id}", json={"email": "alice@example.com"}, headers=headers).status_code == 409
    assert client.patch(f"/admin/users/{bob_id}", json={"username": "ALICE"}, headers=headers).status_code == 409
    assert client.patch(f"/admin/users/{bob_id}", json={"email": "nope"}, headers=headers).status_code == 400
    assert client.patch(f"/admin/users/{bob_id}", json={"role": "root"}, headers=headers).status_code == 400
    assert client.patch(f"/admin/users/{bob_id}", json={}, headers=headers).status_code == 400


def test_admin_cannot_lock_themselves_out(client, app, login):
    headers = login("admin", "adminpass1")
    admin_id = _user_id(app, "admin")

    demote = client.patch(f"/admin/users/{admin_id}", json={"role": "user"}, headers=headers)
    assert demote.status_code == 400
    disable = client.patch(f"/admin/users/{admin_id}", json={"status": "inactive"}, headers=headers)
    assert disable.status_code == 400

    with app.app_context():
        admin = User.query.filter_by(username="admin").one()
        assert admin.is_admin
        assert admin.status == UserStatus.ACTIVE


def test_close_user_sessions_keeps_own_current_session(client, app, login):
    login("admin", "adminpass1")
    headers = login("admin", "adminpass1")

    response = client.post(f"/admin/users/{_user_id(app, 'admin')}/sessions/close", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["sessions_closed"] == 1
    assert client.get("/auth/me", headers=headers).status_code == 200


def test_dashboard_stats(client, login):
    login()
    headers = login("admin", "adminpass1")

    stats = client.get("/admin/stats", headers=headers).get_json()["stats"]
    assert stats["users"]["total"] == 3
    assert stats["users"]["by_role"]["admin"] == 1
    assert stats["users"]["by_status"]["active"] == 3
    assert stats["sessions"]["active"] == 2
    assert stats["sessions"]["user_sessions"] == 1
    assert stats["activity"]["logins_today"] == 2
    assert stats["storage"]["total_files"] == 0


def test_diagnostic_reports_components(client, login):
    headers = login("admin", "adminpass1")
    response = client.get("/admin/diagnostic", headers=headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["checks"]["database"]["status"] == "ok"
    assert payload["checks"]["storage"]["writable"] is True
    assert payload["checks"]["sessions"]["active"] == 1
