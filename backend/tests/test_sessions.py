from __future__ import annotations

from datetime import timedelta

from homelab.extensions import db
from homelab.models import SessionCloseReason, User, UserSession, as_utc, utc_now
from homelab.sessions.tracker import SessionTracker


FIREFOX_LINUX = "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0"


def _session_id(client, headers) -> str:
    response = client.get("/auth/check-session", headers=headers)
    assert response.status_code == 200
    return response.get_json()["session_id"]


def _alice_id(app) -> int:
    with app.app_context():
        return User.query.filter_by(username="alice").one().id


def test_login_tracks_client_metadata(client, app, login):
    headers = login(user_agent=FIREFOX_LINUX)
    session_id = _session_id(client, headers)

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        assert row is not None
        assert row.user_id == _alice_id(app)
        assert row.is_active is True
        assert row.browser == "Mozilla Firefox"
        assert row.os == "Linux"
        assert row.device_type == "desktop"
        assert row.ip_address == "127.0.0.1"
        lifetime = as_utc(row.expires_at) - as_utc(row.created_at)
        assert abs(lifetime.total_seconds() - app.config["SESSION_LIFETIME_SECONDS"]) < 5


def test_reused_token_reactivates_closed_row(app):
    user_id = _alice_id(app)
    with app.app_context():
        tracker = SessionTracker()
        assert tracker.track_session("reused-token", user_id, "10.0.0.1", None)
        assert tracker.close_session("reused-token", user_id, SessionCloseReason.LOGOUT)
        assert not tracker.close_session("reused-token", user_id, SessionCloseReason.LOGOUT)

        assert tracker.track_session("reused-token", user_id, "10.0.0.2", FIREFOX_LINUX)
        row = db.session.get(UserSession, "reused-token")
        db.session.refresh(row)
        assert row.is_active is True
        assert row.closed_at is None
        assert row.closed_by is None
        assert row.close_reason is None
        assert row.ip_address == "10.0.0.2"
        assert as_utc(row.expires_at) > utc_now()
        assert UserSession.query.count() == 1


def test_expired_session_is_swept_and_rejected(client, app, login):
    headers = login()
    session_id = _session_id(client, headers)

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        row.expires_at = utc_now() - timedelta(minutes=1)
        db.session.commit()

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    payload = response.get_json()
    assert payload["error"]["code"] == "SESSION_REVOKED"
    assert payload["error"]["details"]["logged"] is False

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        assert row.is_active is False
        assert row.close_reason == SessionCloseReason.EXPIRED
        assert as_utc(row.closed_at) == as_utc(row.expires_at)


def test_cleanup_only_touches_expired_rows(app):
    user_id = _alice_id(app)
    with app.app_context():
        tracker = SessionTracker()
        tracker.track_session("fresh", user_id, "10.0.0.1", None)
        tracker.track_session("stale", user_id, "10.0.0.1", None)
        stale = db.session.get(UserSession, "stale")
        stale.expires_at = utc_now() - timedelta(hours=2)
        db.session.commit()

        assert tracker.cleanup_expired_sessions() == 1
        assert tracker.cleanup_expired_sessions() == 0
        assert tracker.is_session_valid("fresh") is True
        assert tracker.is_session_valid("stale") is False
        assert tracker.is_session_valid(None) is False
        assert tracker.count_active_sessions(user_id) == 1


def test_close_all_except_current(client, app, login):
    first = login()
    second = login()
    current = login()
    current_id = _session_id(client, current)

    response = client.post("/sessions/close-others", headers=current)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["sessions_closed"] == 2
    assert payload["current_session_id"] == current_id

    assert client.get("/auth/me", headers=first).status_code == 401
    assert client.get("/auth/me", headers=second).status_code == 401
    assert client.get("/auth/me", headers=current).status_code == 200

    with app.app_context():
        closed = UserSession.query.filter(UserSession.session_id != current_id).all()
        assert {row.close_reason for row in closed} == {SessionCloseReason.REMOTE}


def test_requests_refresh_last_activity(client, app, login):
    headers = login()
    session_id = _session_id(client, headers)
    stale = utc_now() - timedelta(minutes=30)

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        row.last_activity = stale
        db.session.commit()

    assert client.get("/auth/me", headers=headers).status_code == 200

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        assert as_utc(row.last_activity) > stale + timedelta(minutes=29)


def test_update_activity_ignores_empty_token(app):
    with app.app_context():
        SessionTracker().update_activity("")
        SessionTracker().update_activity(None)
        assert UserSession.query.count() == 0


def test_logout_closes_the_tracked_session(client, app, login):
    headers = login()
    session_id = _session_id(client, headers)

    response = client.post("/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["logged"] is False

    with app.app_context():
        row = db.session.get(UserSession, session_id)
        assert row.is_active is False
        assert row.close_reason == SessionCloseReason.LOGOUT
        assert row.closed_by == _alice_id(app)

    revoked = client.get("/auth/check-session", headers=headers)
    assert revoked.status_code == 401
    assert revoked.get_json()["error"]["details"]["logged"] is False


def test_list_and_history_mark_current_session(client, login):
    login()
    headers = login()
    current_id = _session_id(client, headers)

    active = client.get("/sessions", headers=headers).get_json()
    assert active["total"] == 2
    flags = {item["session_id"]: item["is_current"] for item in active["sessions"]}
    assert flags[current_id] is True
    assert sum(flags.values()) == 1
    assert all(item["minutes_remaining"] >= 59 for item in active["sessions"])

    history = client.get("/sessions/history?limit=1", headers=headers).get_json()
    assert history["total"] == 1
    assert "duration_minutes" in history["sessions"][0]

    assert client.get("/sessions/history?limit=abc", headers=headers).status_code == 400


def test_close_remote_session_rules(client, app, login):
    other = login()
    headers = login()
    other_id = _session_id(client, other)
    current_id = _session_id(client, headers)

    assert client.delete(f"/sessions/{current_id}", headers=headers).status_code == 400
    assert client.delete("/sessions/does-not-exist", headers=headers).status_code == 404

    bob = login("bob", "bobpass123")
    assert client.delete(f"/sessions/{other_id}", headers=bob).status_code == 403

    closed = client.delete(f"/sessions/{other_id}", headers=headers)
    assert closed.status_code == 200
    assert closed.get_json()["status"] == "success"
    assert client.get("/auth/me", headers=other).status_code == 401

    with app.app_context():
        assert db.session.get(UserSession, other_id).close_reason == SessionCloseReason.REMOTE
