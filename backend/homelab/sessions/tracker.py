from __future__ import annotations

from datetime import timedelta
from typing import Any

from flask import current_app

from ..common.client_info import parse_user_agent
from ..common.errors import DataAccessError
from ..models import SessionCloseReason, UserSession, as_utc, utc_now
from .repository import UserSessionRepository


class SessionTracker:
    """Keeps the ``user_sessions`` table in step with issued session tokens.

    Tracking, heartbeats and closes are bookkeeping: a database failure is logged
    and never aborts the login or logout that triggered it. Validity checks do
    propagate failures because they gate access.
    """

    def __init__(self, repository: UserSessionRepository | None = None, lifetime_seconds: int | None = None) -> None:
        self.repository = repository or UserSessionRepository()
        self.lifetime_seconds = lifetime_seconds or int(current_app.config["SESSION_LIFETIME_SECONDS"])

    def track_session(self, session_id: str, user_id: int, ip_address: str, user_agent: str | None) -> bool:
        try:
            client = parse_user_agent(user_agent)
        except Exception:
            current_app.logger.warning("User agent parsing failed", exc_info=True)
            client = {"browser": "Unknown", "os": "Unknown", "device_type": "unknown"}

        try:
            self.repository.create_session(
                session_id=session_id,
                user_id=user_id,
                expires_at=utc_now() + timedelta(seconds=self.lifetime_seconds),
                ip_address=ip_address,
                user_agent=user_agent,
                browser=client["browser"],
                os=client["os"],
                device_type=client["device_type"],
            )
        except DataAccessError:
            current_app.logger.warning("Could not track session for user_id=%s", user_id, exc_info=True)
            return False
        return True

    def update_activity(self, session_id: str | None) -> None:
        if not session_id:
            return
        try:
            self.repository.update_last_activity(session_id)
        except DataAccessError:
            current_app.logger.warning("Could not refresh session activity", exc_info=True)

    def close_session(
        self,
        session_id: str | None,
        actor_id: int | None = None,
        reason: SessionCloseReason = SessionCloseReason.LOGOUT,
    ) -> bool:
        if not session_id:
            return False
        try:
            return self.repository.close_session(session_id, actor_id, reason) > 0
        except DataAccessError:
            current_app.logger.warning("Could not close session (%s)", reason.value, exc_info=True)
            return False

    def close_all_user_sessions(self, user_id: int, except_session_id: str | None = None, actor_id: int | None = None) -> int:
        return self.repository.close_all_user_sessions(user_id, except_session_id, actor_id)

    def cleanup_expired_sessions(self) -> int:
        closed = self.repository.cleanup_expired_sessions()
        if closed:
            current_app.logger.info("Closed %s expired session(s)", closed)
        return closed

    def is_session_valid(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        row = self.repository.get_session_by_id(session_id)
        if row is None or not row.is_active:
            return False
        if as_utc(row.expires_at) <= utc_now():
            self.cleanup_expired_sessions()
            return False
        return True

    def get_active_sessions(self, user_id: int) -> list[dict[str, Any]]:
        return self.repository.get_active_sessions(user_id)

    def get_session_history(self, user_id: int, limit: int = 20, days: int = 30) -> list[dict[str, Any]]:
        return self.repository.get_session_history(user_id, limit=limit, days=days)

    def get_session(self, session_id: str) -> UserSession | None:
        return self.repository.get_session_by_id(session_id)

    def count_active_sessions(self, user_id: int | None = None) -> int:
        return self.repository.count_active_sessions(user_id)
