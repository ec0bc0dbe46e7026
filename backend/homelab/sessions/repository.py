from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from ..common.data_access import data_access
from ..extensions import db
from ..models import SessionCloseReason, UserSession, as_utc, utc_now


class UserSessionRepository:
    def create_session(
        self,
        *,
        session_id: str,
        user_id: int,
        expires_at: datetime,
        ip_address: str = "unknown",
        user_agent: str | None = None,
        browser: str = "Unknown",
        os: str = "Unknown",
        device_type: str = "unknown",
    ) -> UserSession:
        now = utc_now()
        with data_access("record the session"):
            row = db.session.get(UserSession, session_id)
            if row is None:
                row = UserSession(session_id=session_id, user_id=user_id, created_at=now)
                db.session.add(row)
            # A reused token re-activates the existing row.
            row.user_id = user_id
            row.ip_address = ip_address
            row.user_agent = user_agent
            row.browser = browser
            row.os = os
            row.device_type = device_type
            row.is_active = True
            row.expires_at = expires_at
            row.last_activity = now
            row.closed_at = None
            row.closed_by = None
            row.close_reason = None
            db.session.commit()
            return row

    def get_session_by_id(self, session_id: str) -> UserSession | None:
        with data_access("load the session"):
            return db.session.get(UserSession, session_id)

    def get_active_sessions(self, user_id: int) -> list[dict[str, Any]]:
        now = utc_now()
        with data_access("list active sessions"):
            rows = (
                UserSession.query.filter(
                    UserSession.user_id == user_id,
                    UserSession.is_active.is_(True),
                    UserSession.expires_at > now,
                )
                .order_by(UserSession.last_activity.desc())
                .all()
            )
        sessions: list[dict[str, Any]] = []
        for row in rows:
            item = row.to_dict()
            remaining = (as_utc(row.expires_at) - now).total_seconds()
            item["minutes_remaining"] = max(0, int(remaining // 60))
            sessions.append(item)
        return sessions

    def get_session_history(self, user_id: int, limit: int = 20, days: int = 30) -> list[dict[str, Any]]:
        since = utc_now() - timedelta(days=days)
        with data_access("load the session history"):
            rows = (
                UserSession.query.filter(UserSession.user_id == user_id, UserSession.created_at >= since)
                .order_by(UserSession.created_at.desc())
                .limit(limit)
                .all()
            )
        history: list[dict[str, Any]] = []
        for row in rows:
            item = row.to_dict()
            ended = as_utc(row.closed_at) or as_utc(row.last_activity)
            started = as_utc(row.created_at)
            item["duration_minutes"] = int((ended - started).total_seconds() // 60) if ended and started else 0
            history.append(item)
        return history

    def update_last_activity(self, session_id: str) -> int:
        with data_access("update session activity"):
            updated = UserSession.query.filter(
                UserSession.session_id == session_id,
                UserSession.is_active.is_(True),
            ).update({UserSession.last_activity: utc_now()}, synchronize_session=False)
            db.session.commit()
            return updated

    def close_session(self, session_id: str, closed_by: int | None, reason: SessionCloseReason) -> int:
        with data_access("close the session"):
            updated = UserSession.query.filter(
                UserSession.session_id == session_id,
                UserSession.is_active.is_(True),
            ).update(
                {
                    UserSession.is_active: False,
                    UserSession.closed_at: utc_now(),
                    UserSession.closed_by: closed_by,
                    UserSession.close_reason: reason,
                },
                synchronize_session=False,
            )
            db.session.commit()
            return updated

    def close_all_user_sessions(
        self,
        user_id: int,
        except_session_id: str | None = None,
        closed_by: int | None = None,
    ) -> int:
        with data_access("close the user sessions"):
            query = UserSession.query.filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            if except_session_id:
                query = query.filter(UserSession.session_id != except_session_id)
            updated = query.update(
                {
                    UserSession.is_active: False,
                    UserSession.closed_at: utc_now(),
                    UserSession.closed_by: closed_by if closed_by is not None else user_id,
                    UserSession.close_reason: SessionCloseReason.REMOTE,
                },
                synchronize_session=False,
            )
            db.session.commit()
            return updated

    def cleanup_expired_sessions(self) -> int:
        with data_access("expire sessions"):
            updated = UserSession.query.filter(
                UserSession.is_active.is_(True),
                UserSession.expires_at <= utc_now(),
                UserSession.closed_at.is_(None),
            ).update(
                {
                    UserSession.is_active: False,
                    UserSession.closed_at: UserSession.expires_at,
                    UserSession.close_reason: SessionCloseReason.EXPIRED,
                },
                synchronize_session=False,
            )
            db.session.commit()
            return updated

    def count_active_sessions(self, user_id: int | None = None) -> int:
        with data_access("count sessions"):
            query = UserSession.query.filter(UserSession.is_active.is_(True), UserSession.expires_at > utc_now())
            if user_id is not None:
                query = query.filter(UserSession.user_id == user_id)
            return query.count()
