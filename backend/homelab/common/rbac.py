from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from flask import g, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..auth.session_store import TokenSessionStore
from ..extensions import db
from ..models import User, UserRole
from ..sessions.tracker import SessionTracker
from .client_info import real_ip_address
from .errors import APIError


@dataclass
class RequestContext:
    user: User
    session: TokenSessionStore
    ip_address: str
    user_agent: str

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    @property
    def role(self) -> UserRole:
        return self.user.role

    @property
    def session_id(self) -> str | None:
        return self.session.session_id


def client_ip() -> str:
    return real_ip_address(request.headers, request.remote_addr)


def _load_request_context() -> RequestContext:
    verify_jwt_in_request()
    store = TokenSessionStore.from_request()

    tracker = SessionTracker()
    if not tracker.is_session_valid(store.session_id):
        raise APIError(401, "SESSION_REVOKED", "Your session has expired or was closed.", {"logged": False})
    tracker.update_activity(store.session_id)

    identity = get_jwt_identity()
    user = db.session.get(User, int(identity)) if identity is not None else None
    if user is None:
        raise APIError(401, "UNAUTHENTICATED", "Invalid session.", {"logged": False})
    if not user.is_active:
        raise APIError(403, "ACCOUNT_DISABLED", "Account disabled or without permissions.")

    return RequestContext(
        user=user,
        session=store,
        ip_address=client_ip(),
        user_agent=request.headers.get("User-Agent", ""),
    )


def request_context() -> RequestContext:
    ctx = g.get("request_context")
    if ctx is None:
        raise APIError(401, "UNAUTHENTICATED", "Authentication required.")
    return ctx


def auth_required(func: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        g.request_context = _load_request_context()
        return func(*args, **kwargs)

    return wrapper


def admin_required(func: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        ctx = _load_request_context()
        if not ctx.is_admin:
            raise APIError(403, "FORBIDDEN", "Admin access required.")
        g.request_context = ctx
        return func(*args, **kwargs)

    return wrapper
