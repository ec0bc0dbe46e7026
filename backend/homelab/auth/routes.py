from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..common.errors import APIError
from ..common.rate_limit import login_rate_limiter
from ..common.rbac import auth_required, client_ip, request_context
from ..common.results import result_response
from ..models import SessionCloseReason, UserRole
from ..sessions.tracker import SessionTracker
from .service import AuthService, RegisterService
from .session_store import TokenSessionStore


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/register")
def register():
    if not current_app.config["ALLOW_REGISTRATION"]:
        raise APIError(403, "REGISTRATION_DISABLED", "Registration is disabled.")

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")

    result = RegisterService().register(payload)
    return result_response(result, success_status=201)


@auth_bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    identifier = str(payload.get("identifier") or payload.get("username") or payload.get("email") or "").strip()
    password = str(payload.get("password") or "")

    remote_ip = client_ip()
    rate_limit_key = login_rate_limiter.key_for(remote_ip, identifier)
    window = current_app.config["LOGIN_RATE_LIMIT_WINDOW_SECONDS"]

    if identifier and login_rate_limiter.is_blocked(rate_limit_key, window, current_app.config["LOGIN_RATE_LIMIT_MAX_ATTEMPTS"]):
        current_app.logger.warning("Login rate limited for ip=%s", remote_ip)
        raise APIError(
            429,
            "RATE_LIMITED",
            "Too many login attempts. Please try again later.",
            {"retry_after": login_rate_limiter.retry_after(rate_limit_key, window)},
        )

    result = AuthService().validate_credentials(identifier, password)
    if not result.ok:
        if identifier and password:
            login_rate_limiter.add_failure(rate_limit_key)
        return result_response(result)

    login_rate_limiter.clear(rate_limit_key)
    user = result.data["user"]

    store = TokenSessionStore()
    store.regenerate_id()
    store.update(AuthService.prepare_user_session_data(user))
    access_token = store.issue_token(user["id"])

    SessionTracker().track_session(
        store.session_id or "",
        user["id"],
        remote_ip,
        request.headers.get("User-Agent"),
    )
    current_app.logger.info("User %s logged in from %s", user["id"], remote_ip)

    return jsonify(
        {
            "status": "success",
            "message": "Login successful.",
            "access_token": access_token,
            "user": user,
            "session": store.to_dict(),
        }
    )


@auth_bp.post("/logout")
@auth_required
def logout():
    ctx = request_context()
    SessionTracker().close_session(ctx.session_id, ctx.user_id, SessionCloseReason.LOGOUT)
    ctx.session.destroy()
    return jsonify({"status": "success", "message": "Logged out successfully.", "logged": False})


@auth_bp.get("/check-session")
@auth_required
def check_session():
    ctx = request_context()
    return jsonify(
        {
            "status": "success",
            "logged": True,
            "session_id": ctx.session_id,
            "session": ctx.session.to_dict(),
        }
    )


@auth_bp.get("/check-role")
@auth_required
def check_role():
    ctx = request_context()
    role = ctx.role.value if isinstance(ctx.role, UserRole) else str(ctx.role)
    return jsonify({"status": "success", "role": role, "is_admin": ctx.is_admin})


@auth_bp.get("/me")
@auth_required
def me():
    ctx = request_context()
    return jsonify({"status": "success", "user": ctx.user.to_dict()})
