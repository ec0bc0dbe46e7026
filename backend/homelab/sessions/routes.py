from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..common.errors import APIError, DataAccessError
from ..common.rbac import auth_required, request_context
from ..models import SessionCloseReason
from .tracker import SessionTracker


sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


def _bounded_int(value: str | None, field_name: str, default: int, maximum: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except ValueError as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer.") from error
    if parsed < 1:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be positive.")
    return min(parsed, maximum)


@sessions_bp.get("")
@auth_required
def list_active_sessions():
    ctx = request_context()
    try:
        sessions = SessionTracker().get_active_sessions(ctx.user_id)
    except DataAccessError as error:
        current_app.logger.exception("Could not list sessions for user_id=%s", ctx.user_id)
        raise APIError(500, "SESSIONS_UNAVAILABLE", "Sessions could not be loaded.") from error

    for item in sessions:
        item["is_current"] = item["session_id"] == ctx.session_id
    return jsonify({"status": "success", "sessions": sessions, "total": len(sessions)})


@sessions_bp.get("/history")
@auth_required
def session_history():
    ctx = request_context()
    limit = _bounded_int(request.args.get("limit"), "limit", 20, 100)
    days = _bounded_int(request.args.get("days"), "days", 30, 365)
    try:
        history = SessionTracker().get_session_history(ctx.user_id, limit=limit, days=days)
    except DataAccessError as error:
        current_app.logger.exception("Could not load session history for user_id=%s", ctx.user_id)
        raise APIError(500, "SESSIONS_UNAVAILABLE", "Session history could not be loaded.") from error

    for item in history:
        item["is_current"] = item["session_id"] == ctx.session_id
    return jsonify({"status": "success", "sessions": history, "total": len(history)})


@sessions_bp.delete("/<session_id>")
@auth_required
def close_session(session_id: str):
    ctx = request_context()
    if session_id == ctx.session_id:
        raise APIError(400, "CURRENT_SESSION", "Use logout to close the current session.")

    tracker = SessionTracker()
    try:
        row = tracker.get_session(session_id)
    except DataAccessError as error:
        raise APIError(500, "SESSIONS_UNAVAILABLE", "Session could not be loaded.") from error
    if row is None:
        raise APIError(404, "SESSION_NOT_FOUND", "Session not found.")
    if row.user_id != ctx.user_id:
        raise APIError(403, "FORBIDDEN", "You cannot close this session.")

    closed = tracker.close_session(session_id, ctx.user_id, SessionCloseReason.REMOTE)
    if not closed:
        return jsonify({"status": "warning", "message": "The session was already closed."})
    return jsonify({"status": "success", "message": "Session closed successfully."})


@sessions_bp.post("/close-others")
@auth_required
def close_other_sessions():
    ctx = request_context()
    try:
        closed = SessionTracker().close_all_user_sessions(ctx.user_id, ctx.session_id, ctx.user_id)
    except DataAccessError as error:
        current_app.logger.exception("Could not close sessions for user_id=%s", ctx.user_id)
        raise APIError(500, "SESSIONS_UNAVAILABLE", "Sessions could not be closed.") from error

    return jsonify(
        {
            "status": "success",
            "message": f"{closed} session(s) closed.",
            "sessions_closed": closed,
            "current_session_id": ctx.session_id,
        }
    )
