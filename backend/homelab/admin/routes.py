from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from ..auth.service import PHONE_PATTERN, RegisterService, is_valid_email
from ..common.errors import APIError, DataAccessError
from ..common.rbac import admin_required, request_context
from ..common.results import result_response
from ..common.storage import StorageService, format_file_size
from ..extensions import db
from ..files.repository import FileRepository, FolderRepository
from ..models import File, User, UserRole, UserSession, UserStatus, utc_now
from ..sessions.tracker import SessionTracker


admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise APIError(404, "USER_NOT_FOUND", "User not found.")
    return user


def _parse_role(value: Any) -> UserRole:
    try:
        return UserRole(str(value).strip().lower())
    except ValueError as error:
        raise APIError(400, "INVALID_ROLE", "role must be one of: user, admin, supervisor.") from error


def _parse_status(value: Any) -> UserStatus:
    try:
        return UserStatus(str(value).strip().lower())
    except ValueError as error:
        raise APIError(400, "INVALID_STATUS", "status must be one of: active, inactive, suspended, banned.") from error


@admin_bp.get("/users")
@admin_required
def list_users():
    query = User.query
    status = request.args.get("status")
    if status:
        query = query.filter(User.status == _parse_status(status))
    role = request.args.get("role")
    if role:
        query = query.filter(User.role == _parse_role(role))

    users = query.order_by(User.id.asc()).all()
    return jsonify({"status": "success", "users": [user.to_dict() for user in users], "total": len(users)})


@admin_bp.get("/users/<int:user_id>")
@admin_required
def user_detail(user_id: int):
    user = _get_user(user_id)
    try:
        stats = FileRepository().get_user_stats(user.id)
        stats["total_folders"] = FolderRepository().count_by_user(user.id)
        active_sessions = SessionTracker().count_active_sessions(user.id)
    except DataAccessError as error:
        current_app.logger.exception("Could not load details for user_id=%s", user.id)
        raise APIError(500, "USER_DETAIL_FAILED", "User details could not be loaded.") from error

    stats["total_size_formatted"] = format_file_size(stats["total_size"])
    return jsonify(
        {
            "status": "success",
            "user": user.to_dict(),
            "storage": stats,
            "active_sessions": active_sessions,
        }
    )


@admin_bp.post("/users")
@admin_required
def create_user():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")

    role = _parse_role(payload["role"]) if payload.get("role") else UserRole.USER
    status = _parse_status(payload["status"]) if payload.get("status") else UserStatus.ACTIVE

    result = RegisterService().register(payload, role=role, status=status)
    if result.ok:
        current_app.logger.info(
            "Admin %s created user_id=%s with role=%s", request_context().user_id, result.data["user_id"], role.value
        )
    return result_response(result, success_status=201)


@admin_bp.patch("/users/<int:user_id>")
@admin_required
def update_user(user_id: int):
    ctx = request_context()
    user = _get_user(user_id)
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")

    registrations = RegisterService()
    updated: list[str] = []

    for field_name in ("first_name", "last_name"):
        if field_name in payload:
            value = str(payload.get(field_name) or "").strip()
            if not value:
                raise APIError(400, "INVALID_PARAMETER", f"{field_name} cannot be empty.")
            setattr(user, field_name, value)
            updated.append(field_name)

    if "username" in payload:
        username = str(payload.get("username") or "").strip()
        if len(username) < 3:
            raise APIError(400, "INVALID_USERNAME", "Username must be at least 3 characters.")
        if registrations.find_conflict("", username, None, exclude_id=user.id) == "username":
            raise APIError(409, "USER_EXISTS", "The username is already in use.")
        user.username = username
        updated.append("username")

    if "email" in payload:
        email = str(payload.get("email") or "").strip()
        if not is_valid_email(email):
            raise APIError(400, "INVALID_EMAIL", "Invalid email format.")
        if registrations.find_conflict(email, "", None, exclude_id=user.id) == "email":
            raise APIError(409, "EMAIL_EXISTS", "The email is already in use.")
        user.email = email
        updated.append("email")

    if "phone" in payload:
        phone = str(payload.get("phone") or "").strip() or None
        if phone is not None:
            if not PHONE_PATTERN.match(phone):
                raise APIError(400, "INVALID_PHONE", "The phone number must contain digits only.")
            if User.query.filter(User.phone == phone, User.id != user.id).first() is not None:
                raise APIError(409, "PHONE_EXISTS", "The phone is already in use.")
        user.phone = phone
        updated.append("phone")

    if "password" in payload:
        password = str(payload.get("password") or "")
        if len(password) < 8:
            raise APIError(400, "INVALID_PASSWORD", "Password must be at least 8 characters.")
        user.set_password(password)
        updated.append("password")

    if "role" in payload:
        role = _parse_role(payload.get("role"))
        if user.id == ctx.user_id and role != UserRole.ADMIN:
            raise APIError(400, "INVALID_OPERATION", "You cannot remove your own admin role.")
        user.role = role
        updated.append("role")

    status_changed = False
    if "status" in payload:
        status = _parse_status(payload.get("status"))
        if user.id == ctx.user_id and status != UserStatus.ACTIVE:
            raise APIError(400, "INVALID_OPERATION", "You cannot disable your own account.")
        status_changed = status != user.status
        user.status = status
        updated.append("status")

    if not updated:
        raise APIError(400, "NO_CHANGES", "No valid fields to update.")

    try:
        db.session.commit()
    except SQLAlchemyError as error:
        db.session.rollback()
        current_app.logger.exception("Could not update user_id=%s", user.id)
        raise APIError(500, "USER_UPDATE_FAILED", "The user could not be updated.") from error

    sessions_closed = 0
    if status_changed and not user.is_active:
        try:
            sessions_closed = SessionTracker().close_all_user_sessions(user.id, actor_id=ctx.user_id)
        except DataAccessError:
            current_app.logger.warning("Could not close sessions of disabled user_id=%s", user.id, exc_info=True)

    return jsonify(
        {
            "status": "success",
            "message": "User updated successfully.",
            "updated_fields": updated,
            "sessions_closed": sessions_closed,
            "user": user.to_dict(),
        }
    )


@admin_bp.post("/users/<int:user_id>/sessions/close")
@admin_required
def close_user_sessions(user_id: int):
    ctx = request_context()
    user = _get_user(user_id)
    except_session = ctx.session_id if user.id == ctx.user_id else None
    try:
        closed = SessionTracker().close_all_user_sessions(user.id, except_session, ctx.user_id)
    except DataAccessError as error:
        current_app.logger.exception("Could not close sessions of user_id=%s", user.id)
        raise APIError(500, "SESSIONS_UNAVAILABLE", "Sessions could not be closed.") from error
    return jsonify({"status": "success", "message": f"{closed} session(s) closed.", "sessions_closed": closed})


@admin_bp.get("/stats")
@admin_required
def dashboard_stats():
    ctx = request_context()
    now = utc_now()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    status_counts = dict(db.session.query(User.status, func.count(User.id)).group_by(User.status).all())
    role_counts = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    total_files, total_size = db.session.query(func.count(File.id), func.coalesce(func.sum(File.file_size), 0)).one()
    user_files, user_size = (
        db.session.query(func.count(File.id), func.coalesce(func.sum(File.file_size), 0))
        .filter(File.user_id == ctx.user_id)
        .one()
    )

    def logins_since(start: datetime) -> int:
        return UserSession.query.filter(UserSession.created_at >= start).count()

    tracker = SessionTracker()
    return jsonify(
        {
            "status": "success",
            "stats": {
                "users": {
                    "total": sum(status_counts.values()),
                    "by_status": {status.value: int(status_counts.get(status, 0)) for status in UserStatus},
                    "by_role": {role.value: int(role_counts.get(role, 0)) for role in UserRole},
                },
                "sessions": {
                    "total": UserSession.query.count(),
                    "active": tracker.count_active_sessions(),
                    "user_sessions": tracker.count_active_sessions(ctx.user_id),
                },
                "storage": {
                    "total_files": int(total_files),
                    "total_size": int(total_size),
                    "total_size_formatted": format_file_size(int(total_size)),
                    "user_files": int(user_files),
                    "user_size": int(user_size),
                },
                "activity": {
                    "logins_today": logins_since(today),
                    "logins_week": logins_since(now - timedelta(days=7)),
                    "logins_month": logins_since(now - timedelta(days=30)),
                },
            },
        }
    )


@admin_bp.get("/diagnostic")
@admin_required
def diagnostic():
    checks: dict[str, Any] = {}
    healthy = True

    try:
        db.session.execute(text("SELECT 1"))
        checks["database"] = {"status": "ok"}
    except SQLAlchemyError as error:
        db.session.rollback()
        current_app.logger.warning("Database diagnostic failed", exc_info=True)
        checks["database"] = {"status": "error", "message": str(error.__class__.__name__)}
        healthy = False

    storage = StorageService.from_config()
    root = storage.base_path
    exists = root.is_dir()
    writable = exists and os.access(root, os.W_OK)
    storage_check: dict[str, Any] = {
        "status": "ok" if writable else "error",
        "exists": exists,
        "writable": writable,
    }
    if exists:
        usage = shutil.disk_usage(root)
        used_bytes = storage.usage_bytes()
        storage_check.update(
            {
                "disk_total": usage.total,
                "disk_free": usage.free,
                "disk_free_formatted": format_file_size(usage.free),
                "used_bytes": used_bytes,
                "used_formatted": format_file_size(used_bytes),
            }
        )
    checks["storage"] = storage_check
    healthy = healthy and writable

    try:
        tracker = SessionTracker()
        checks["sessions"] = {
            "status": "ok",
            "active": tracker.count_active_sessions(),
            "total": UserSession.query.count(),
        }
    except (DataAccessError, SQLAlchemyError):
        db.session.rollback()
        checks["sessions"] = {"status": "error"}
        healthy = False

    return jsonify(
        {
            "status": "ok" if healthy else "degraded",
            "environment": current_app.config["ENV_NAME"],
            "timestamp": utc_now().isoformat(),
            "checks": checks,
        }
    )
