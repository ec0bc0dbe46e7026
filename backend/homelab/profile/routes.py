from __future__ import annotations

import time
from datetime import date
from pathlib import Path
from typing import Any

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from sqlalchemy.exc import SQLAlchemyError

from ..auth.service import PHONE_PATTERN
from ..common.errors import APIError
from ..common.rbac import auth_required, request_context
from ..common.storage import FILE_MODE, file_extension, sniff_mime_type, stream_size
from ..extensions import db
from ..models import Gender, User


profile_bp = Blueprint("profile", __name__, url_prefix="/profile")

AVATAR_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
AVATAR_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
AVATAR_URL_PREFIX = "/profile/avatars/"
TEXT_FIELDS = {"first_name": 120, "last_name": 120, "country": 120, "city": 120}


def _avatar_root() -> Path:
    root = Path(current_app.config["AVATAR_ROOT"])
    root.mkdir(parents=True, exist_ok=True)
    return root


def _remove_avatar_file(avatar_path: str | None) -> None:
    if not avatar_path or not avatar_path.startswith(AVATAR_URL_PREFIX):
        return
    target = _avatar_root() / Path(avatar_path).name
    try:
        target.unlink(missing_ok=True)
    except OSError:
        current_app.logger.warning("Could not remove avatar %s", target, exc_info=True)


def _parse_birthdate(value: Any) -> date | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError as error:
        raise APIError(400, "INVALID_BIRTHDATE", "birthdate must be an ISO date (YYYY-MM-DD).") from error


def _parse_gender(value: Any) -> Gender | None:
    if value in (None, ""):
        return None
    try:
        return Gender(str(value).strip().lower())
    except ValueError as error:
        allowed = ", ".join(gender.value for gender in Gender)
        raise APIError(400, "INVALID_GENDER", f"gender must be one of: {allowed}.") from error


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as error:
        db.session.rollback()
        current_app.logger.exception("Profile update failed")
        raise APIError(500, "PROFILE_UPDATE_FAILED", "The profile could not be updated.") from error


@profile_bp.get("")
@auth_required
def get_profile():
    ctx = request_context()
    return jsonify({"status": "success", "user": ctx.user.to_dict()})


@profile_bp.patch("")
@auth_required
def update_profile():
    ctx = request_context()
    user = ctx.user
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")

    updated: list[str] = []

    for field_name, max_length in TEXT_FIELDS.items():
        if field_name not in payload:
            continue
        value = str(payload.get(field_name) or "").strip()
        if len(value) > max_length:
            raise APIError(400, "INVALID_PARAMETER", f"{field_name} cannot exceed {max_length} characters.")
        if not value:
            if field_name in {"first_name", "last_name"}:
                raise APIError(400, "INVALID_PARAMETER", f"{field_name} cannot be empty.")
            setattr(user, field_name, None)
        else:
            setattr(user, field_name, value)
        updated.append(field_name)

    if "phone" in payload:
        phone = str(payload.get("phone") or "").strip() or None
        if phone is not None:
            if not PHONE_PATTERN.match(phone):
                raise APIError(400, "INVALID_PHONE", "The phone number must contain digits only.")
            taken = User.query.filter(User.phone == phone, User.id != user.id).first()
            if taken is not None:
                raise APIError(409, "PHONE_EXISTS", "The phone is already in use.")
        user.phone = phone
        updated.append("phone")

    if "bio" in payload:
        bio = str(payload.get("bio") or "").strip()
        if len(bio) > 255:
            raise APIError(400, "INVALID_BIO", "The bio cannot exceed 255 characters.", {"current_length": len(bio)})
        user.bio = bio or None
        updated.append("bio")

    if "gender" in payload:
        user.gender = _parse_gender(payload.get("gender"))
        updated.append("gender")

    if "birthdate" in payload:
        user.birthdate = _parse_birthdate(payload.get("birthdate"))
        updated.append("birthdate")

    if not updated:
        raise APIError(400, "NO_CHANGES", "No valid fields to update.")

    _commit()
    return jsonify(
        {
            "status": "success",
            "message": "Profile updated successfully.",
            "updated_fields": updated,
            "user": user.to_dict(),
        }
    )


@profile_bp.post("/avatar")
@auth_required
def upload_avatar():
    ctx = request_context()
    user = ctx.user
    upload = request.files.get("profile_picture")
    if upload is None or not upload.filename:
        raise APIError(400, "NO_FILE", "No image was received.")

    if stream_size(upload) > int(current_app.config["AVATAR_MAX_SIZE_BYTES"]):
        raise APIError(400, "AVATAR_TOO_LARGE", "The image exceeds the maximum size of 5 MB.")

    extension = file_extension(upload.filename)
    if extension not in AVATAR_EXTENSIONS:
        raise APIError(400, "INVALID_EXTENSION", "File extension not allowed.")
    if sniff_mime_type(upload, guess_from_name=False) not in AVATAR_MIME_TYPES:
        raise APIError(400, "INVALID_IMAGE", "Image format not allowed. Only JPG, PNG, GIF and WEBP.")

    file_name = f"profile_{user.id}_{int(time.time())}.{extension}"
    target = _avatar_root() / file_name
    try:
        upload.save(target)
        target.chmod(FILE_MODE)
    except OSError as error:
        current_app.logger.exception("Could not store avatar for user_id=%s", user.id)
        raise APIError(500, "AVATAR_SAVE_FAILED", "The image could not be saved on the server.") from error

    previous = user.avatar_path
    user.avatar_path = f"{AVATAR_URL_PREFIX}{file_name}"
    try:
        db.session.commit()
    except SQLAlchemyError as error:
        db.session.rollback()
        target.unlink(missing_ok=True)
        current_app.logger.exception("Could not record avatar for user_id=%s", user.id)
        raise APIError(500, "AVATAR_SAVE_FAILED", "The profile picture could not be updated.") from error

    if previous and previous != user.avatar_path:
        _remove_avatar_file(previous)

    return jsonify(
        {
            "status": "success",
            "message": "Profile picture updated successfully.",
            "avatar_path": user.avatar_path,
        }
    )


@profile_bp.delete("/avatar")
@auth_required
def delete_avatar():
    ctx = request_context()
    user = ctx.user
    if not user.avatar_path:
        return jsonify({"status": "warning", "message": "There is no profile picture to delete."})

    previous = user.avatar_path
    user.avatar_path = None
    _commit()
    _remove_avatar_file(previous)
    return jsonify({"status": "success", "message": "Profile picture deleted successfully."})


@profile_bp.get("/avatars/<path:file_name>")
def avatar_file(file_name: str):
    return send_from_directory(_avatar_root(), file_name, max_age=0)
