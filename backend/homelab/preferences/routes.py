from __future__ import annotations

import json
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..common.errors import APIError
from ..common.rbac import auth_required, request_context
from ..extensions import db
from ..models import UserHomelabConfig


preferences_bp = Blueprint("preferences", __name__, url_prefix="/homelab")

ALLOWED_THEMES = {"dark", "light"}
ALLOWED_COLOR_MODES = {"default", "high_contrast"}

DEFAULT_HOMELAB_CONFIG: dict[str, Any] = {
    "theme": "dark",
    "clock_format": "24",
    "color_accessibility": "default",
    "consent_privacy": True,
    "seen_homelab_modal": False,
    "preferences": {},
}


def _normalize_clock_format(value: Any) -> str:
    try:
        return "12" if int(value) == 12 else "24"
    except (TypeError, ValueError):
        return "24"


def _normalize_preferences(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _sanitize_homelab_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Keep only recognised fields, normalised; unknown or invalid values are dropped."""
    sanitized: dict[str, Any] = {}
    if raw.get("theme") in ALLOWED_THEMES:
        sanitized["theme"] = raw["theme"]
    if raw.get("clock_format") is not None:
        sanitized["clock_format"] = _normalize_clock_format(raw["clock_format"])
    if raw.get("color_accessibility") in ALLOWED_COLOR_MODES:
        sanitized["color_accessibility"] = raw["color_accessibility"]
    if raw.get("consent_privacy") is not None:
        sanitized["consent_privacy"] = bool(raw["consent_privacy"])
    if raw.get("seen_homelab_modal") is not None:
        sanitized["seen_homelab_modal"] = bool(raw["seen_homelab_modal"])
    if raw.get("preferences") is not None:
        sanitized["preferences"] = _normalize_preferences(raw["preferences"])
    return sanitized


def _default_config(user_id: int) -> dict[str, Any]:
    return {"user_id": user_id, **DEFAULT_HOMELAB_CONFIG, "created_at": None, "updated_at": None}


@preferences_bp.get("/config")
@auth_required
def get_config():
    ctx = request_context()
    config = db.session.get(UserHomelabConfig, ctx.user_id)
    data = config.to_dict() if config is not None else _default_config(ctx.user_id)
    return jsonify({"status": "success", "config": data, "stored": config is not None})


@preferences_bp.put("/config")
@auth_required
def update_config():
    ctx = request_context()
    payload = request.get_json(silent=True)
    if payload is None and request.get_data():
        raise APIError(400, "INVALID_JSON", "Invalid JSON in the request body.")

    changes = _sanitize_homelab_config(payload if isinstance(payload, dict) else {})
    if not changes:
        raise APIError(400, "NO_CHANGES", "No valid fields were provided to update.")

    config = db.session.get(UserHomelabConfig, ctx.user_id)
    if config is None:
        defaults = {key: value for key, value in DEFAULT_HOMELAB_CONFIG.items() if key != "preferences"}
        config = UserHomelabConfig(user_id=ctx.user_id, preferences={}, **defaults)
        db.session.add(config)

    for key, value in changes.items():
        setattr(config, key, value)

    try:
        db.session.commit()
    except SQLAlchemyError as error:
        db.session.rollback()
        current_app.logger.exception("Could not save home-lab config for user_id=%s", ctx.user_id)
        raise APIError(500, "CONFIG_SAVE_FAILED", "The configuration could not be saved.") from error

    return jsonify({"status": "success", "message": "Configuration updated.", "config": config.to_dict()})
