from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_JWT_SECRET = "dev-jwt-secret-key-change-me-at-least-32-bytes"


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    cleaned = raw.strip()
    return cleaned or default


def env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    values = [value.strip() for value in raw.split(",") if value.strip()]
    return values or list(default)


def env_origins() -> list[str]:
    raw_origins = os.getenv("FRONTEND_ORIGINS")
    if raw_origins:
        origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        if origins:
            return origins

    raw_origin = os.getenv("FRONTEND_ORIGIN")
    if raw_origin:
        origin = raw_origin.strip()
        if origin:
            return [origin]

    return ["http://localhost:5173", "http://127.0.0.1:5173"]


class Config:
    ENV_NAME = env_str("HOMELAB_ENV", "development")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'homelab.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_LIFETIME_SECONDS = max(60, env_int("SESSION_LIFETIME_SECONDS", 3600))

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(seconds=SESSION_LIFETIME_SECONDS)

    FRONTEND_ORIGINS = env_origins()
    FRONTEND_ORIGIN = FRONTEND_ORIGINS[0]

    STORAGE_ROOT = os.getenv("STORAGE_ROOT", str(BASE_DIR / "storage" / "app" / "private"))
    AVATAR_ROOT = os.getenv("AVATAR_ROOT", str(BASE_DIR / "storage" / "app" / "public" / "avatars"))
    DEFAULT_FOLDERS = env_list("DEFAULT_FOLDERS", ["Documentos", "Música", "Videos", "Imágenes"])

    ALLOW_REGISTRATION = env_bool("ALLOW_REGISTRATION", True)
    MAX_UPLOAD_SIZE_BYTES = env_int("MAX_UPLOAD_SIZE_BYTES", 50 * 1024 * 1024)
    AVATAR_MAX_SIZE_BYTES = env_int("AVATAR_MAX_SIZE_BYTES", 5 * 1024 * 1024)
    STORAGE_QUOTA_BYTES = env_int("STORAGE_QUOTA_BYTES", 10 * 1024 * 1024 * 1024)

    LOGIN_RATE_LIMIT_WINDOW_SECONDS = env_int("LOGIN_RATE_LIMIT_WINDOW_SECONDS", 300)
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS = env_int("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", 5)

    LOG_LEVEL = env_str("LOG_LEVEL", "INFO").upper()

    # Leave headroom above the per-file limit for multipart overhead.
    MAX_CONTENT_LENGTH = env_int("MAX_CONTENT_LENGTH", 64 * 1024 * 1024)
