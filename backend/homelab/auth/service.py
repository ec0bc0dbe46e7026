from __future__ import annotations

import re
from typing import Any

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..common.errors import DataAccessError
from ..common.results import ErrorKind, ServiceResult
from ..common.storage import StorageService
from ..extensions import db
from ..files.repository import FolderRepository
from ..models import User, UserRole, UserStatus


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z0-9-]{2,}$")
PHONE_PATTERN = re.compile(r"^\d+$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

INVALID_CREDENTIALS_MESSAGE = "Incorrect credentials."
DISABLED_ACCOUNT_MESSAGE = "Account disabled or without permissions."

DEFAULT_FOLDER_DESCRIPTIONS = {
    "Documentos": "Documents and important files",
    "Música": "Audio and music files",
    "Videos": "Video files",
    "Imágenes": "Photos and images",
}

SESSION_FIELDS = ("user_id", "first_name", "last_name", "email", "phone", "status", "role")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


class AuthService:
    def __init__(self, storage: StorageService | None = None, folders: FolderRepository | None = None) -> None:
        self.storage = storage or StorageService.from_config()
        self.folders = folders or FolderRepository()

    def find_user(self, identifier: str) -> User | None:
        cleaned = identifier.strip()
        if "@" in cleaned and is_valid_email(cleaned):
            return User.query.filter(func.lower(User.email) == cleaned.lower()).one_or_none()
        if PHONE_PATTERN.match(cleaned):
            return User.query.filter(User.phone == cleaned).one_or_none()
        return User.query.filter(func.lower(User.username) == cleaned.lower()).one_or_none()

    def validate_credentials(self, identifier: str | None, password: str | None) -> ServiceResult:
        if not (identifier or "").strip() or not password:
            return ServiceResult.error(ErrorKind.VALIDATION, "Incomplete credentials.")

        try:
            user = self.find_user(identifier or "")
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Credential lookup failed")
            return ServiceResult.error(ErrorKind.INFRA, "Internal server error.")

        if user is None or not user.verify_password(password):
            return ServiceResult.error(ErrorKind.UNAUTHENTICATED, INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            return ServiceResult.error(ErrorKind.FORBIDDEN, DISABLED_ACCOUNT_MESSAGE)

        self._rehash_if_needed(user, password)
        self.ensure_user_storage_structure(user.id)
        return ServiceResult.success("Valid credentials.", user=user.to_dict())

    def _rehash_if_needed(self, user: User, password: str) -> None:
        if not user.password_needs_rehash():
            return
        try:
            user.set_password(password)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.warning("Password rehash failed for user_id=%s", user.id, exc_info=True)

    def ensure_user_storage_structure(self, user_id: int) -> None:
        try:
            root_folders = self.folders.list_by_user(user_id, None)
            if root_folders:
                result = self.storage.sync_user_folders(user_id, [folder.folder_name for folder in root_folders])
                recreated = result.data.get("created") or result.data.get("created_folders")
                if result.ok and recreated:
                    current_app.logger.info(
                        "Recreated storage folders for user_id=%s: %s",
                        user_id,
                        ", ".join(recreated),
                    )
            else:
                result = self.storage.create_user_directory(user_id)
                if result.ok and result.data.get("created_folders"):
                    current_app.logger.info("Created storage layout for user_id=%s", user_id)
            if not result.ok:
                current_app.logger.warning("Storage sync for user_id=%s failed: %s", user_id, result.message)
        except (DataAccessError, OSError):
            current_app.logger.warning("Storage sync for user_id=%s failed", user_id, exc_info=True)

    @staticmethod
    def prepare_user_session_data(user: User | dict[str, Any]) -> dict[str, Any]:
        record = user.to_dict() if isinstance(user, User) else user
        data = {field: record.get(field) for field in SESSION_FIELDS if field != "user_id"}
        data["user_id"] = record.get("user_id", record.get("id"))
        return data


class RegisterService:
    def __init__(self, storage: StorageService | None = None, folders: FolderRepository | None = None) -> None:
        self.storage = storage or StorageService.from_config()
        self.folders = folders or FolderRepository()

    def validate(self, payload: dict[str, Any]) -> ServiceResult | None:
        for field in ("first_name", "last_name", "username", "email", "password"):
            if not str(payload.get(field) or "").strip():
                return ServiceResult.error(ErrorKind.VALIDATION, f"The field {field} is required.")

        username = str(payload["username"]).strip()
        if len(username) < 3 or not USERNAME_PATTERN.match(username):
            return ServiceResult.error(
                ErrorKind.VALIDATION,
                "The username must be at least 3 characters of letters, digits, dots, dashes or underscores.",
            )
        if PHONE_PATTERN.match(username):
            return ServiceResult.error(ErrorKind.VALIDATION, "The username cannot be only digits.")
        if not is_valid_email(str(payload["email"]).strip()):
            return ServiceResult.error(ErrorKind.VALIDATION, "Invalid email format.")
        if len(str(payload["password"])) < 8:
            return ServiceResult.error(ErrorKind.VALIDATION, "The password must be at least 8 characters.")

        phone = str(payload.get("phone") or "").strip()
        if phone and not PHONE_PATTERN.match(phone):
            return ServiceResult.error(ErrorKind.VALIDATION, "The phone number must contain digits only.")
        return None

    def find_conflict(self, email: str, username: str, phone: str | None, exclude_id: int | None = None) -> str | None:
        checks: list[tuple[str, Any]] = [
            ("email", func.lower(User.email) == email.lower()),
            ("username", func.lower(User.username) == username.lower()),
        ]
        if phone:
            checks.append(("phone", User.phone == phone))

        for field, condition in checks:
            query = User.query.filter(condition)
            if exclude_id is not None:
                query = query.filter(User.id != exclude_id)
            if query.first() is not None:
                return field
        return None

    def register(
        self,
        payload: dict[str, Any],
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> ServiceResult:
        invalid = self.validate(payload)
        if invalid is not None:
            return invalid

        email = str(payload["email"]).strip()
        username = str(payload["username"]).strip()
        phone = str(payload.get("phone") or "").strip() or None

        conflict = self.find_conflict(email, username, phone)
        if conflict is not None:
            return ServiceResult.error(ErrorKind.CONFLICT, f"The {conflict} is already in use.", field=conflict)

        folder_names = list(current_app.config["DEFAULT_FOLDERS"])
        try:
            user = User(
                first_name=str(payload["first_name"]).strip(),
                last_name=str(payload["last_name"]).strip(),
                username=username,
                email=email,
                phone=phone,
                role=role,
                status=status,
            )
            user.set_password(str(payload["password"]))
            db.session.add(user)
            db.session.flush()

            for name in folder_names:
                self.folders.create(
                    user_id=user.id,
                    folder_name=name,
                    folder_path=f"/{name}",
                    description=DEFAULT_FOLDER_DESCRIPTIONS.get(name),
                    commit=False,
                )

            storage_result = self.storage.create_user_directory(user.id, folder_names)
            if not storage_result.ok:
                db.session.rollback()
                current_app.logger.error("Registration rolled back, storage failed: %s", storage_result.message)
                return ServiceResult.error(ErrorKind.INFRA, "Error creating the user storage structure.")

            db.session.commit()
        except (SQLAlchemyError, DataAccessError):
            db.session.rollback()
            current_app.logger.exception("Registration failed for username=%s", username)
            return ServiceResult.error(ErrorKind.INFRA, "Error creating the user account.")

        current_app.logger.info("Registered user_id=%s with %s default folders", user.id, len(folder_names))
        return ServiceResult.success(
            "User registered successfully with default folders.",
            user_id=user.id,
            user=user.to_dict(),
            folders_created={
                "database": len(folder_names),
                "filesystem": storage_result.data.get("created_folders", []),
            },
        )
