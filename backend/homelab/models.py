from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from .extensions import db


pwd_hasher = PasswordHasher()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_or_none(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        normalized = as_utc(value)
        return normalized.isoformat() if normalized else None
    return value.isoformat()


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BANNED = "banned"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNSPECIFIED = "unspecified"


class SessionCloseReason(str, enum.Enum):
    LOGOUT = "logout"
    EXPIRED = "expired"
    REMOTE = "remote"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(32), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.USER)
    status = db.Column(db.Enum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    first_name = db.Column(db.String(120), nullable=False, default="")
    last_name = db.Column(db.String(120), nullable=False, default="")
    bio = db.Column(db.String(255), nullable=True)
    gender = db.Column(db.Enum(Gender), nullable=True)
    birthdate = db.Column(db.Date, nullable=True)
    country = db.Column(db.String(120), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    avatar_path = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    folders = db.relationship("Folder", back_populates="owner", cascade="all, delete-orphan")
    files = db.relationship("File", back_populates="owner", cascade="all, delete-orphan")
    homelab_config = db.relationship(
        "UserHomelabConfig",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = pwd_hasher.hash(password)

    def verify_password(self, password: str) -> bool:
        try:
            return pwd_hasher.verify(self.password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def password_needs_rehash(self) -> bool:
        try:
            return pwd_hasher.check_needs_rehash(self.password_hash)
        except InvalidHashError:
            return True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "phone": self.phone,
            "role": self.role.value,
            "status": self.status.value,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "bio": self.bio,
            "gender": self.gender.value if self.gender else None,
            "birthdate": iso_or_none(self.birthdate),
            "country": self.country,
            "city": self.city,
            "avatar_path": self.avatar_path,
            "created_at": iso_or_none(self.created_at),
            "updated_at": iso_or_none(self.updated_at),
        }


class Folder(db.Model):
    __tablename__ = "folders"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_folder_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    folder_name = db.Column(db.String(255), nullable=False)
    folder_path = db.Column(db.String(512), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_shared = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    owner = db.relationship("User", back_populates="folders")
    parent = db.relationship("Folder", remote_side=[id], back_populates="children")
    children = db.relationship("Folder", back_populates="parent", cascade="all, delete-orphan")
    files = db.relationship("File", back_populates="folder", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "parent_folder_id": self.parent_folder_id,
            "folder_name": self.folder_name,
            "folder_path": self.folder_path,
            "description": self.description,
            "is_shared": self.is_shared,
            "owner_name": self.owner.full_name if self.owner else None,
            "created_at": iso_or_none(self.created_at),
            "updated_at": iso_or_none(self.updated_at),
        }


class File(db.Model):
    __tablename__ = "files"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    file_name = db.Column(db.String(255), nullable=False, unique=True)
    original_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(512), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False, default=0)
    file_type = db.Column(db.String(255), nullable=False, default="application/octet-stream")
    file_extension = db.Column(db.String(32), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    is_shared = db.Column(db.Boolean, nullable=False, default=False)
    downloads = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    owner = db.relationship("User", back_populates="files")
    folder = db.relationship("Folder", back_populates="files")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "folder_id": self.folder_id,
            "file_name": self.file_name,
            "original_name": self.original_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "file_extension": self.file_extension,
            "description": self.description,
            "is_shared": self.is_shared,
            "downloads": self.downloads,
            "owner_name": self.owner.full_name if self.owner else None,
            "created_at": iso_or_none(self.created_at),
            "updated_at": iso_or_none(self.updated_at),
        }


class UserSession(db.Model):
    __tablename__ = "user_sessions"

    session_id = db.Column(db.String(128), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = db.Column(db.String(64), nullable=False, default="unknown")
    user_agent = db.Column(db.Text, nullable=True)
    browser = db.Column(db.String(64), nullable=False, default="Unknown")
    os = db.Column(db.String(64), nullable=False, default="Unknown")
    device_type = db.Column(db.String(32), nullable=False, default="unknown")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    close_reason = db.Column(db.Enum(SessionCloseReason), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "browser": self.browser,
            "os": self.os,
            "device_type": self.device_type,
            "is_active": self.is_active,
            "created_at": iso_or_none(self.created_at),
            "expires_at": iso_or_none(self.expires_at),
            "last_activity": iso_or_none(self.last_activity),
            "closed_at": iso_or_none(self.closed_at),
            "closed_by": self.closed_by,
            "close_reason": self.close_reason.value if self.close_reason else None,
        }


class LegalPrivacy(db.Model):
    __tablename__ = "legal_privacy"

    id = db.Column(db.Integer, primary_key=True)
    section_number = db.Column(db.Integer, nullable=False)
    section_title = db.Column(db.String(255), nullable=False)
    paragraph_number = db.Column(db.Integer, nullable=False, default=1)
    paragraph_content = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "section_number": self.section_number,
            "section_title": self.section_title,
            "paragraph_number": self.paragraph_number,
            "paragraph_content": self.paragraph_content,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": iso_or_none(self.created_at),
            "updated_at": iso_or_none(self.updated_at),
        }


class LegalMetadata(db.Model):
    __tablename__ = "legal_metadata"

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(64), nullable=False, unique=True)
    version = db.Column(db.String(32), nullable=False, default="1.0")
    effective_date = db.Column(db.Date, nullable=True)
    change_log = db.Column(db.Text, nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type,
            "version": self.version,
            "effective_date": iso_or_none(self.effective_date),
            "change_log": self.change_log,
            "updated_by": self.updated_by,
            "updated_at": iso_or_none(self.updated_at),
        }


class UserHomelabConfig(db.Model):
    __tablename__ = "user_homelab_config"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    theme = db.Column(db.String(16), nullable=False, default="dark")
    clock_format = db.Column(db.String(4), nullable=False, default="24")
    color_accessibility = db.Column(db.String(32), nullable=False, default="default")
    consent_privacy = db.Column(db.Boolean, nullable=False, default=False)
    seen_homelab_modal = db.Column(db.Boolean, nullable=False, default=False)
    preferences = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="homelab_config")

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "theme": self.theme,
            "clock_format": self.clock_format,
            "color_accessibility": self.color_accessibility,
            "consent_privacy": self.consent_privacy,
            "seen_homelab_modal": self.seen_homelab_modal,
            "preferences": self.preferences or {},
            "created_at": iso_or_none(self.created_at),
            "updated_at": iso_or_none(self.updated_at),
        }
