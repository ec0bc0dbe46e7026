from __future__ import annotations

import mimetypes
import os
import re
import secrets
import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import filetype
from flask import current_app
from werkzeug.datastructures import FileStorage

from .errors import APIError
from .results import ErrorKind, ServiceResult


DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024
SNIFF_BYTES = 8192

EXTENSION_CATEGORIES: dict[str, tuple[str, ...]] = {
    "image": ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico"),
    "document": ("pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf", "odt"),
    "archive": ("zip", "rar", "7z", "tar", "gz"),
    "video": ("mp4", "avi", "mov", "wmv", "flv", "mkv", "webm"),
    "audio": ("mp3", "wav", "ogg", "flac", "aac", "m4a"),
    "model": ("gltf", "glb", "obj", "fbx", "dae", "stl", "ply"),
}
CODE_AND_TEXT_EXTENSIONS = ("js", "css", "html", "php", "json", "xml", "yml", "yaml", "csv", "sql", "md")

ALLOWED_EXTENSIONS = frozenset(
    [extension for extensions in EXTENSION_CATEGORIES.values() for extension in extensions] + list(CODE_AND_TEXT_EXTENSIONS)
)

UPLOAD_ERROR_MESSAGES = {
    "no_file": "No file was uploaded.",
    "form_size": "The file exceeds the maximum size declared by the form.",
    "partial": "The file was only partially uploaded.",
}

INVALID_NAME_PATTERN = re.compile(r"[\\/\x00]")

DIR_MODE = 0o755
FILE_MODE = 0o644


def _safe_resolve(storage_root: Path, relative_path: str) -> Path:
    root = storage_root.resolve()
    candidate = (root / relative_path).resolve()
    if os.path.commonpath([str(root), str(candidate)]) != str(root):
        raise APIError(400, "INVALID_PATH", "Invalid storage path.")
    return candidate


def folder_name_error(name: str) -> str | None:
    cleaned = (name or "").strip()
    if not cleaned:
        return "The folder name is required."
    if len(cleaned) > 255:
        return "The folder name must be at most 255 characters."
    if INVALID_NAME_PATTERN.search(cleaned) or cleaned in {".", ".."}:
        return "The folder name contains invalid characters."
    return None


def format_file_size(size: int) -> str:
    if size >= 1024**3:
        return f"{size / 1024 ** 3:,.2f} GB"
    if size >= 1024**2:
        return f"{size / 1024 ** 2:,.2f} MB"
    if size >= 1024:
        return f"{size / 1024:,.2f} KB"
    return f"{size} bytes"


def get_file_type_category(extension: str) -> str:
    normalized = (extension or "").lower().lstrip(".")
    for category, extensions in EXTENSION_CATEGORIES.items():
        if normalized in extensions:
            return category
    return "other"


def file_extension(filename: str) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


def stream_size(file_obj: FileStorage) -> int:
    stream = file_obj.stream
    current = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(current)
    return size


def sniff_mime_type(file_obj: FileStorage, guess_from_name: bool = True) -> str:
    stream = file_obj.stream
    current = stream.tell()
    stream.seek(0)
    head = stream.read(SNIFF_BYTES)
    stream.seek(current)

    kind = filetype.guess(head) if head else None
    if kind is not None:
        return kind.mime

    if not guess_from_name:
        return "application/octet-stream"
    guessed, _ = mimetypes.guess_type(file_obj.filename or "")
    return guessed or "application/octet-stream"


@dataclass
class UploadValidation:
    valid: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)


class StorageService:
    def __init__(self, base_path: Path | str, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> None:
        self.base_path = Path(base_path)
        self.max_file_size = max_file_size

    @classmethod
    def from_config(cls) -> "StorageService":
        return cls(current_app.config["STORAGE_ROOT"], current_app.config["MAX_UPLOAD_SIZE_BYTES"])

    def user_dir_name(self, user_id: int) -> str:
        return f"user_{user_id}"

    def get_full_path(self, relative_path: str) -> Path:
        return _safe_resolve(self.base_path, relative_path)

    def file_exists(self, relative_path: str) -> bool:
        return self.get_full_path(relative_path).is_file()

    def _upload_error(self, file_obj: FileStorage) -> str | None:
        if not (file_obj.filename or "").strip():
            return "no_file"
        declared = file_obj.content_length
        if declared and declared > self.max_file_size:
            return "form_size"
        if declared and declared != stream_size(file_obj):
            return "partial"
        return None

    def validate_upload(self, file_obj: FileStorage | None) -> UploadValidation:
        if file_obj is None or file_obj.stream is None:
            return UploadValidation(False, "No file was received.")

        error_code = self._upload_error(file_obj)
        if error_code is not None:
            return UploadValidation(False, UPLOAD_ERROR_MESSAGES[error_code])

        size = stream_size(file_obj)
        if size > self.max_file_size:
            return UploadValidation(
                False,
                f"The file exceeds the maximum allowed size ({format_file_size(self.max_file_size)}).",
            )

        original_name = Path(file_obj.filename or "").name
        extension = file_extension(original_name)
        if extension not in ALLOWED_EXTENSIONS:
            return UploadValidation(False, f"File type not allowed: .{extension}")

        return UploadValidation(
            True,
            "Valid file.",
            {
                "mime_type": sniff_mime_type(file_obj),
                "extension": extension,
                "size": size,
                "original_name": original_name,
            },
        )

    def _ensure_dir(self, path: Path) -> bool:
        created = not path.is_dir()
        path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        if created:
            os.chmod(path, DIR_MODE)
        return created

    def _unique_file_name(self, extension: str) -> str:
        return f"file_{time.time_ns():x}_{secrets.token_hex(6)}_{int(time.time())}.{extension}"

    def save_file(self, file_obj: FileStorage | None, user_id: int) -> ServiceResult:
        validation = self.validate_upload(file_obj)
        if file_obj is None or not validation.valid:
            return ServiceResult.error(ErrorKind.VALIDATION, validation.message)

        info = validation.data
        user_dir = self.user_dir_name(user_id)
        file_name = self._unique_file_name(info["extension"])
        relative_path = f"{user_dir}/{file_name}"

        try:
            self._ensure_dir(self.get_full_path(user_dir))
            target_path = self.get_full_path(relative_path)
            file_obj.stream.seek(0)
            with target_path.open("wb") as output:
                shutil.copyfileobj(file_obj.stream, output)
            os.chmod(target_path, FILE_MODE)
        except OSError:
            current_app.logger.exception("Could not write upload for user_id=%s", user_id)
            return ServiceResult.error(ErrorKind.INFRA, "The file could not be saved to storage.")

        return ServiceResult.success(
            "File saved.",
            file_name=file_name,
            original_name=info["original_name"],
            file_path=relative_path,
            file_size=info["size"],
            file_type=info["mime_type"],
            file_extension=info["extension"],
        )

    def delete_file(self, relative_path: str | None) -> bool:
        if not relative_path:
            return False
        target_path = self.get_full_path(relative_path)
        if not target_path.is_file():
            return False
        target_path.unlink()
        return True

    def create_user_directory(self, user_id: int, folder_names: Iterable[str] | None = None) -> ServiceResult:
        names = list(folder_names) if folder_names is not None else list(current_app.config["DEFAULT_FOLDERS"])
        user_dir = self.user_dir_name(user_id)
        created: list[str] = []
        skipped: list[str] = []

        try:
            self._ensure_dir(self.get_full_path(user_dir))
            for name in names:
                if self._ensure_dir(self.get_full_path(f"{user_dir}/{name}")):
                    created.append(name)
                else:
                    skipped.append(name)
        except OSError:
            current_app.logger.exception("Could not create storage directory for user_id=%s", user_id)
            return ServiceResult.error(
                ErrorKind.INFRA,
                f"Could not create the storage directory for user {user_id}.",
                created_folders=created,
                skipped_folders=skipped,
            )

        return ServiceResult.success(
            "User directory ready.",
            created_folders=created,
            skipped_folders=skipped,
            total_folders=len(names),
            user_dir=user_dir,
        )

    def sync_user_folders(self, user_id: int, folder_names: Iterable[str]) -> ServiceResult:
        names = list(folder_names)
        user_dir = self.user_dir_name(user_id)
        if not self.get_full_path(user_dir).is_dir():
            return self.create_user_directory(user_id, names)

        created: list[str] = []
        existing: list[str] = []
        try:
            for name in names:
                if self._ensure_dir(self.get_full_path(f"{user_dir}/{name}")):
                    created.append(name)
                else:
                    existing.append(name)
        except OSError:
            current_app.logger.exception("Could not sync storage folders for user_id=%s", user_id)
            return ServiceResult.error(ErrorKind.INFRA, "Could not synchronize the user folders.", created=created)

        return ServiceResult.success("Folders synchronized.", created=created, existing=existing, total=len(names))

    def create_folder_directory(self, user_id: int, folder_name: str) -> bool:
        return self._ensure_dir(self.get_full_path(f"{self.user_dir_name(user_id)}/{folder_name}"))

    def usage_bytes(self) -> int:
        if not self.base_path.is_dir():
            return 0
        return sum(path.stat().st_size for path in self.base_path.rglob("*") if path.is_file())
