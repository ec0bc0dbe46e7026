from __future__ import annotations

import re
from typing import Any

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..common.errors import DataAccessError
from ..common.results import ErrorKind, ServiceResult, commit_or_compensate
from ..common.storage import StorageService, folder_name_error, format_file_size, get_file_type_category
from ..models import File, Folder, iso_or_none
from .repository import FileRepository, FolderRepository


SLUG_PATTERN = re.compile(r"[^A-Za-z0-9-]+")
GENERIC_INFRA_MESSAGE = "The operation could not be completed. Please try again later."


def slugify(name: str) -> str:
    return SLUG_PATTERN.sub("-", name.strip()).strip("-").lower()


def parse_folder_ref(value: Any) -> int | None:
    """Normalize a folder reference where ``None``, ``""`` and ``"root"`` mean top level."""
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        if cleaned.lower() in {"", "root", "null"}:
            return None
        return int(cleaned)
    return int(value)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    cleaned = str(value).strip().lower()
    if cleaned in {"1", "true", "yes", "on"}:
        return True
    if cleaned in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Invalid flag value: {value!r}")


def _infra_error(action: str) -> ServiceResult:
    current_app.logger.exception("File service failed to %s", action)
    return ServiceResult.error(ErrorKind.INFRA, GENERIC_INFRA_MESSAGE)


def folder_item(folder: Folder) -> dict[str, Any]:
    item = folder.to_dict()
    item.update(
        {
            "type": "folder",
            "id": folder.id,
            "name": folder.folder_name,
            "folderId": folder.parent_folder_id if folder.parent_folder_id is not None else "root",
            "date": iso_or_none(folder.created_at),
            "file_size_formatted": "-",
            "file_type_category": "folder",
            "file_extension": None,
        }
    )
    return item


def file_item(record: File) -> dict[str, Any]:
    item = record.to_dict()
    item.update(
        {
            "type": "file",
            "name": record.original_name,
            "folderId": record.folder_id if record.folder_id is not None else "root",
            "date": iso_or_none(record.created_at),
            "file_size_formatted": format_file_size(record.file_size),
            "file_type_category": get_file_type_category(record.file_extension),
        }
    )
    return item


class FileService:
    def __init__(
        self,
        storage: StorageService | None = None,
        files: FileRepository | None = None,
        folders: FolderRepository | None = None,
    ) -> None:
        self.storage = storage or StorageService.from_config()
        self.files = files or FileRepository()
        self.folders = folders or FolderRepository()

    def upload_file(
        self,
        file_obj: FileStorage | None,
        user_id: int,
        folder_id: int | None,
        description: str | None = None,
        is_shared: bool = False,
    ) -> ServiceResult:
        if folder_id is None:
            return ServiceResult.error(ErrorKind.VALIDATION, "Uploads must target a folder, not the storage root.")

        def write() -> ServiceResult:
            return self.storage.save_file(file_obj, user_id)

        def insert(written: ServiceResult) -> ServiceResult:
            saved = written.data
            try:
                record = self.files.create(
                    user_id=user_id,
                    folder_id=folder_id,
                    file_name=saved["file_name"],
                    original_name=saved["original_name"],
                    file_path=saved["file_path"],
                    file_size=saved["file_size"],
                    file_type=saved["file_type"],
                    file_extension=saved["file_extension"],
                    description=description or None,
                    is_shared=is_shared,
                )
            except DataAccessError:
                current_app.logger.warning("File row insert failed for user_id=%s", user_id, exc_info=True)
                return ServiceResult.error(ErrorKind.INFRA, "The file could not be registered in the database.")
            return ServiceResult.success("File uploaded successfully.", file_id=record.id, file=file_item(record))

        def undo(written: ServiceResult) -> None:
            self.storage.delete_file(written.data["file_path"])

        return commit_or_compensate(write, insert, undo)

    def get_user_files(self, user_id: int, folder_id: int | None = None, is_admin: bool = False) -> ServiceResult:
        try:
            if is_admin:
                folders = self.folders.list_by_parent(folder_id)
                files = self.files.list_root_level() if folder_id is None else self.files.list_by_folder(folder_id)
            else:
                folders = self.folders.list_by_user(user_id, folder_id)
                files = self.files.list_by_user_and_folder(user_id, folder_id)
        except DataAccessError:
            return _infra_error("list files")

        items = [folder_item(folder) for folder in folders] + [file_item(record) for record in files]
        return ServiceResult.success("", files=items, total=len(items), folder_id=folder_id)

    def _load_file(self, file_id: int, user_id: int, is_admin: bool) -> File | ServiceResult:
        record = self.files.find_by_id(file_id)
        if record is None:
            return ServiceResult.error(ErrorKind.NOT_FOUND, "File not found.")
        if not is_admin and record.user_id != user_id:
            return ServiceResult.error(ErrorKind.FORBIDDEN, "You do not have permission to access this file.")
        return record

    def get_file_details(self, file_id: int, user_id: int, is_admin: bool = False) -> ServiceResult:
        try:
            loaded = self._load_file(file_id, user_id, is_admin)
        except DataAccessError:
            return _infra_error("load a file")
        if isinstance(loaded, ServiceResult):
            return loaded

        item = file_item(loaded)
        item["file_exists"] = self.storage.file_exists(loaded.file_path)
        return ServiceResult.success("", file=item)

    def update_file(self, file_id: int, user_id: int, data: dict[str, Any], is_admin: bool = False) -> ServiceResult:
        try:
            loaded = self._load_file(file_id, user_id, is_admin)
            if isinstance(loaded, ServiceResult):
                return loaded

            original_name = data.get("filename")
            if original_name is not None:
                original_name = str(original_name).strip()
                if not original_name or len(original_name) > 255:
                    return ServiceResult.error(ErrorKind.VALIDATION, "The file name must be between 1 and 255 characters.")

            description = data.get("description")
            is_shared = data.get("is_shared")
            if is_shared is not None and not is_admin:
                return ServiceResult.error(ErrorKind.FORBIDDEN, "Only administrators can change the sharing flag.")
            self.files.update(
                loaded,
                original_name=original_name,
                description=str(description) if description is not None else None,
                is_shared=parse_flag(is_shared) if is_shared is not None else None,
            )
        except (TypeError, ValueError):
            return ServiceResult.error(ErrorKind.VALIDATION, "is_shared must be 0 or 1.")
        except DataAccessError:
            return _infra_error("update a file")

        return ServiceResult.success("File updated successfully.", file=file_item(loaded))

    def delete_file(self, file_id: int, user_id: int, is_admin: bool = False) -> ServiceResult:
        try:
            loaded = self._load_file(file_id, user_id, is_admin)
            if isinstance(loaded, ServiceResult):
                return loaded
            relative_path = loaded.file_path
            self.files.delete(loaded)
        except DataAccessError:
            return _infra_error("delete a file row")

        try:
            removed = self.storage.delete_file(relative_path)
        except OSError:
            current_app.logger.warning("Could not remove %s from storage", relative_path, exc_info=True)
            removed = False

        if not removed:
            current_app.logger.warning("File %s deleted from the database but missing on disk", file_id)
            return ServiceResult.warning("File removed from the database, but the physical file was not found.")
        return ServiceResult.success("File deleted successfully.")

    def delete_folder(self, folder_id: int, user_id: int, is_admin: bool = False) -> ServiceResult:
        try:
            folder = self.folders.find_by_id(folder_id)
            if folder is None:
                return ServiceResult.error(ErrorKind.NOT_FOUND, "Folder not found.")
            if not is_admin and folder.user_id != user_id:
                return ServiceResult.error(ErrorKind.FORBIDDEN, "You do not have permission to delete this folder.")
            files_removed = self.folders.count_files(folder.id)
            self.folders.delete(folder)
        except DataAccessError:
            return _infra_error("delete a folder")

        current_app.logger.info("Folder %s deleted with %s file row(s)", folder_id, files_removed)
        return ServiceResult.success("Folder deleted successfully.", files_removed=files_removed)

    def prepare_download(self, file_id: int, user_id: int, is_admin: bool = False) -> ServiceResult:
        try:
            loaded = self._load_file(file_id, user_id, is_admin)
            if isinstance(loaded, ServiceResult):
                return loaded
            if not self.storage.file_exists(loaded.file_path):
                current_app.logger.warning("File %s has a row but no data on disk", file_id)
                return ServiceResult.error(ErrorKind.NOT_FOUND, "The physical file does not exist on the server.")
            self.files.increment_downloads(loaded)
        except DataAccessError:
            return _infra_error("prepare a download")

        return ServiceResult.success(
            "",
            file_path=str(self.storage.get_full_path(loaded.file_path)),
            original_name=loaded.original_name,
            file_type=loaded.file_type,
            file_size=loaded.file_size,
            downloads=loaded.downloads,
        )

    def get_user_stats(self, user_id: int) -> ServiceResult:
        try:
            stats = self.files.get_user_stats(user_id)
            stats["total_folders"] = self.folders.count_by_user(user_id)
        except DataAccessError:
            return _infra_error("compute stats")

        quota = int(current_app.config["STORAGE_QUOTA_BYTES"])
        stats.update(
            {
                "total_size_formatted": format_file_size(stats["total_size"]),
                "max_storage": quota,
                "max_storage_formatted": format_file_size(quota),
                "usage_percent": round(stats["total_size"] / quota * 100, 2) if quota else 0.0,
            }
        )
        return ServiceResult.success("", stats=stats)

    def search_files(self, user_id: int, term: str, is_admin: bool = False) -> ServiceResult:
        cleaned = (term or "").strip()
        if not cleaned:
            return ServiceResult.error(ErrorKind.VALIDATION, "A search term is required.")
        try:
            results = self.files.search(user_id, cleaned, is_admin)
        except DataAccessError:
            return _infra_error("search files")
        items = [file_item(record) for record in results]
        return ServiceResult.success("", files=items, total=len(items), query=cleaned)

    def create_folder(
        self,
        user_id: int,
        name: str,
        parent_folder: Any = None,
        description: str | None = None,
        is_admin: bool = False,
    ) -> ServiceResult:
        error = folder_name_error(name)
        if error:
            return ServiceResult.error(ErrorKind.VALIDATION, error)
        folder_name = name.strip()

        try:
            parent_id = parse_folder_ref(parent_folder)
        except (TypeError, ValueError):
            return ServiceResult.error(ErrorKind.VALIDATION, "The parent folder reference is invalid.")

        owner_id = user_id
        try:
            if parent_id is not None:
                parent = self.folders.find_by_id(parent_id)
                if parent is None:
                    return ServiceResult.error(ErrorKind.NOT_FOUND, "Parent folder not found.")
                if not is_admin and parent.user_id != user_id:
                    return ServiceResult.error(ErrorKind.FORBIDDEN, "You cannot create folders inside this folder.")
                # A subfolder always belongs to the owner of its parent.
                owner_id = parent.user_id

            folder = self.folders.create(
                user_id=owner_id,
                folder_name=folder_name,
                folder_path=f"/user_{owner_id}/{slugify(folder_name)}",
                parent_folder_id=parent_id,
                description=description or None,
            )
        except DataAccessError:
            return _infra_error("create a folder")

        if parent_id is None:
            try:
                self.storage.create_folder_directory(user_id, folder_name)
            except OSError:
                current_app.logger.warning("Could not create directory for folder %s", folder.id, exc_info=True)

        return ServiceResult.success("Folder created successfully.", folder=folder_item(folder))

    def get_breadcrumb(self, folder_id: int, user_id: int, is_admin: bool = False) -> ServiceResult:
        try:
            folder = self.folders.find_by_id(folder_id)
            if folder is None:
                return ServiceResult.error(ErrorKind.NOT_FOUND, "Folder not found.")
            if not is_admin and folder.user_id != user_id:
                return ServiceResult.error(ErrorKind.FORBIDDEN, "You do not have permission to access this folder.")
            path = self.folders.get_full_path(folder_id)
        except DataAccessError:
            return _infra_error("resolve a folder path")
        return ServiceResult.success("", path=path)
