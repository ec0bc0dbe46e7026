from __future__ import annotations

from typing import Any

from sqlalchemy import case, func, or_

from ..common.data_access import data_access, finish
from ..extensions import db
from ..models import File, Folder


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FolderRepository:
    def create(
        self,
        *,
        user_id: int,
        folder_name: str,
        folder_path: str,
        parent_folder_id: int | None = None,
        description: str | None = None,
        is_shared: bool = False,
        commit: bool = True,
    ) -> Folder:
        with data_access("create the folder"):
            folder = Folder(
                user_id=user_id,
                parent_folder_id=parent_folder_id,
                folder_name=folder_name,
                folder_path=folder_path,
                description=description,
                is_shared=is_shared,
            )
            db.session.add(folder)
            finish(commit)
            return folder

    def find_by_id(self, folder_id: int) -> Folder | None:
        with data_access("load the folder"):
            return db.session.get(Folder, folder_id)

    def list_by_user(self, user_id: int, parent_id: int | None = None) -> list[Folder]:
        with data_access("list folders"):
            query = Folder.query.filter(Folder.user_id == user_id)
            if parent_id is None:
                query = query.filter(Folder.parent_folder_id.is_(None))
            else:
                query = query.filter(Folder.parent_folder_id == parent_id)
            return query.order_by(Folder.folder_name.asc(), Folder.id.asc()).all()

    def list_by_parent(self, parent_id: int | None) -> list[Folder]:
        with data_access("list folders"):
            if parent_id is None:
                query = Folder.query.filter(Folder.parent_folder_id.is_(None))
            else:
                query = Folder.query.filter(Folder.parent_folder_id == parent_id)
            return query.order_by(Folder.folder_name.asc(), Folder.id.asc()).all()

    def count_by_user(self, user_id: int) -> int:
        with data_access("count folders"):
            return Folder.query.filter(Folder.user_id == user_id).count()

    def delete(self, folder: Folder) -> None:
        # Subfolders and file rows go with it; files on disk are not touched.
        with data_access("delete the folder"):
            db.session.delete(folder)
            db.session.commit()

    def count_files(self, folder_id: int) -> int:
        with data_access("count folder files"):
            return File.query.filter(File.folder_id == folder_id).count()

    def get_full_path(self, folder_id: int) -> list[dict[str, Any]]:
        breadcrumb: list[dict[str, Any]] = []
        seen: set[int] = set()
        with data_access("resolve the folder path"):
            cursor = db.session.get(Folder, folder_id)
            while cursor is not None and cursor.id not in seen:
                seen.add(cursor.id)
                breadcrumb.append({"id": cursor.id, "name": cursor.folder_name})
                cursor = cursor.parent
        breadcrumb.reverse()
        return breadcrumb


class FileRepository:
    def create(self, *, commit: bool = True, **fields: Any) -> File:
        with data_access("register the file"):
            record = File(**fields)
            db.session.add(record)
            finish(commit)
            return record

    def find_by_id(self, file_id: int) -> File | None:
        with data_access("load the file"):
            return db.session.get(File, file_id)

    def list_by_user_and_folder(self, user_id: int, folder_id: int | None) -> list[File]:
        with data_access("list files"):
            query = File.query.filter(File.user_id == user_id)
            if folder_id is None:
                query = query.filter(File.folder_id.is_(None))
            else:
                query = query.filter(File.folder_id == folder_id)
            return query.order_by(File.created_at.desc(), File.id.desc()).all()

    def list_by_folder(self, folder_id: int) -> list[File]:
        with data_access("list files"):
            return (
                File.query.filter(File.folder_id == folder_id)
                .order_by(File.created_at.desc(), File.id.desc())
                .all()
            )

    def list_root_level(self) -> list[File]:
        with data_access("list files"):
            return (
                File.query.filter(File.folder_id.is_(None))
                .order_by(File.created_at.desc(), File.id.desc())
                .all()
            )

    def update(
        self,
        record: File,
        *,
        original_name: str | None = None,
        description: str | None = None,
        is_shared: bool | None = None,
    ) -> File:
        with data_access("update the file"):
            if original_name is not None:
                record.original_name = original_name
            if description is not None:
                record.description = description
            if is_shared is not None:
                record.is_shared = is_shared
            db.session.commit()
            return record

    def delete(self, record: File) -> None:
        with data_access("delete the file"):
            db.session.delete(record)
            db.session.commit()

    def increment_downloads(self, record: File) -> None:
        with data_access("update the download counter"):
            File.query.filter(File.id == record.id).update(
                {File.downloads: File.downloads + 1},
                synchronize_session=False,
            )
            db.session.commit()
            db.session.refresh(record)

    def get_user_stats(self, user_id: int) -> dict[str, int]:
        with data_access("compute storage stats"):
            total_files, total_size, shared_files = (
                db.session.query(
                    func.count(File.id),
                    func.coalesce(func.sum(File.file_size), 0),
                    func.coalesce(func.sum(case((File.is_shared.is_(True), 1), else_=0)), 0),
                )
                .filter(File.user_id == user_id)
                .one()
            )
        return {
            "total_files": int(total_files or 0),
            "total_size": int(total_size or 0),
            "shared_files": int(shared_files or 0),
        }

    def search(self, user_id: int, term: str, is_admin: bool = False) -> list[File]:
        pattern = f"%{escape_like(term)}%"
        with data_access("search files"):
            query = File.query.filter(
                or_(
                    File.original_name.ilike(pattern, escape="\\"),
                    File.file_name.ilike(pattern, escape="\\"),
                )
            )
            if not is_admin:
                query = query.filter(File.user_id == user_id)
            return query.order_by(File.created_at.desc(), File.id.desc()).all()
