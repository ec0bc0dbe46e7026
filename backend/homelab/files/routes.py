from __future__ import annotations

from flask import Blueprint, request, send_file

from ..common.errors import APIError, DataAccessError
from ..common.rbac import auth_required, request_context
from ..common.results import ErrorKind, result_response
from .repository import FolderRepository
from .service import FileService, parse_flag, parse_folder_ref


files_bp = Blueprint("files", __name__, url_prefix="/files")


def _parse_folder_ref(value: str | int | None, field_name: str) -> int | None:
    try:
        return parse_folder_ref(value)
    except (TypeError, ValueError) as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer or root.") from error


def _parse_flag(value: str | None, field_name: str, default: bool = False) -> bool:
    if value is None:
        return default
    try:
        return parse_flag(value)
    except ValueError as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be 0 or 1.") from error


@files_bp.get("")
@auth_required
def list_files():
    ctx = request_context()
    folder_id = _parse_folder_ref(request.args.get("folder_id"), "folder_id")
    result = FileService().get_user_files(ctx.user_id, folder_id, ctx.is_admin)
    return result_response(result)


@files_bp.post("/upload")
@auth_required
def upload():
    ctx = request_context()

    folder_id = _parse_folder_ref(request.form.get("folder_id"), "folder_id")
    if folder_id is None:
        raise APIError(
            400,
            "FOLDER_REQUIRED",
            "Files cannot be uploaded to the root. Select a folder first.",
        )

    try:
        folder = FolderRepository().find_by_id(folder_id)
    except DataAccessError as error:
        raise APIError(500, "STORAGE_UNAVAILABLE", "The destination folder could not be loaded.") from error
    if folder is None:
        raise APIError(404, "FOLDER_NOT_FOUND", "The destination folder does not exist.")
    if not ctx.is_admin and folder.user_id != ctx.user_id:
        raise APIError(403, "FORBIDDEN", "You cannot upload files to this folder.")

    is_shared = _parse_flag(request.form.get("is_shared"), "is_shared") if ctx.is_admin else False

    result = FileService().upload_file(
        request.files.get("file"),
        ctx.user_id,
        folder_id,
        description=(request.form.get("description") or "").strip() or None,
        is_shared=is_shared,
    )
    return result_response(result, success_status=201)


@files_bp.get("/<int:file_id>")
@auth_required
def file_details(file_id: int):
    ctx = request_context()
    return result_response(FileService().get_file_details(file_id, ctx.user_id, ctx.is_admin))


@files_bp.patch("/<int:file_id>")
@auth_required
def update_file(file_id: int):
    ctx = request_context()
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")
    return result_response(FileService().update_file(file_id, ctx.user_id, payload, ctx.is_admin))


@files_bp.delete("/<int:item_id>")
@auth_required
def delete_item(item_id: int):
    ctx = request_context()
    item_type = (request.args.get("type") or "file").strip().lower()
    service = FileService()

    if item_type == "file":
        result = service.delete_file(item_id, ctx.user_id, ctx.is_admin)
    elif item_type == "folder":
        result = service.delete_folder(item_id, ctx.user_id, ctx.is_admin)
    else:
        raise APIError(400, "INVALID_PARAMETER", "type must be file or folder.")
    return result_response(result)


@files_bp.get("/<int:file_id>/download")
@auth_required
def download(file_id: int):
    ctx = request_context()
    inline = _parse_flag(request.args.get("inline"), "inline")

    result = FileService().prepare_download(file_id, ctx.user_id, ctx.is_admin)
    if not result.ok:
        return result_response(result)

    data = result.data
    response = send_file(
        data["file_path"],
        mimetype=data["file_type"] or "application/octet-stream",
        as_attachment=not inline,
        download_name=data["original_name"],
        max_age=0,
    )
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


@files_bp.post("/folders")
@auth_required
def create_folder():
    ctx = request_context()
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")

    result = FileService().create_folder(
        ctx.user_id,
        str(payload.get("name") or ""),
        parent_folder=payload.get("parent_folder"),
        description=(str(payload.get("description") or "").strip() or None),
        is_admin=ctx.is_admin,
    )
    return result_response(result, success_status=201)


@files_bp.get("/folders/<int:folder_id>/path")
@auth_required
def folder_path(folder_id: int):
    ctx = request_context()
    return result_response(FileService().get_breadcrumb(folder_id, ctx.user_id, ctx.is_admin))


@files_bp.get("/stats")
@auth_required
def stats():
    ctx = request_context()
    return result_response(FileService().get_user_stats(ctx.user_id))


@files_bp.get("/search")
@auth_required
def search():
    ctx = request_context()
    result = FileService().search_files(ctx.user_id, request.args.get("q") or "", ctx.is_admin)
    if not result.ok and result.kind == ErrorKind.VALIDATION:
        raise APIError(400, "INVALID_QUERY", result.message)
    return result_response(result)
