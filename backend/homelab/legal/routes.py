from __future__ import annotations

from datetime import date
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..common.errors import APIError
from ..common.rbac import admin_required, request_context
from ..extensions import db
from ..models import LegalMetadata, LegalPrivacy, utc_now


legal_bp = Blueprint("legal", __name__, url_prefix="/legal")

PRIVACY_DOCUMENT = "privacy"
REQUIRED_PARAGRAPH_FIELDS = ("section_number", "section_title", "paragraph_number", "paragraph_content")


def _json_object() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not payload:
        raise APIError(400, "INVALID_PAYLOAD", "Invalid or empty data.")
    return payload


def _as_int(value: Any, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer.") from error


def _as_text(value: Any, field_name: str) -> str:
    cleaned = str(value or "").strip()
    if not cleaned:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} cannot be empty.")
    return cleaned


def _as_date(value: Any) -> date:
    if value in (None, ""):
        return utc_now().date()
    try:
        return date.fromisoformat(str(value))
    except ValueError as error:
        raise APIError(400, "INVALID_PARAMETER", "effective_date must be an ISO date (YYYY-MM-DD).") from error


def _get_paragraph(paragraph_id: int) -> LegalPrivacy:
    paragraph = db.session.get(LegalPrivacy, paragraph_id)
    if paragraph is None:
        raise APIError(404, "PARAGRAPH_NOT_FOUND", "Paragraph not found.")
    return paragraph


def _privacy_metadata() -> LegalMetadata:
    metadata = LegalMetadata.query.filter_by(document_type=PRIVACY_DOCUMENT).one_or_none()
    if metadata is None:
        metadata = LegalMetadata(document_type=PRIVACY_DOCUMENT, version="1.0", effective_date=utc_now().date())
        db.session.add(metadata)
        db.session.flush()
    return metadata


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as error:
        db.session.rollback()
        current_app.logger.exception("Could not %s", action)
        raise APIError(500, "LEGAL_UPDATE_FAILED", f"Could not {action}.") from error


def _ordered(query):  # type: ignore[no-untyped-def]
    return query.order_by(
        LegalPrivacy.section_number.asc(),
        LegalPrivacy.display_order.asc(),
        LegalPrivacy.paragraph_number.asc(),
        LegalPrivacy.id.asc(),
    )


@legal_bp.get("/privacy")
def privacy_policy():
    paragraphs = _ordered(LegalPrivacy.query.filter(LegalPrivacy.is_active.is_(True))).all()

    sections: list[dict[str, Any]] = []
    by_number: dict[int, dict[str, Any]] = {}
    for paragraph in paragraphs:
        section = by_number.get(paragraph.section_number)
        if section is None:
            section = {
                "section_number": paragraph.section_number,
                "section_title": paragraph.section_title,
                "paragraphs": [],
            }
            by_number[paragraph.section_number] = section
            sections.append(section)
        section["paragraphs"].append(
            {"paragraph_number": paragraph.paragraph_number, "content": paragraph.paragraph_content}
        )

    metadata = LegalMetadata.query.filter_by(document_type=PRIVACY_DOCUMENT).one_or_none()
    return jsonify(
        {
            "status": "success",
            "metadata": {
                "version": metadata.version if metadata else "1.0",
                "effective_date": metadata.effective_date.isoformat() if metadata and metadata.effective_date else None,
                "last_updated": metadata.to_dict()["updated_at"] if metadata else None,
            },
            "sections": sections,
            "total_sections": len(sections),
        }
    )


@legal_bp.get("/privacy/all")
@admin_required
def list_all_paragraphs():
    paragraphs = _ordered(LegalPrivacy.query).all()
    metadata = _privacy_metadata()
    db.session.commit()
    return jsonify(
        {
            "status": "success",
            "paragraphs": [paragraph.to_dict() for paragraph in paragraphs],
            "total": len(paragraphs),
            "metadata": metadata.to_dict(),
        }
    )


@legal_bp.post("/privacy")
@admin_required
def create_paragraph():
    ctx = request_context()
    payload = _json_object()
    missing = [name for name in REQUIRED_PARAGRAPH_FIELDS if payload.get(name) in (None, "")]
    if missing:
        raise APIError(400, "MISSING_FIELD", f"Missing required field: {missing[0]}", {"missing": missing})

    paragraph = LegalPrivacy(
        section_number=_as_int(payload["section_number"], "section_number"),
        section_title=_as_text(payload["section_title"], "section_title"),
        paragraph_number=_as_int(payload["paragraph_number"], "paragraph_number"),
        paragraph_content=_as_text(payload["paragraph_content"], "paragraph_content"),
        is_active=bool(payload.get("is_active", True)),
        display_order=_as_int(payload.get("display_order", 0), "display_order"),
        created_by=ctx.user_id,
    )
    db.session.add(paragraph)
    _commit("create the paragraph")
    return jsonify({"status": "success", "message": "Paragraph created successfully.", "paragraph": paragraph.to_dict()}), 201


@legal_bp.patch("/privacy/<int:paragraph_id>")
@admin_required
def update_paragraph(paragraph_id: int):
    ctx = request_context()
    paragraph = _get_paragraph(paragraph_id)
    payload = _json_object()

    if "section_number" in payload:
        paragraph.section_number = _as_int(payload["section_number"], "section_number")
    if "section_title" in payload:
        paragraph.section_title = _as_text(payload["section_title"], "section_title")
    if "paragraph_number" in payload:
        paragraph.paragraph_number = _as_int(payload["paragraph_number"], "paragraph_number")
    if "paragraph_content" in payload:
        paragraph.paragraph_content = _as_text(payload["paragraph_content"], "paragraph_content")
    if "is_active" in payload:
        paragraph.is_active = bool(payload["is_active"])
    if "display_order" in payload:
        paragraph.display_order = _as_int(payload["display_order"], "display_order")
    paragraph.updated_by = ctx.user_id

    _commit("update the paragraph")
    return jsonify({"status": "success", "message": "Paragraph updated successfully.", "paragraph": paragraph.to_dict()})


@legal_bp.delete("/privacy/<int:paragraph_id>")
@admin_required
def delete_paragraph(paragraph_id: int):
    ctx = request_context()
    paragraph = _get_paragraph(paragraph_id)
    paragraph.is_active = False
    paragraph.updated_by = ctx.user_id
    _commit("delete the paragraph")
    return jsonify({"status": "success", "message": "Paragraph deleted successfully."})


@legal_bp.put("/privacy/metadata")
@admin_required
def update_metadata():
    ctx = request_context()
    payload = _json_object()

    metadata = _privacy_metadata()
    metadata.version = str(payload.get("version") or "1.0").strip()[:32]
    metadata.effective_date = _as_date(payload.get("effective_date"))
    metadata.change_log = str(payload.get("change_log") or "")
    metadata.updated_by = ctx.user_id

    _commit("update the privacy metadata")
    return jsonify({"status": "success", "message": "Metadata updated successfully.", "metadata": metadata.to_dict()})
