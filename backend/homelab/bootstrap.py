from __future__ import annotations

from pathlib import Path

from flask import current_app

from .extensions import db
from .models import LegalMetadata, utc_now


LEGAL_DOCUMENTS = ("privacy",)


def ensure_storage_roots() -> None:
    for key in ("STORAGE_ROOT", "AVATAR_ROOT"):
        Path(current_app.config[key]).mkdir(parents=True, exist_ok=True)


def ensure_legal_metadata() -> None:
    for document_type in LEGAL_DOCUMENTS:
        metadata = LegalMetadata.query.filter_by(document_type=document_type).one_or_none()
        if metadata is None:
            db.session.add(
                LegalMetadata(
                    document_type=document_type,
                    version="1.0",
                    effective_date=utc_now().date(),
                )
            )


def bootstrap_defaults(commit: bool = False) -> None:
    ensure_storage_roots()
    ensure_legal_metadata()
    if commit:
        db.session.commit()
