from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge


class APIError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class DataAccessError(Exception):
    """Raised by the repositories when the database rejects a statement."""


def error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "status": "error",
        "message": message,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
    }


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):  # type: ignore[no-untyped-def]
        return jsonify(error_payload(error.code, error.message, error.details)), error.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error: RequestEntityTooLarge):  # type: ignore[no-untyped-def]
        limit = current_app.config.get("MAX_CONTENT_LENGTH")
        return (
            jsonify(error_payload("UPLOAD_TOO_LARGE", "The request body exceeds the maximum allowed size.", {"limit": limit})),
            413,
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore[no-untyped-def]
        return (
            jsonify(error_payload("HTTP_ERROR", error.description, {"status": error.code})),
            error.code or 500,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[no-untyped-def]
        app.logger.exception("Unhandled exception", exc_info=error)
        return jsonify(error_payload("INTERNAL_ERROR", "An unexpected error occurred.")), 500
