from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from flask import current_app, jsonify


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INFRA = "infra"


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INFRA: 500,
}


@dataclass
class ServiceResult:
    status: str
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    kind: ErrorKind | None = None

    @classmethod
    def success(cls, message: str = "", **data: Any) -> "ServiceResult":
        return cls(status="success", message=message, data=data)

    @classmethod
    def warning(cls, message: str, **data: Any) -> "ServiceResult":
        return cls(status="warning", message=message, data=data)

    @classmethod
    def error(cls, kind: ErrorKind, message: str, **data: Any) -> "ServiceResult":
        return cls(status="error", message=message, data=data, kind=kind)

    @property
    def ok(self) -> bool:
        return self.status != "error"

    @property
    def http_status(self) -> int:
        if self.status == "error":
            return ERROR_STATUS_CODES[self.kind or ErrorKind.INFRA]
        return 200

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status, "message": self.message, **self.data}
        if self.status == "error":
            kind = self.kind or ErrorKind.INFRA
            payload["error"] = {"code": kind.name, "message": self.message, "details": {}}
        return payload


def result_response(result: ServiceResult, success_status: int = 200):  # type: ignore[no-untyped-def]
    status_code = result.http_status if not result.ok else success_status
    return jsonify(result.to_payload()), status_code


def commit_or_compensate(
    write: Callable[[], ServiceResult],
    insert: Callable[[ServiceResult], ServiceResult],
    undo: Callable[[ServiceResult], Any],
) -> ServiceResult:
    """Run a side-effecting write, then the database insert that records it.

    When the insert fails, ``undo`` is invoked with the write result so the side
    effect does not outlive the failed insert. Errors raised by ``undo`` are logged
    and the insert failure is returned.
    """
    written = write()
    if not written.ok:
        return written

    try:
        inserted = insert(written)
    except Exception:
        current_app.logger.exception("Insert failed after write, compensating")
        inserted = ServiceResult.error(ErrorKind.INFRA, "The record could not be saved.")

    if inserted.ok:
        return inserted

    try:
        undo(written)
    except Exception:
        current_app.logger.exception("Compensation failed, storage may hold an orphan")
    return inserted
