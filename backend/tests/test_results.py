from __future__ import annotations

from homelab.common.results import ErrorKind, ServiceResult, commit_or_compensate


def test_error_kinds_map_to_http_status():
    assert ServiceResult.success("ok").http_status == 200
    assert ServiceResult.warning("partial").http_status == 200
    assert ServiceResult.error(ErrorKind.VALIDATION, "bad").http_status == 400
    assert ServiceResult.error(ErrorKind.UNAUTHENTICATED, "who").http_status == 401
    assert ServiceResult.error(ErrorKind.FORBIDDEN, "no").http_status == 403
    assert ServiceResult.error(ErrorKind.NOT_FOUND, "gone").http_status == 404
    assert ServiceResult.error(ErrorKind.CONFLICT, "dup").http_status == 409
    assert ServiceResult.error(ErrorKind.INFRA, "boom").http_status == 500


def test_error_payload_carries_envelope():
    payload = ServiceResult.error(ErrorKind.NOT_FOUND, "File not found.", file_id=3).to_payload()
    assert payload["status"] == "error"
    assert payload["file_id"] == 3
    assert payload["error"] == {"code": "NOT_FOUND", "message": "File not found.", "details": {}}


def test_commit_or_compensate_success_skips_undo(app):
    undone: list[ServiceResult] = []
    with app.app_context():
        result = commit_or_compensate(
            lambda: ServiceResult.success("written", path="a"),
            lambda written: ServiceResult.success("inserted", row=written.data["path"]),
            undone.append,
        )
    assert result.ok
    assert result.data == {"row": "a"}
    assert undone == []


def test_commit_or_compensate_failed_write_skips_insert(app):
    calls: list[str] = []
    with app.app_context():
        result = commit_or_compensate(
            lambda: ServiceResult.error(ErrorKind.VALIDATION, "invalid"),
            lambda written: calls.append("insert") or ServiceResult.success(),
            lambda written: calls.append("undo"),
        )
    assert result.kind == ErrorKind.VALIDATION
    assert calls == []


def test_commit_or_compensate_undoes_on_failed_insert(app):
    undone: list[str] = []
    with app.app_context():
        result = commit_or_compensate(
            lambda: ServiceResult.success("written", path="user_1/f.txt"),
            lambda written: ServiceResult.error(ErrorKind.INFRA, "db down"),
            lambda written: undone.append(written.data["path"]),
        )
    assert result.message == "db down"
    assert undone == ["user_1/f.txt"]


def test_commit_or_compensate_undoes_when_insert_raises(app):
    undone: list[str] = []

    def insert(written: ServiceResult) -> ServiceResult:
        raise RuntimeError("connection lost")

    def undo(written: ServiceResult) -> None:
        undone.append(written.data["path"])
        raise OSError("disk gone")

    with app.app_context():
        result = commit_or_compensate(lambda: ServiceResult.success("written", path="p"), insert, undo)

    assert result.kind == ErrorKind.INFRA
    assert undone == ["p"]
