from __future__ import annotations

import secrets
from typing import Any

from flask_jwt_extended import create_access_token, get_jwt


SESSION_ID_CLAIM = "sid"
SESSION_DATA_CLAIM = "session"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class TokenSessionStore:
    """Session read/write surface carried by the signed bearer token.

    The opaque session id travels in the ``sid`` claim and is the primary key of
    the tracked ``user_sessions`` row; the projected user data travels alongside
    it. Changes only reach the client through ``issue_token``.
    """

    def __init__(self, session_id: str | None = None, data: dict[str, Any] | None = None) -> None:
        self._session_id = session_id
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def from_request(cls) -> "TokenSessionStore":
        claims = get_jwt()
        data = claims.get(SESSION_DATA_CLAIM)
        return cls(claims.get(SESSION_ID_CLAIM), data if isinstance(data, dict) else {})

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def update(self, values: dict[str, Any]) -> None:
        self._data.update(values)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def destroy(self) -> None:
        self._data.clear()
        self._session_id = None

    def regenerate_id(self) -> str:
        self._session_id = new_session_id()
        return self._session_id

    def issue_token(self, identity: int) -> str:
        if self._session_id is None:
            self.regenerate_id()
        return create_access_token(
            identity=str(identity),
            additional_claims={SESSION_ID_CLAIM: self._session_id, SESSION_DATA_CLAIM: self._data},
        )
