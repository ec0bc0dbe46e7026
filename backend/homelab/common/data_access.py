from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from .errors import DataAccessError


@contextmanager
def data_access(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as error:
        db.session.rollback()
        raise DataAccessError(f"Database error while trying to {action}.") from error


def finish(commit: bool) -> None:
    if commit:
        db.session.commit()
    else:
        db.session.flush()
