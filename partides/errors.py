from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID = "invalid"
    INTERNAL = "internal"


DEFAULT_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INVALID: 400,
    ErrorKind.INTERNAL: 500,
}

GENERIC_MESSAGE = "Error intern servidor"


class StoreError(Exception):
    """A failure reported to the client as ``{"error": ..., "kind": ...}``.

    The HTTP status defaults to the one associated with the kind; endpoints
    whose contract reports store failures with a different status (counter
    issuance answers 500 for everything) pass ``status_code`` explicitly.
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code if status_code is not None else DEFAULT_STATUS[kind]

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value}


def store_message(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


@contextmanager
def translate_store_errors(status_code: int):
    """Re-raise SQLAlchemy failures as StoreError with the endpoint's status."""
    try:
        yield
    except IntegrityError as exc:
        raise StoreError(ErrorKind.CONFLICT, store_message(exc), status_code) from exc
    except DataError as exc:
        raise StoreError(ErrorKind.INVALID, store_message(exc), status_code) from exc
    except SQLAlchemyError as exc:
        raise StoreError(ErrorKind.INTERNAL, store_message(exc), status_code) from exc
