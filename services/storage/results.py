"""Explicit result values returned by the storage repositories.

Repositories never raise for expected outcomes (missing rows, duplicate
keys, blocked deletes). They return ``Ok`` or ``Err`` and the HTTP layer
turns an ``Err`` into a JSON error response in one place,
``error_response``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTEGRITY = "INTEGRITY"
    STORAGE = "STORAGE"
    PARSE = "PARSE"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTEGRITY: 409,
    ErrorKind.STORAGE: 500,
    ErrorKind.PARSE: 400,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def error_response(err: Err) -> JSONResponse:
    """Render an ``Err`` as ``{"error": ..., "kind": ...}`` with its status."""
    return JSONResponse(
        {"error": err.message, "kind": err.kind.value},
        status_code=STATUS_BY_KIND[err.kind],
    )

