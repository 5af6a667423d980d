"""Result values shared by the catalog ports, adapters and services.

Every store and service operation returns ``Ok(value)`` or
``Err(kind, message)``; views translate an ``Err`` into an HTTP response
using ``STATUS_BY_KIND`` and nothing else.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

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
    ErrorKind.STORAGE: 502,  # the storage API is an upstream dependency
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
