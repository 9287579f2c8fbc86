from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_MEMBER = "ALREADY_MEMBER"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    DUPLICATE_PENDING = "DUPLICATE_PENDING"
    NOT_PENDING = "NOT_PENDING"
    UNAUTHORIZED = "UNAUTHORIZED"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    # Only set for PERSISTENCE_FAILURE
    cause: Optional[BaseException] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a relationship operation: either a value or a Failure.

    Invariant violations such as a duplicate pending request are ordinary
    outcomes for the caller, so they travel back as values instead of
    exceptions.
    """

    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, cause: Optional[BaseException] = None) -> "Result[T]":
        return cls(error=Failure(kind=kind, message=message, cause=cause))
