import enum
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(enum.Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    SESSION_EXPIRED = "session_expired"
    NOT_FOUND = "not_found"
    BUSY = "busy"


@dataclass(frozen=True)
class BackendError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    ok = True


@dataclass(frozen=True)
class Err:
    error: BackendError

    ok = False

    @classmethod
    def of(cls, kind: ErrorKind, message: str) -> "Err":
        return cls(BackendError(kind, message))


Result = Union[Ok[T], Err]
