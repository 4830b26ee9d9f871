from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureReason(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID = "invalid"
    NO_EFFECT = "no_effect"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Failure:
    reason: FailureReason
    message: str


class ResultError(RuntimeError):
    def __init__(self, failure: Failure) -> None:
        super().__init__(f"{failure.reason.value}: {failure.message}")
        self.failure = failure


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a data-access call: a value or a typed failure, never both."""

    value: T | None = None
    failure: Failure | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> Result[T]:
        return cls(failure=Failure(reason=reason, message=message))

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T:
        if self.failure is not None:
            raise ResultError(self.failure)
        return self.value  # type: ignore[return-value]
