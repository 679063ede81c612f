"""Tagged outcomes for steps that may degrade instead of failing."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from altus.orchestrators.search.constants import OutcomeKind

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Ok(value) | Degraded(reason, fallback value) | Fatal(error)."""

    kind: OutcomeKind
    value: T | None = None
    reason: str = ""
    error: Exception | None = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(kind=OutcomeKind.OK, value=value)

    @classmethod
    def degraded(cls, reason: str, value: T | None = None, error: Exception | None = None) -> "Outcome[T]":
        return cls(kind=OutcomeKind.DEGRADED, value=value, reason=reason, error=error)

    @classmethod
    def fatal(cls, error: Exception) -> "Outcome[T]":
        return cls(kind=OutcomeKind.FATAL, reason=str(error), error=error)

    @property
    def is_ok(self) -> bool:
        return self.kind == OutcomeKind.OK

    @property
    def is_degraded(self) -> bool:
        return self.kind == OutcomeKind.DEGRADED

    @property
    def is_fatal(self) -> bool:
        return self.kind == OutcomeKind.FATAL
