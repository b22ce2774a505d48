"""Stage outcome tags: every stage hands back a usable value, marked Real or Degraded."""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Real(Generic[T]):
    """Value produced by the live AI service."""

    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Value produced by a fallback path (salvage or mock). reason says which and why, e.g. 'no_credential', 'unparsable_json'."""

    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


StageOutcome = Union[Real[T], Degraded[T]]
