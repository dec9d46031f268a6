"""
Terminal settlements of a Task.

**Design Pattern**: State Machine using Union types

A settled Task holds exactly one of:

- Fulfilled(value)
- Rejected(error, origin)

The same records are what `all_settled()` returns, so callers can pattern
match on them:

    ```python
    for settlement in await all_settled(tasks):
        match settlement:
            case Fulfilled(value):
                print("ok", value)
            case Rejected(error):
                print("failed", error)
    ```
"""

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar
from uuid import UUID

__all__ = [
    "Fulfilled",
    "Rejected",
    "Settlement",
    "is_fulfilled",
    "is_rejected",
]

T = TypeVar("T")


@dataclass(frozen=True)
class Fulfilled(Generic[T]):
    """Task settled successfully with `value`."""

    value: T

    @property
    def status(self) -> Literal["fulfilled"]:
        return "fulfilled"

    def __str__(self) -> str:
        return f"Fulfilled({self.value!r})"


@dataclass(frozen=True)
class Rejected:
    """
    Task settled with `error`.

    Attributes:
        error: The exception the task was rejected with
        origin: Id of the task where the rejection first happened.
            A rejection passed through `then()` without a handler keeps
            the origin of the task it came from.
    """

    error: BaseException
    origin: UUID | None = None

    @property
    def status(self) -> Literal["rejected"]:
        return "rejected"

    def __str__(self) -> str:
        return f"Rejected({type(self.error).__name__}: {self.error})"


Settlement = Fulfilled[T] | Rejected


def is_fulfilled(settlement: Settlement[T]) -> bool:
    return isinstance(settlement, Fulfilled)


def is_rejected(settlement: Settlement[T]) -> bool:
    return isinstance(settlement, Rejected)
