"""Result type for explicit error handling.

Every fallible operation in relay returns ``Ok(value)`` or ``Err(error)``
instead of raising. Callers narrow with ``isinstance`` or pattern matching:

    match await store.list_artifacts(revision):
        case Ok(artifacts):
            ...
        case Err(error):
            console.error(error.pretty())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying ``value``."""

    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome carrying ``error``."""

    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result: TypeAlias = Union[Ok[T], Err[E]]
