"""Snapshots — a value that may not have arrived yet.

A Snapshot is either Waiting or Data(value). Eager flows use it to mark
positions whose source has not emitted. Waiting is a real variant, not a
None sentinel, so Data(None) stays a legitimate value.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterable, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")


class Waiting:
    """No value yet."""

    __slots__ = ()
    __match_args__ = ()

    def choose(self, on_waiting: Callable[[], R], on_data: Callable[[object], R]) -> R:
        return on_waiting()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Waiting)

    def __hash__(self) -> int:
        return 0

    def __repr__(self) -> str:
        return "Waiting()"


class Data(Generic[T]):
    """A value that has arrived."""

    __slots__ = ("value",)
    __match_args__ = ("value",)

    def __init__(self, value: T) -> None:
        self.value = value

    def choose(self, on_waiting: Callable[[], R], on_data: Callable[[T], R]) -> R:
        return on_data(self.value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Data) and other.value == self.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"Data({self.value!r})"


Snapshot = Union[Waiting, Data[T]]

WAITING = Waiting()


def is_waiting(snapshot: Snapshot) -> bool:
    return snapshot.choose(lambda: True, lambda _: False)


def all_data(snapshots: Iterable[Snapshot]) -> bool:
    """True when no snapshot is Waiting. Vacuously true for an empty input."""
    return not any(is_waiting(s) for s in snapshots)


def unwrap_all(snapshots: Iterable[Snapshot[T]]) -> tuple[T, ...]:
    """Unwrap every Data. Raises ValueError if any snapshot is Waiting."""

    def _missing() -> T:
        raise ValueError("cannot unwrap a Waiting snapshot")

    return tuple(s.choose(_missing, lambda v: v) for s in snapshots)
