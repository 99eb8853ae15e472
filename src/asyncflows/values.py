"""Immutable values emitted by the combinators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True)
class PairValue(Generic[K, V]):
    """The latest root value with the current state of its dependent."""

    key: K
    value: V


@dataclass(frozen=True)
class FanValue(Generic[K, V]):
    """A root value with one entry per dependent, in mapping order."""

    key: K
    values: Tuple[V, ...]


# One FanValue per key of the current batch, in batch order.
BatchValue = Tuple[FanValue[K, V], ...]
