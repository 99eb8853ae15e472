"""Completion coordinator — decides when a root-driven flow is finished.

A flow is finished once its root source will never emit again and the
dependents of the current generation have all completed. A dependent that
completes before the root has is just the end of one generation, so it is
ignored rather than remembered.
"""

from __future__ import annotations

import enum
from typing import Callable


class CompletionState(enum.Enum):
    IDLE = "idle"
    ROOT_SIGNALED = "root_signaled"
    DONE = "done"


class CompletionCoordinator:
    """Joins a root-done and a child-done signal into one completion.

    IDLE --root_done--> ROOT_SIGNALED --child_done--> DONE. Every other
    call is a no-op; no call ever raises.
    """

    __slots__ = ("_state", "_on_done")

    def __init__(self, on_done: Callable[[], None]) -> None:
        self._state = CompletionState.IDLE
        self._on_done = on_done

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state is CompletionState.DONE

    def root_done(self) -> None:
        if self._state is CompletionState.IDLE:
            self._state = CompletionState.ROOT_SIGNALED

    def child_done(self) -> None:
        if self._state is CompletionState.ROOT_SIGNALED:
            self._state = CompletionState.DONE
            self._on_done()

    def __repr__(self) -> str:
        return f"CompletionCoordinator({self._state.value})"
