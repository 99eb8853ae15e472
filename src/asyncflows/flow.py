"""Flow and FlowState — description versus running instance.

A Flow is an immutable, reusable description of a combinator. start()
turns it into a FlowState, which owns every subscription it makes and
is disposed exactly once by whoever started it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

from asyncflows.completion import CompletionCoordinator
from asyncflows.errors import ErrorConsumer, Origin, report
from asyncflows.source import ValueConsumer, invoke

T = TypeVar("T")

logger = logging.getLogger("asyncflows.flow")


class Serializer:
    """Lets one event at a time through a flow and every flow nested in it.

    Sources may deliver from different tasks; whichever task holds the
    serializer runs its handler, awaits included, to the end before the
    next one starts. The holding task passes straight through again, so a
    handler may start nested flows or emit into a source it depends on.
    """

    __slots__ = ("_lock", "_owner")

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task[Any]] = None

    @property
    def held(self) -> bool:
        return self._owner is not None

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            yield
            return
        async with self._lock:
            self._owner = task
            try:
                yield
            finally:
                self._owner = None

    def __repr__(self) -> str:
        return f"Serializer(held={self.held})"


class Flow(ABC, Generic[T]):
    """An immutable combinator description. Cheap to build, started on demand."""

    @abstractmethod
    async def start(self, *, serializer: Optional[Serializer] = None) -> FlowState[T]:
        """Subscribe to the sources and return the running state.

        A flow started by another flow's handler shares its serializer.
        """


class FlowState(ABC, Generic[T]):
    """A running flow.

    Subclasses bump the generation whenever a root event supersedes the
    current dependents; callbacks carry the generation they were created
    for and are dropped once it is stale. Every callback handed to a
    source goes through _serialized(). dispose() never waits on the
    serializer.
    """

    def __init__(
        self,
        consumer: ValueConsumer[T],
        on_error: Optional[ErrorConsumer] = None,
        serializer: Optional[Serializer] = None,
    ) -> None:
        self._consumer = consumer
        self._on_error = on_error
        self._serializer = serializer if serializer is not None else Serializer()
        self._disposed = False
        self._generation = 0
        self._finished = asyncio.Event()
        self._done_callbacks: list[Callable[[], Any]] = []
        self._completion = CompletionCoordinator(self._finish)

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def wait(self) -> None:
        """Wait for the flow to complete. May never return for unbounded sources."""
        await self._finished.wait()

    def add_done_callback(self, fn: Callable[[], Any]) -> None:
        """Call fn once the flow completes, or now if it already has."""
        if self.done:
            fn()
        else:
            self._done_callbacks.append(fn)

    async def dispose(self) -> None:
        """Cancel every subscription. Idempotent; no value is emitted afterwards."""
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        logger.debug("Disposing %s", type(self).__name__)
        await self._cancel()

    @abstractmethod
    async def _cancel(self) -> None:
        """Cancel the root subscription and the live generation."""

    async def __aenter__(self) -> FlowState[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return not self._disposed and generation == self._generation

    def _serialized(self, fn: Callable[..., Any]) -> Callable[..., Awaitable[None]]:
        async def _handle(*args: Any) -> None:
            async with self._serializer.hold():
                await invoke(fn, *args)

        return _handle

    async def _emit(self, value: T) -> None:
        if self._disposed:
            return
        await invoke(self._consumer, value)

    async def _report(self, origin: Origin, error: BaseException) -> None:
        if self._disposed:
            return
        await report(self._on_error, origin, error)

    def _finish(self) -> None:
        if self._finished.is_set():
            return
        self._finished.set()
        callbacks, self._done_callbacks = self._done_callbacks, []
        for fn in callbacks:
            fn()


class Mode(enum.Enum):
    """LAZY waits until every dependent has a value; EAGER emits on every update."""

    LAZY = "lazy"
    EAGER = "eager"
