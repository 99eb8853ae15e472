"""Expose a flow as a plain event source.

A FlowSource builds its flow when subscribed, forwards every value the flow
emits, and completes when the flow does. Cancelling the subscription
disposes the flow.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any, Callable, Generic, Optional, TypeVar

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.flow import Flow, FlowState
from asyncflows.source import OnComplete, OnError, OnEvent, ValueConsumer, invoke

T = TypeVar("T")

FlowBuilder = Callable[[ValueConsumer[T], ErrorConsumer], Flow[Any]]

logger = logging.getLogger("asyncflows.adapter")


class FlowSubscription(Generic[T]):
    """Runs one flow on behalf of one subscriber."""

    __slots__ = ("_on_event", "_on_complete", "_on_error", "_state", "_cancelled", "_task")

    def __init__(
        self,
        builder: FlowBuilder[T],
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete],
        on_error: Optional[OnError],
    ) -> None:
        self._on_event = on_event
        self._on_complete = on_complete
        self._on_error = on_error
        self._state: Optional[FlowState[Any]] = None
        self._cancelled = False
        self._task = asyncio.ensure_future(self._run(builder))

    @property
    def state(self) -> Optional[FlowState[Any]]:
        return self._state

    async def _run(self, builder: FlowBuilder[T]) -> None:
        try:
            flow = builder(self._forward, self._forward_error)
            self._state = await flow.start()
            await self._state.wait()
        except Exception as exc:
            if self._on_error is None:
                logger.exception("Flow behind a FlowSource failed: %r", exc)
            else:
                await invoke(self._on_error, exc)
            return
        if not self._cancelled:
            await invoke(self._on_complete)

    async def _forward(self, value: T) -> None:
        if not self._cancelled:
            await invoke(self._on_event, value)

    async def _forward_error(
        self,
        origin: Origin,
        error: BaseException,
        traceback: Optional[TracebackType],
    ) -> None:
        if self._cancelled:
            return
        if self._on_error is None:
            logger.error("Unhandled %s-side error in FlowSource: %r", origin.value, error, exc_info=error)
            return
        await invoke(self._on_error, error)

    async def cancel(self) -> None:
        """Stop forwarding and dispose the running flow."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not asyncio.current_task() and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._state is not None:
            await self._state.dispose()


class FlowSource(Generic[T]):
    """Single-subscription event source backed by a flow.

    Usage:
        source = FlowSource(
            lambda consumer, on_error: OneToOneFlow.lazy(
                users, mapping=orders_for, consumer=consumer, on_error=on_error,
            )
        )
        sub = source.subscribe(print)
    """

    def __init__(self, builder: FlowBuilder[T]) -> None:
        self._builder = builder
        self._subscription: Optional[FlowSubscription[T]] = None

    def subscribe(
        self,
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete] = None,
        on_error: Optional[OnError] = None,
    ) -> FlowSubscription[T]:
        if self._subscription is not None:
            raise RuntimeError("FlowSource has already been subscribed")
        self._subscription = FlowSubscription(self._builder, on_event, on_complete, on_error)
        return self._subscription


def as_source(builder: FlowBuilder[T]) -> FlowSource[T]:
    """Wrap a flow builder as an event source."""
    return FlowSource(builder)
