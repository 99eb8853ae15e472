"""Concrete event sources.

EventStream is a hot, push-based source: emit values, subscribe to them, and
compose with map/filter operators. Each operator returns a new stream
(immutable chain). dispose() tears down the entire chain.

from_iterable() is a cold source: each subscription walks the iterable from
the start in its own task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, Callable, Generic, Iterable, Optional, TypeVar, Union

from asyncflows.source import OnComplete, OnError, OnEvent, invoke

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

logger = logging.getLogger("asyncflows.stream")


class StreamSubscription(Generic[T]):
    """A subscriber registered on an EventStream."""

    __slots__ = ("_stream", "_on_event", "_on_complete", "_on_error", "_active")

    def __init__(
        self,
        stream: Optional[EventStream[T]],
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete],
        on_error: Optional[OnError],
    ) -> None:
        self._stream = stream
        self._on_event = on_event
        self._on_complete = on_complete
        self._on_error = on_error
        self._active = stream is not None

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving callbacks. Safe to call more than once."""
        self._active = False
        if self._stream is not None:
            self._stream._remove(self)
            self._stream = None

    async def _deliver(self, value: T) -> None:
        if self._active:
            await invoke(self._on_event, value)

    async def _fail(self, error: BaseException) -> None:
        if self._active:
            await invoke(self._on_error, error)

    async def _complete(self) -> None:
        if self._active:
            self._active = False
            await invoke(self._on_complete)


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining.

    Every subscriber callback is awaited before the next one runs, so a slow
    subscriber delays the emitter rather than queueing events.
    """

    def __init__(self) -> None:
        self._subscriptions: list[StreamSubscription[T]] = []
        self._children: list[EventStream] = []  # downstream streams for dispose
        self._closed = False
        self._disposed = False
        self._parent_disposer: Disposer | None = None

    @property
    def closed(self) -> bool:
        return self._closed or self._disposed

    async def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self.closed:
            return
        for sub in list(self._subscriptions):
            await sub._deliver(value)

    async def error(self, error: BaseException) -> None:
        """Push an error to all subscribers. The stream stays open."""
        if self.closed:
            return
        for sub in list(self._subscriptions):
            await sub._fail(error)

    async def close(self) -> None:
        """Complete the stream. Later emits are ignored."""
        if self.closed:
            return
        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for sub in subscriptions:
            await sub._complete()

    def subscribe(
        self,
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete] = None,
        on_error: Optional[OnError] = None,
    ) -> StreamSubscription[T]:
        """Register callbacks. Returns a subscription whose cancel() removes them.

        Subscribing to a closed stream returns an inert subscription.
        """
        if self.closed:
            return StreamSubscription(None, on_event, on_complete, on_error)
        sub = StreamSubscription(self, on_event, on_complete, on_error)
        self._subscriptions.append(sub)
        return sub

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()
        child._parent_disposer = self._track_child(child)

        async def _on_event(value: T) -> None:
            await child.emit(fn(value))

        self.subscribe(_on_event, child.close, child.error)
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()
        child._parent_disposer = self._track_child(child)

        async def _on_event(value: T) -> None:
            if fn(value):
                await child.emit(value)

        self.subscribe(_on_event, child.close, child.error)
        return child

    def dispose(self) -> None:
        """Tear down this stream and all downstream children.

        Subscribers are dropped without a completion callback.
        """
        self._disposed = True
        for sub in self._subscriptions:
            sub._active = False
        self._subscriptions.clear()
        for child in self._children:
            child.dispose()
        self._children.clear()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _remove(self, sub: StreamSubscription[T]) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass  # already removed

    def _track_child(self, child: EventStream) -> Disposer:
        """Register child for dispose propagation. Returns a disposer that removes it."""
        self._children.append(child)

        def _remove() -> None:
            try:
                self._children.remove(child)
            except ValueError:
                pass

        return _remove


class IterableSubscription(Generic[T]):
    """A subscription that pumps an iterable in a background task."""

    __slots__ = ("_task", "_cancelled")

    def __init__(
        self,
        items: Union[Iterable[T], AsyncIterable[T]],
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete],
        on_error: Optional[OnError],
    ) -> None:
        self._cancelled = False
        self._task = asyncio.ensure_future(self._pump(items, on_event, on_complete, on_error))

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._task.done()

    async def cancel(self) -> None:
        """Stop the pump and wait for its task to finish."""
        self._cancelled = True
        if self._task is asyncio.current_task():
            # Cancelled from one of our own callbacks; the pump exits on its next step.
            return
        if self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _pump(
        self,
        items: Union[Iterable[T], AsyncIterable[T]],
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete],
        on_error: Optional[OnError],
    ) -> None:
        is_async = hasattr(items, "__aiter__")
        iterator = items.__aiter__() if is_async else iter(items)
        while not self._cancelled:
            # Only the iterable's own failures are source errors; callback
            # exceptions propagate out of the task.
            try:
                item = await iterator.__anext__() if is_async else next(iterator)
            except (StopIteration, StopAsyncIteration):
                break
            except Exception as exc:
                if self._cancelled:
                    return
                logger.debug("Iterable source failed: %r", exc)
                await invoke(on_error, exc)
                break
            if self._cancelled:
                return
            await invoke(on_event, item)
            if not is_async:
                await asyncio.sleep(0)
        if not self._cancelled:
            await invoke(on_complete)


class IterableSource(Generic[T]):
    """Cold source over a sync or async iterable."""

    def __init__(self, items: Union[Iterable[T], AsyncIterable[T]]) -> None:
        self._items = items

    def subscribe(
        self,
        on_event: OnEvent[T],
        on_complete: Optional[OnComplete] = None,
        on_error: Optional[OnError] = None,
    ) -> IterableSubscription[T]:
        return IterableSubscription(self._items, on_event, on_complete, on_error)


def from_iterable(items: Union[Iterable[T], AsyncIterable[T]]) -> IterableSource[T]:
    """Make a cold source that emits every item, then completes.

    An exception raised by the iterable itself is passed to on_error and
    the subscription then completes. Exceptions raised by the subscriber's
    callbacks are not caught; they end the pump task without completing.

    Usage:
        source = from_iterable([1, 2, 3])
        state = await OneToOneFlow.lazy(source, mapping=..., consumer=print).start()
    """
    return IterableSource(items)
