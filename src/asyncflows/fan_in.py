"""Fan-in — combine N sibling sources into one source of N-tuples.

Each position keeps the last value its source emitted. An update at one
position never resets or waits on the others.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Iterable, Optional

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.flow import Flow, FlowState, Mode, Serializer
from asyncflows.snapshot import WAITING, Data, Snapshot, all_data, unwrap_all
from asyncflows.source import EventSource, Subscription, ValueConsumer, cancel


@dataclass(frozen=True)
class FanInFlow(Flow[tuple]):
    """Combines a fixed, ordered list of sources.

    Lazy emits a tuple of values once every source has emitted; eager emits
    a tuple of snapshots on every update. With no sources both modes emit
    an empty tuple as soon as the flow starts.
    """

    sources: tuple[EventSource, ...]
    consumer: ValueConsumer[tuple]
    mode: Mode = Mode.LAZY
    on_error: Optional[ErrorConsumer] = None

    @classmethod
    def lazy(
        cls,
        sources: Iterable[EventSource],
        *,
        consumer: ValueConsumer[tuple],
        on_error: Optional[ErrorConsumer] = None,
    ) -> FanInFlow:
        return cls(tuple(sources), consumer, Mode.LAZY, on_error)

    @classmethod
    def eager(
        cls,
        sources: Iterable[EventSource],
        *,
        consumer: ValueConsumer[tuple],
        on_error: Optional[ErrorConsumer] = None,
    ) -> FanInFlow:
        return cls(tuple(sources), consumer, Mode.EAGER, on_error)

    async def start(self, *, serializer: Optional[Serializer] = None) -> FanInState:
        state = FanInState(self, serializer)
        if not self.sources:
            async with state._serializer.hold():
                await state._publish()
            state._finish()
        return state


class FanInState(FlowState[tuple]):
    def __init__(self, flow: FanInFlow, serializer: Optional[Serializer] = None) -> None:
        super().__init__(flow.consumer, flow.on_error, serializer)
        self._mode = flow.mode
        self._snapshots: list[Snapshot[Any]] = [WAITING] * len(flow.sources)
        self._done_flags = [False] * len(flow.sources)
        self._subscriptions: list[Subscription] = [
            source.subscribe(
                self._serialized(partial(self._on_event, i)),
                self._serialized(partial(self._on_done, i)),
                self._serialized(self._on_source_error),
            )
            for i, source in enumerate(flow.sources)
        ]

    @property
    def snapshots(self) -> tuple[Snapshot[Any], ...]:
        return tuple(self._snapshots)

    async def _on_event(self, index: int, value: Any) -> None:
        if self._disposed:
            return
        self._snapshots[index] = Data(value)
        await self._publish()

    async def _publish(self) -> None:
        snapshots = tuple(self._snapshots)
        if self._mode is Mode.EAGER:
            await self._emit(snapshots)
        elif all_data(snapshots):
            await self._emit(unwrap_all(snapshots))

    def _on_done(self, index: int) -> None:
        if self._disposed:
            return
        self._done_flags[index] = True
        if all(self._done_flags):
            self._finish()

    async def _on_source_error(self, error: BaseException) -> None:
        await self._report(Origin.CHILD, error)

    async def _cancel(self) -> None:
        for subscription in self._subscriptions:
            await cancel(subscription)
