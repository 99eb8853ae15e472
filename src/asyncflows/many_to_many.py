"""Many-to-many — a root source of key batches, each key fanning out.

Every batch builds one one-to-many flow per key; each of them owns one slot
of the emitted BatchValue. A new batch disposes all of them before the next
ones are built, so no slot ever mixes keys from two batches. The lazy variant
is a filter over the eager one and adds no supersession logic of its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Any, Callable, Iterable, Optional

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.flow import Flow, FlowState, Mode, Serializer
from asyncflows.one_to_many import OneToManyFlow, OneToManyState
from asyncflows.snapshot import WAITING, all_data, unwrap_all
from asyncflows.source import EventSource, ValueConsumer, cancel, invoke
from asyncflows.stream import EventStream
from asyncflows.values import BatchValue, FanValue

logger = logging.getLogger("asyncflows.many_to_many")


def _complete_batches(consumer: ValueConsumer[BatchValue]) -> ValueConsumer[BatchValue]:
    """Forward a batch only once no position in any slot is Waiting."""

    async def _forward(batch: BatchValue) -> None:
        if all(all_data(slot.values) for slot in batch):
            await invoke(
                consumer,
                tuple(FanValue(slot.key, unwrap_all(slot.values)) for slot in batch),
            )

    return _forward


@dataclass(frozen=True)
class ManyToManyFlow(Flow[BatchValue]):
    """Fans out every key of the latest batch.

    Usage:
        teams = EventStream()
        flow = ManyToManyFlow.lazy(
            teams,
            mapping=lambda team: [members_of(team), scores_of(team)],
            consumer=render,
        )
        state = await flow.start()
        await teams.emit(["red", "blue"])
    """

    source: EventSource
    mapping: Callable[[Any], Iterable[EventSource]]
    consumer: ValueConsumer[BatchValue]
    on_error: Optional[ErrorConsumer] = None

    @classmethod
    def lazy(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], Iterable[EventSource]],
        consumer: ValueConsumer[BatchValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> ManyToManyFlow:
        """Emit tuple[FanValue(key, values), ...] once every dependent of
        every key in the batch has a value."""
        return cls.eager(source, mapping=mapping, consumer=_complete_batches(consumer), on_error=on_error)

    @classmethod
    def eager(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], Iterable[EventSource]],
        consumer: ValueConsumer[BatchValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> ManyToManyFlow:
        """Emit tuple[FanValue(key, snapshots), ...] when a batch arrives
        and whenever any dependent of it emits."""
        return cls(source, mapping, consumer, on_error)

    async def start(self, *, serializer: Optional[Serializer] = None) -> ManyToManyState:
        return ManyToManyState(self, serializer)


class ManyToManyState(FlowState[BatchValue]):
    def __init__(self, flow: ManyToManyFlow, serializer: Optional[Serializer] = None) -> None:
        super().__init__(flow.consumer, flow.on_error, serializer)
        self._flow = flow
        self._inner: list[OneToManyState] = []
        self._slots: list[FanValue] = []
        self._pending: set[int] = set()
        self._root = flow.source.subscribe(
            self._serialized(self._on_batch),
            self._serialized(self._completion.root_done),
            self._serialized(partial(self._report, Origin.ROOT)),
        )

    async def _on_batch(self, keys: Iterable[Any]) -> None:
        if self._disposed:
            return
        generation = self._next_generation()

        previous, self._inner = self._inner, []
        for state in previous:
            await state.dispose()
        if not self._is_current(generation):
            return

        keys = tuple(keys)
        fan_outs = [tuple(self._flow.mapping(key)) for key in keys]
        logger.debug("Generation %d for batch of %d keys", generation, len(keys))
        self._slots = [FanValue(key, (WAITING,) * len(sources)) for key, sources in zip(keys, fan_outs)]
        # Keys without dependents are complete from the start.
        self._pending = {i for i, sources in enumerate(fan_outs) if sources}
        await self._emit(tuple(self._slots))
        if not self._is_current(generation):
            return
        if not self._pending:
            self._completion.child_done()
            return

        for index in sorted(self._pending):
            await self._start_slot(generation, index, keys[index], fan_outs[index])
            if not self._is_current(generation):
                return

    async def _start_slot(
        self,
        generation: int,
        index: int,
        key: Any,
        sources: tuple[EventSource, ...],
    ) -> None:
        root: EventStream[Any] = EventStream()
        flow = OneToManyFlow(
            root,
            lambda _key: sources,
            partial(self._on_slot, generation, index),
            Mode.EAGER,
            partial(self._on_inner_error, generation),
            announce=False,
        )
        state = await flow.start(serializer=self._serializer)
        if not self._is_current(generation):
            await state.dispose()
            return
        self._inner.append(state)
        state.add_done_callback(partial(self._on_inner_done, generation, index))
        await root.emit(key)
        await root.close()

    async def _on_slot(self, generation: int, index: int, value: FanValue) -> None:
        if not self._is_current(generation):
            return
        self._slots[index] = value
        await self._emit(tuple(self._slots))

    def _on_inner_done(self, generation: int, index: int) -> None:
        if not self._is_current(generation):
            return
        self._pending.discard(index)
        if not self._pending:
            self._completion.child_done()

    async def _on_inner_error(
        self,
        generation: int,
        origin: Origin,
        error: BaseException,
        traceback: Optional[TracebackType],
    ) -> None:
        if self._is_current(generation):
            await self._report(Origin.CHILD, error)

    async def _cancel(self) -> None:
        await cancel(self._root)
        inner, self._inner = self._inner, []
        for state in inner:
            await state.dispose()
