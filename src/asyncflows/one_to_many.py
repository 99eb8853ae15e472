"""One-to-many — a root source driving a list of dependent sources.

For every root value the mapping returns N dependent sources, which are
combined by a fresh fan-in flow. A new root value disposes the previous
fan-in (and with it every dependent subscription) before building the
next one, so values from dependents of an earlier root are dismissed:

    root   ==[E1]=========[E2]=================
    dep 1  ----|==[V1]======|===[V3]===========
    dep 2  ----|============|=========[V4]=====
    dep 3  ----|=====[V2]===|===============[V5]
    lazy   ---------------------------------[R1]

where R1 is FanValue(E2, (V3, V4, V5)); V1 and V2 were dismissed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Any, Callable, Iterable, Optional

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.fan_in import FanInFlow, FanInState
from asyncflows.flow import Flow, FlowState, Mode, Serializer
from asyncflows.snapshot import WAITING
from asyncflows.source import EventSource, ValueConsumer, cancel
from asyncflows.values import FanValue

logger = logging.getLogger("asyncflows.one_to_many")


@dataclass(frozen=True)
class OneToManyFlow(Flow[FanValue]):
    """Pairs each root value with the combined values of its dependents.

    announce controls the FanValue(key, (Waiting(), ...)) emitted by eager
    flows when a root value arrives; it defaults to on for eager flows.
    """

    source: EventSource
    mapping: Callable[[Any], Iterable[EventSource]]
    consumer: ValueConsumer[FanValue]
    mode: Mode = Mode.LAZY
    on_error: Optional[ErrorConsumer] = None
    announce: Optional[bool] = None

    @classmethod
    def lazy(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], Iterable[EventSource]],
        consumer: ValueConsumer[FanValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> OneToManyFlow:
        """Emit FanValue(key, values) once every dependent has a value."""
        return cls(source, mapping, consumer, Mode.LAZY, on_error)

    @classmethod
    def eager(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], Iterable[EventSource]],
        consumer: ValueConsumer[FanValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> OneToManyFlow:
        """Emit FanValue(key, snapshots) on the root value and on every
        dependent value."""
        return cls(source, mapping, consumer, Mode.EAGER, on_error)

    async def start(self, *, serializer: Optional[Serializer] = None) -> OneToManyState:
        return OneToManyState(self, serializer)


class OneToManyState(FlowState[FanValue]):
    def __init__(self, flow: OneToManyFlow, serializer: Optional[Serializer] = None) -> None:
        super().__init__(flow.consumer, flow.on_error, serializer)
        self._flow = flow
        self._announce = flow.mode is Mode.EAGER if flow.announce is None else flow.announce
        self._fan: Optional[FanInState] = None
        self._root = flow.source.subscribe(
            self._serialized(self._on_root),
            self._serialized(self._completion.root_done),
            self._serialized(partial(self._report, Origin.ROOT)),
        )

    async def _on_root(self, key: Any) -> None:
        if self._disposed:
            return
        generation = self._next_generation()

        previous, self._fan = self._fan, None
        if previous is not None:
            await previous.dispose()
        if not self._is_current(generation):
            return

        sources = tuple(self._flow.mapping(key))
        logger.debug("Generation %d for root value %r: %d dependents", generation, key, len(sources))
        # With no dependents the fan-in emits the empty value itself.
        if self._announce and sources:
            await self._emit(FanValue(key, (WAITING,) * len(sources)))
            if not self._is_current(generation):
                return

        fan = FanInFlow(
            sources,
            partial(self._on_values, generation, key),
            self._flow.mode,
            partial(self._on_fan_error, generation),
        )
        state = await fan.start(serializer=self._serializer)
        if not self._is_current(generation):
            await state.dispose()
            return
        self._fan = state
        state.add_done_callback(partial(self._on_fan_done, generation))

    async def _on_values(self, generation: int, key: Any, values: tuple) -> None:
        if self._is_current(generation):
            await self._emit(FanValue(key, values))

    def _on_fan_done(self, generation: int) -> None:
        if self._is_current(generation):
            self._completion.child_done()

    async def _on_fan_error(
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
        fan, self._fan = self._fan, None
        if fan is not None:
            await fan.dispose()
