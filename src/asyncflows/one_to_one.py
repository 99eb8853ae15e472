"""One-to-one — a root source driving a single dependent source.

For every root value the mapping builds a dependent source; each of its
values is paired with the root value that created it. A new root value
always supersedes the previous dependent, finished or not: the old
subscription is cancelled, and that cancellation awaited, before the new
one is made.

Unlike a flattening operator, an unbounded dependent never blocks the
next root value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.flow import Flow, FlowState, Mode, Serializer
from asyncflows.snapshot import WAITING, Data
from asyncflows.source import EventSource, Subscription, ValueConsumer, cancel
from asyncflows.values import PairValue

logger = logging.getLogger("asyncflows.one_to_one")


@dataclass(frozen=True)
class OneToOneFlow(Flow[PairValue]):
    """Pairs each root value with the values of its dependent source.

    Usage:
        users = EventStream()
        flow = OneToOneFlow.eager(
            users,
            mapping=lambda user_id: orders_for(user_id),
            consumer=render,
        )
        state = await flow.start()
        await users.emit(1)   # render(PairValue(1, Waiting()))
    """

    source: EventSource
    mapping: Callable[[Any], EventSource]
    consumer: ValueConsumer[PairValue]
    mode: Mode = Mode.LAZY
    on_error: Optional[ErrorConsumer] = None

    @classmethod
    def lazy(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], EventSource],
        consumer: ValueConsumer[PairValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> OneToOneFlow:
        """Emit PairValue(key, value) for every dependent value."""
        return cls(source, mapping, consumer, Mode.LAZY, on_error)

    @classmethod
    def eager(
        cls,
        source: EventSource,
        *,
        mapping: Callable[[Any], EventSource],
        consumer: ValueConsumer[PairValue],
        on_error: Optional[ErrorConsumer] = None,
    ) -> OneToOneFlow:
        """Emit PairValue(key, Waiting()) on every root value, then
        PairValue(key, Data(value)) for every dependent value."""
        return cls(source, mapping, consumer, Mode.EAGER, on_error)

    async def start(self, *, serializer: Optional[Serializer] = None) -> OneToOneState:
        return OneToOneState(self, serializer)


class OneToOneState(FlowState[PairValue]):
    def __init__(self, flow: OneToOneFlow, serializer: Optional[Serializer] = None) -> None:
        super().__init__(flow.consumer, flow.on_error, serializer)
        self._flow = flow
        self._child: Optional[Subscription] = None
        self._root = flow.source.subscribe(
            self._serialized(self._on_root),
            self._serialized(self._completion.root_done),
            self._serialized(partial(self._report, Origin.ROOT)),
        )

    async def _on_root(self, key: Any) -> None:
        if self._disposed:
            return
        generation = self._next_generation()
        if self._flow.mode is Mode.EAGER:
            await self._emit(PairValue(key, WAITING))

        previous, self._child = self._child, None
        await cancel(previous)
        if not self._is_current(generation):
            return

        logger.debug("Generation %d for root value %r", generation, key)
        source = self._flow.mapping(key)
        self._child = source.subscribe(
            self._serialized(partial(self._on_child, generation, key)),
            self._serialized(partial(self._on_child_done, generation)),
            self._serialized(partial(self._on_child_error, generation)),
        )

    async def _on_child(self, generation: int, key: Any, value: Any) -> None:
        if not self._is_current(generation):
            return
        if self._flow.mode is Mode.EAGER:
            await self._emit(PairValue(key, Data(value)))
        else:
            await self._emit(PairValue(key, value))

    def _on_child_done(self, generation: int) -> None:
        if self._is_current(generation):
            self._completion.child_done()

    async def _on_child_error(self, generation: int, error: BaseException) -> None:
        if self._is_current(generation):
            await self._report(Origin.CHILD, error)

    async def _cancel(self) -> None:
        await cancel(self._root)
        child, self._child = self._child, None
        await cancel(child)
