"""asyncflows: root-driven async stream combinators."""

from importlib.metadata import version as _version

__version__ = _version("asyncflows")

from asyncflows.snapshot import WAITING, Data, Snapshot, Waiting
from asyncflows.values import BatchValue, FanValue, PairValue
from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.source import EventSource, Subscription, ValueConsumer
from asyncflows.stream import EventStream, from_iterable
from asyncflows.completion import CompletionCoordinator, CompletionState
from asyncflows.flow import Flow, FlowState, Mode, Serializer
from asyncflows.fan_in import FanInFlow
from asyncflows.one_to_one import OneToOneFlow
from asyncflows.one_to_many import OneToManyFlow
from asyncflows.many_to_many import ManyToManyFlow
from asyncflows.adapter import FlowSource, as_source
# textual NOT auto-imported — opt-in only

__all__ = [
    "Snapshot",
    "Waiting",
    "Data",
    "WAITING",
    "PairValue",
    "FanValue",
    "BatchValue",
    "Origin",
    "ErrorConsumer",
    "EventSource",
    "Subscription",
    "ValueConsumer",
    "EventStream",
    "from_iterable",
    "CompletionCoordinator",
    "CompletionState",
    "Flow",
    "FlowState",
    "Mode",
    "Serializer",
    "FanInFlow",
    "OneToOneFlow",
    "OneToManyFlow",
    "ManyToManyFlow",
    "FlowSource",
    "as_source",
]
