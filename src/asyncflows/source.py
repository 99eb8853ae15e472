"""Event source protocols.

Anything with a subscribe() that delivers events, completion and errors to
callbacks can drive a flow. Callbacks and cancel() may be plain functions or
return awaitables; both are awaited here before anything else happens.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, Union, runtime_checkable

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

MaybeAwaitable = Union[Awaitable[None], None]

OnEvent = Callable[[T], MaybeAwaitable]
OnComplete = Callable[[], MaybeAwaitable]
OnError = Callable[[BaseException], MaybeAwaitable]

# A value consumer: called once per emitted value, in emission order.
ValueConsumer = Callable[[T], MaybeAwaitable]


@runtime_checkable
class Subscription(Protocol):
    """Handle to a live subscription. cancel() is idempotent."""

    def cancel(self) -> MaybeAwaitable: ...


@runtime_checkable
class EventSource(Protocol[T_co]):
    """A source of events that flows can subscribe to."""

    def subscribe(
        self,
        on_event: Callable[[Any], MaybeAwaitable],
        on_complete: Optional[OnComplete] = None,
        on_error: Optional[OnError] = None,
    ) -> Subscription: ...


async def invoke(fn: Optional[Callable[..., Any]], *args: Any) -> None:
    """Call fn and await the result if it is awaitable."""
    if fn is None:
        return
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


async def cancel(subscription: Optional[Subscription]) -> None:
    """Cancel a subscription, waiting for the cancellation to finish."""
    if subscription is None:
        return
    result = subscription.cancel()
    if inspect.isawaitable(result):
        await result
