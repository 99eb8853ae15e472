"""Textual integration for asyncflows. Opt-in — requires textual.

Flows usually feed widgets. The consumers built here only touch the widget
tree while the app can be queried, drop NoMatches from widget lookups, and
marshal calls coming from worker threads through call_from_thread.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Any, Callable, Optional

from textual.css.query import NoMatches

from asyncflows.errors import ErrorConsumer, Origin
from asyncflows.source import ValueConsumer

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Hold back flow output while widgets are being replaced."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _bridge(app, fn: Callable[..., Any]) -> Callable[..., None]:
    owner = threading.get_ident()

    def _safe(*args: Any) -> None:
        try:
            fn(*args)
        except NoMatches:
            pass

    def _guarded(*args: Any) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != owner:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def consumer(app, fn: Callable[[Any], None]) -> ValueConsumer[Any]:
    """Wrap fn as a flow consumer that is safe to point at widgets.

    Usage:
        flow = OneToOneFlow.eager(
            selection,
            mapping=load_details,
            consumer=stx.consumer(app, lambda v: app.query_one(Details).show(v)),
        )
    """
    return _bridge(app, fn)


def notify_errors(app, *, title: str = "Flow error") -> ErrorConsumer:
    """Error consumer that surfaces flow errors as Textual notifications."""

    def _notify(origin: Origin, error: BaseException, traceback: Optional[TracebackType]) -> None:
        app.notify(f"{origin.value}: {error}", title=title, severity="error")

    return _bridge(app, _notify)
