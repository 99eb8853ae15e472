"""Origin-tagged error reporting."""

from __future__ import annotations

import enum
import logging
from types import TracebackType
from typing import Callable, Optional

from asyncflows.source import MaybeAwaitable, invoke

logger = logging.getLogger("asyncflows.errors")


class Origin(enum.Enum):
    """Where an error came from: the driving source or a dependent one."""

    ROOT = "root"
    CHILD = "child"


ErrorConsumer = Callable[[Origin, BaseException, Optional[TracebackType]], MaybeAwaitable]


async def report(
    on_error: Optional[ErrorConsumer],
    origin: Origin,
    error: BaseException,
) -> None:
    """Hand an error to on_error, or log it when nobody is listening."""
    if on_error is None:
        logger.error("Unhandled %s-side error: %r", origin.value, error, exc_info=error)
        return
    await invoke(on_error, origin, error, error.__traceback__)
