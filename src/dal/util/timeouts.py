"""Deadlines for the individual steps of opening a database connection."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class StepTimeoutError(TimeoutError):
    """A connect step did not finish before its deadline."""

    def __init__(self, step: str, timeout_seconds: float) -> None:
        self.step = step
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{step} timed out after {timeout_seconds:g}s")


async def within_deadline(
    step: str,
    make_awaitable: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float],
) -> T:
    """Await ``make_awaitable()`` for at most ``timeout_seconds``.

    An unset or non-positive timeout applies no deadline. The awaitable is
    created lazily so that an unbounded call never wraps it in a task.
    """
    if timeout_seconds is None or timeout_seconds <= 0:
        return await make_awaitable()
    try:
        return await asyncio.wait_for(make_awaitable(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("%s exceeded its %gs deadline", step, timeout_seconds)
        raise StepTimeoutError(step, timeout_seconds) from None
