"""Deadline scopes for remote calls.

A logical operation usually issues several blocking SDK calls in sequence.
They all share one ``Deadline``: each call runs on a worker thread and races
the scope's timer. Once the deadline has passed, every outcome is reported
as ``DeadlineExceeded``, including errors the call itself raised.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from .exceptions import (
    DeadlineExceeded,
    UnclassifiedError,
    VconError,
    fault_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """Bounded-time window shared by a sequence of remote calls."""

    def __init__(self, timeout: float) -> None:
        """Initialize deadline.

        Args:
            timeout: Window length in seconds
        """
        self.timeout = timeout
        self._expires_at: float | None = None
        self._timer: asyncio.Timeout | None = None

    async def __aenter__(self) -> "Deadline":
        loop = asyncio.get_running_loop()
        self._expires_at = loop.time() + self.timeout
        self._timer = asyncio.timeout_at(self._expires_at)
        await self._timer.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool | None:
        timer, self._timer = self._timer, None
        try:
            suppress = await timer.__aexit__(exc_type, exc_val, exc_tb)
        except TimeoutError as e:
            raise DeadlineExceeded(self.timeout) from e
        if exc_val is not None and not isinstance(exc_val, DeadlineExceeded) and self.expired:
            raise DeadlineExceeded(self.timeout) from exc_val
        return suppress

    @property
    def expired(self) -> bool:
        """Whether the window has elapsed."""
        if self._expires_at is None:
            return False
        return asyncio.get_running_loop().time() >= self._expires_at

    def remaining(self) -> float:
        """Seconds left in the window (never negative)."""
        if self._expires_at is None:
            return self.timeout
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    def check(self, error: BaseException | None = None) -> None:
        """Classify the outcome of one remote call.

        Args:
            error: Error raised by the call, or None on success

        Raises:
            DeadlineExceeded: If the deadline has elapsed, whatever the call returned
        """
        if self.expired:
            if error is not None:
                raise DeadlineExceeded(self.timeout) from error
            raise DeadlineExceeded(self.timeout)
        if error is not None:
            raise error

    async def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking SDK call on a worker thread within this deadline.

        Args:
            fn: Blocking callable
            *args: Positional arguments for fn
            **kwargs: Keyword arguments for fn

        Returns:
            Whatever fn returned
        """
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            if self.expired:
                raise DeadlineExceeded(self.timeout) from e
            raise
        self.check()
        return result


@asynccontextmanager
async def operation_scope(timeout: float, action: str) -> AsyncIterator[Deadline]:
    """Open a deadline for one logical operation and add call-site context.

    Timeouts become "Timeout while <action>"; everything else becomes
    "Error while <action>: <cause>", keeping the class of vcon errors so the
    exit code is preserved.

    Args:
        timeout: Window length in seconds
        action: What the operation does, e.g. "cloning VM"
    """
    try:
        async with Deadline(timeout) as deadline:
            yield deadline
    except DeadlineExceeded as e:
        raise DeadlineExceeded(e.timeout, f"Timeout while {action}") from e
    except VconError as e:
        raise e.wrap(f"Error while {action}") from e
    except Exception as e:
        logger.debug("Unclassified failure while %s", action, exc_info=True)
        raise UnclassifiedError(f"Error while {action}: {fault_message(e)}") from e
