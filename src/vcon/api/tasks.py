"""Waiting on host-side tasks."""

import asyncio
import logging
from typing import Any, Callable, TypeVar, overload

from .deadline import Deadline
from .exceptions import RemoteTaskFailure, UnclassifiedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TASK_SUCCESS = "success"
TASK_ERROR = "error"

DEFAULT_POLL_INTERVAL = 1.0


def _task_info(task: Any) -> Any:
    return task.info


def localized_message(fault: Any) -> str:
    """Extract the host-supplied message from a task's error."""
    if fault is None:
        return "Task failed without an error description"
    message = getattr(fault, "localizedMessage", None)
    if message:
        return str(message)
    inner = getattr(fault, "fault", None)
    message = getattr(inner, "msg", None) if inner is not None else None
    return str(message) if message else "Task failed without an error description"


@overload
async def wait_for_task(
    deadline: Deadline,
    submit: Callable[..., Any],
    *args: Any,
    expect: type[T],
    poll_interval: float = ...,
    **kwargs: Any,
) -> T: ...


@overload
async def wait_for_task(
    deadline: Deadline,
    submit: Callable[..., Any],
    *args: Any,
    expect: None = ...,
    poll_interval: float = ...,
    **kwargs: Any,
) -> None: ...


async def wait_for_task(
    deadline: Deadline,
    submit: Callable[..., Any],
    *args: Any,
    expect: type | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    **kwargs: Any,
) -> Any:
    """Submit a task and wait for it to reach a terminal state.

    Phase one is the submission itself, which may fail immediately. Phase
    two polls the task until it succeeds or fails. Both phases run within
    ``deadline``.

    Args:
        deadline: Deadline shared with the rest of the operation
        submit: SDK method returning a task (e.g. ``vm.PowerOnVM_Task``)
        *args: Positional arguments for submit
        expect: Result type of this verb, or None when the task returns nothing
        poll_interval: Seconds between state checks
        **kwargs: Keyword arguments for submit

    Returns:
        The task result when ``expect`` is given, otherwise None

    Raises:
        RemoteTaskFailure: If the task finished in the error state
        DeadlineExceeded: If the deadline elapsed in either phase
    """
    task = await deadline.call(submit, *args, **kwargs)

    while True:
        info = await deadline.call(_task_info, task)
        state = getattr(info, "state", None)

        if state == TASK_SUCCESS:
            break
        if state == TASK_ERROR:
            raise RemoteTaskFailure(localized_message(getattr(info, "error", None)))

        logger.debug("Task %s is %s", getattr(info, "key", "?"), state)
        await asyncio.sleep(poll_interval)

    if expect is None:
        return None

    result = getattr(info, "result", None)
    if not isinstance(result, expect):
        raise UnclassifiedError(
            f"Task returned {type(result).__name__}, expected {expect.__name__}"
        )
    return result
