"""Timeout utilities for stage executions.

A stage that never returns would hold its concurrency slot forever; these
helpers bound each execution.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NO_RESULT = object()


class StageTimeoutError(Exception):
    """Raised when an operation exceeds the timeout."""


def with_timeout(
    func: Callable[..., T],
    timeout_seconds: Optional[int],
    operation_name: str = "operation",
    *args: Any,
    **kwargs: Any,
) -> T:
    """Execute a function with a timeout.

    The function runs on a daemon thread. When the timeout elapses the thread is
    abandoned (Python threads cannot be interrupted) and its eventual result is
    discarded.

    Args:
        func: Function to execute
        timeout_seconds: Timeout in seconds (None disables timeout)
        operation_name: Name of operation for logging
        *args: Positional arguments to pass to function
        **kwargs: Keyword arguments to pass to function

    Returns:
        Function result

    Raises:
        StageTimeoutError: If operation exceeds timeout

    Example:
        >>> result = with_timeout(executor.execute, 30, "summarize", payload, job)
    """
    if timeout_seconds is None or timeout_seconds <= 0:
        return func(*args, **kwargs)

    result: Any = _NO_RESULT
    exception: Optional[BaseException] = None
    finished = threading.Event()

    def target():
        nonlocal result, exception
        try:
            result = func(*args, **kwargs)
        except BaseException as e:  # noqa: B036 - re-raised on the calling thread
            exception = e
        finally:
            finished.set()

    thread = threading.Thread(target=target, name=f"stage-{operation_name}", daemon=True)
    thread.start()

    if not finished.wait(timeout=timeout_seconds):
        logger.warning("Timeout occurred for %s after %s seconds", operation_name, timeout_seconds)
        raise StageTimeoutError(f"{operation_name} exceeded timeout of {timeout_seconds} seconds")

    if exception is not None:
        raise exception

    return result  # type: ignore[return-value]
