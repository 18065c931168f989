"""Bounded retry helper shared by polling and network code.

Wraps tenacity's ``AsyncRetrying`` so callers express a retry loop as
``retry(fn, max_attempts, backoff)`` instead of nested timers and counters.

Example:
    >>> segments = await retry(
    ...     read_panel,
    ...     max_attempts=10,
    ...     backoff=linear_backoff(base=1.0, step=0.5),
    ...     retry_on=PanelNotReady,
    ... )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(base: float = 1.0, step: float = 0.5) -> wait_base:
    """Wait base, base + step, base + 2*step, ... between attempts."""
    return wait_incrementing(start=base, increment=step)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.debug(f"Attempt {retry_state.attempt_number} failed ({error!r}), retrying")


async def retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff: wait_base,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
) -> T:
    """Call fn until it succeeds or max_attempts is reached.

    Args:
        fn: Zero-argument coroutine function to call.
        max_attempts: Total number of calls allowed (>= 1).
        backoff: Tenacity wait strategy applied between attempts.
        retry_on: Exception type(s) that trigger another attempt. Anything
            else propagates immediately.

    Returns:
        The first successful result of fn.

    Raises:
        ValueError: If max_attempts is less than 1.
        Exception: The last exception raised by fn once attempts run out.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=backoff,
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await fn()

    raise AssertionError("unreachable: tenacity either returns or reraises")
