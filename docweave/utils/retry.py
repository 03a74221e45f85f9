"""Retry and timeout wrappers shared by the composer and the pipeline engine.

Backoff follows ``delay = base * 2**attempt + jitter``, capped at
``max_delay``.  Timeouts race the operation against a timer with
``asyncio.wait_for``, which cancels the losing operation so nothing keeps
running after the caller has given up.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from docweave.utils.concurrency import maybe_await
from docweave.utils.errors import OperationTimeoutError, RetryExhaustedError
from docweave.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff parameters (all values in seconds)."""

    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Return the pause before retry number *attempt* (0-based)."""
        if self.base_delay <= 0:
            return 0.0
        jitter = random.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return min(self.max_delay, self.base_delay * (2**attempt) + jitter)


async def with_timeout(
    operation: Awaitable[Any],
    timeout: float | None,
    component: str | None = None,
) -> Any:
    """Await *operation*, raising :class:`OperationTimeoutError` after *timeout* seconds.

    ``None`` or a non-positive timeout waits indefinitely.
    """
    if timeout is None or timeout <= 0:
        return await operation
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutError(timeout, component=component) from exc


async def with_retry(
    fn: Callable[[], Any],
    attempts: int = 1,
    backoff: BackoffPolicy | None = None,
    timeout: float | None = None,
    component: str | None = None,
    on_retry: Callable[[int, BaseException], Any] | None = None,
    fatal: tuple[type[BaseException], ...] = (),
) -> Any:
    """Call *fn* up to *attempts* times with exponential backoff in between.

    Parameters
    ----------
    fn:
        Zero-argument callable; may return a value or an awaitable.  It is
        called afresh for every attempt.
    attempts:
        Total number of attempts (values below 1 are treated as 1).
    backoff:
        Delay policy between attempts.
    timeout:
        Optional per-attempt timeout in seconds.
    on_retry:
        Optional callback ``(attempt_number, error)`` invoked before each
        retry sleep; may be async.
    fatal:
        Exception types that are re-raised immediately without retrying.

    Raises
    ------
    RetryExhaustedError
        When every attempt failed; ``last_error`` holds the final exception.
    """
    backoff = backoff or BackoffPolicy()
    total = max(1, attempts)
    last_error: BaseException | None = None

    for attempt in range(total):
        try:
            return await with_timeout(maybe_await(fn()), timeout, component=component)
        except asyncio.CancelledError:
            raise
        except fatal:
            raise
        except Exception as exc:
            last_error = exc
            if attempt + 1 >= total:
                break
            delay = backoff.delay_for(attempt)
            _logger.debug(
                "retry_scheduled",
                component=component,
                attempt=attempt + 1,
                remaining=total - attempt - 1,
                delay=round(delay, 3),
                error=str(exc),
            )
            if on_retry is not None:
                await maybe_await(on_retry(attempt + 1, exc))
            if delay > 0:
                await asyncio.sleep(delay)

    raise RetryExhaustedError(total, last_error, component=component)
