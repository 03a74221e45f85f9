"""Shared concurrency primitives for batched document operations.

Two patterns are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  Used when a list of
   per-unit coroutines must run with bounded concurrency.

2. **run_in_batches** -- Fixed-size batches executed one after another with a
   fixed pause between them, so downstream collaborators (vector stores,
   metadata extractors) are never hit with the whole corpus at once.

Also provides :func:`maybe_await`, used wherever a caller-supplied callable
may be either a plain function or a coroutine function.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog

from docweave.utils.logging import get_logger

_T = TypeVar("_T")
_R = TypeVar("_R")

_logger: structlog.BoundLogger = get_logger(__name__)


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    limit: int = 5,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional shared semaphore.  When omitted a private semaphore of
        size *limit* is created for this call.
    limit:
        Concurrency bound used when no *semaphore* is given.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def run_in_batches(
    items: Sequence[_T],
    worker: Callable[[list[_T]], Awaitable[list[_R]]],
    batch_size: int = 10,
    delay: float = 0.5,
    logger: structlog.BoundLogger | None = None,
) -> list[_R]:
    """Feed *items* to *worker* in fixed-size batches with a pause in between.

    Parameters
    ----------
    items:
        The full list of work items.
    worker:
        Async callable receiving one batch and returning one result per item.
    batch_size:
        Maximum number of items handed to *worker* at once.
    delay:
        Seconds to sleep between consecutive batches (not after the last).

    Returns
    -------
    list[_R]
        Concatenated worker results in input order.
    """
    if logger is None:
        logger = _logger

    size = max(1, batch_size)
    results: list[_R] = []
    total_batches = (len(items) + size - 1) // size

    for batch_number, start in enumerate(range(0, len(items), size), start=1):
        batch = list(items[start : start + size])
        results.extend(await worker(batch))
        logger.debug(
            "batch_processed",
            batch=batch_number,
            total_batches=total_batches,
            batch_size=len(batch),
        )
        if start + size < len(items) and delay > 0:
            await asyncio.sleep(delay)

    return results
