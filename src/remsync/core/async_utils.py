"""Async utilities for running blocking fetch/adopt work on a bounded pool."""

import asyncio
import logging
from typing import Any, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    semaphore: asyncio.Semaphore,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread pool, bounded by *semaphore*.

    Args:
        semaphore: Semaphore shared by all calls of one batch
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    async with semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    func: Callable[[T], Any],
    items: Sequence[T],
    max_parallel: int,
) -> list[Any]:
    """Call ``func(item)`` for every item, at most *max_parallel* at a time.

    The semaphore is created inside the running loop, so this is safe to
    drive with a fresh ``asyncio.run()`` per batch.  Results come back in
    input order.  Exceptions propagate from the first failure; callers
    that need per-item isolation catch inside *func*.

    Args:
        func: Synchronous function taking one item.
        items: Work items.
        max_parallel: Upper bound on concurrently running calls (>= 1).

    Returns:
        List of results in the same order as *items*.
    """
    if max_parallel < 1:
        raise ValueError("max_parallel must be at least 1")
    semaphore = asyncio.Semaphore(max_parallel)
    logger.debug(
        "Running %d calls with max_parallel=%d", len(items), max_parallel
    )
    return list(
        await asyncio.gather(
            *(run_sync_limited(semaphore, func, item) for item in items)
        )
    )


def run_limited(
    func: Callable[[T], Any],
    items: Sequence[T],
    max_parallel: int,
) -> list[Any]:
    """Blocking entry point for ``gather_limited()``."""
    if not items:
        return []
    return asyncio.run(gather_limited(func, items, max_parallel))
