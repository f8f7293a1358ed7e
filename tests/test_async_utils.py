"""
Tests for async_utils module.

Covers run_sync, run_sync_limited, gather_limited and run_limited.
"""

import asyncio
import threading
import time

import pytest

from remsync.core.async_utils import (
    gather_limited,
    run_limited,
    run_sync,
    run_sync_limited,
)


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


def test_run_sync_calls_function():
    """run_sync delegates to a worker thread with correct args."""
    assert asyncio.run(run_sync(_sync_add, 3, 4)) == 7


def test_run_sync_passes_kwargs():
    """run_sync forwards keyword arguments."""

    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    assert asyncio.run(run_sync(_kw_func, name="world")) == "hello world"


def test_run_sync_uses_worker_thread():
    main = threading.get_ident()
    worker = asyncio.run(run_sync(threading.get_ident))
    assert worker != main


def test_run_sync_limited():
    async def _go():
        return await run_sync_limited(asyncio.Semaphore(1), _sync_add, 10, 20)

    assert asyncio.run(_go()) == 30


def test_gather_limited_preserves_order():
    def _slow_square(x: int) -> int:
        time.sleep(0.01 * (5 - x))
        return x * x

    result = asyncio.run(gather_limited(_slow_square, [1, 2, 3, 4], 4))
    assert result == [1, 4, 9, 16]


def test_gather_limited_bounds_concurrency():
    active = 0
    peak = 0
    lock = threading.Lock()

    def _work(_):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1

    asyncio.run(gather_limited(_work, list(range(10)), 3))
    assert peak <= 3


def test_gather_limited_rejects_zero():
    with pytest.raises(ValueError):
        asyncio.run(gather_limited(_sync_add, [1], 0))


def test_gather_limited_propagates_errors():
    def _boom(x):
        raise RuntimeError(f"failed {x}")

    with pytest.raises(RuntimeError):
        asyncio.run(gather_limited(_boom, [1, 2], 2))


def test_run_limited_blocking_entry_point():
    assert run_limited(lambda x: x + 1, [1, 2, 3], 2) == [2, 3, 4]


def test_run_limited_empty():
    assert run_limited(lambda x: x, [], 2) == []


def test_run_limited_repeatable():
    """A fresh event loop per call, so repeated batches work."""
    assert run_limited(str, [1], 1) == ["1"]
    assert run_limited(str, [2], 1) == ["2"]
