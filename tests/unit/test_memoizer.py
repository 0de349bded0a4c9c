"""Unit tests for Memoizer and AsyncCache."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from asyncstate import AsyncCache, ConfigurationError, Memoizer


class TestMemoizer:
    """Test single-run caching."""

    async def test_runs_once(self) -> None:
        computation = AsyncMock(return_value="value")
        memoizer = Memoizer(computation)

        assert await memoizer.run() == "value"
        assert await memoizer.run() == "value"
        assert computation.await_count == 1
        assert memoizer.has_run

    async def test_concurrent_callers_share_one_run(self) -> None:
        started = 0

        async def computation() -> int:
            nonlocal started
            started += 1
            await asyncio.sleep(0.01)
            return started

        memoizer: Memoizer[int] = Memoizer()
        results = await asyncio.gather(*(memoizer.run_computation(computation) for _ in range(5)))

        assert results == [1, 1, 1, 1, 1]
        assert started == 1

    async def test_first_computation_wins(self) -> None:
        memoizer: Memoizer[str] = Memoizer()
        assert await memoizer.run_computation(lambda: "first") == "first"
        assert await memoizer.run_computation(lambda: "second") == "first"

    async def test_errors_are_cached(self) -> None:
        computation = AsyncMock(side_effect=RuntimeError("boom"))
        memoizer = Memoizer(computation)

        for _ in range(2):
            with pytest.raises(RuntimeError, match="boom"):
                await memoizer.run()
        assert computation.await_count == 1

    async def test_none_result_is_cached(self) -> None:
        computation = MagicMock(return_value=None)
        memoizer = Memoizer(computation)

        assert await memoizer.run() is None
        assert await memoizer.run() is None
        assert computation.call_count == 1

    async def test_reset_runs_new_computation(self) -> None:
        memoizer: Memoizer[str] = Memoizer()
        await memoizer.run_computation(lambda: "old")

        assert await memoizer.reset(lambda: "new") == "new"
        assert await memoizer.run_computation(lambda: "ignored") == "new"

    async def test_invalidate_allows_rerun(self) -> None:
        computation = AsyncMock(side_effect=["a", "b"])
        memoizer = Memoizer(computation)

        assert await memoizer.run() == "a"
        memoizer.invalidate()
        assert not memoizer.has_run
        assert await memoizer.run() == "b"

    async def test_result_runs_default_computation(self) -> None:
        memoizer = Memoizer(AsyncMock(return_value=7))
        assert await memoizer.result() == 7

    async def test_result_waits_for_external_run(self) -> None:
        memoizer: Memoizer[str] = Memoizer()
        waiter = asyncio.create_task(memoizer.result())
        await asyncio.sleep(0)
        assert not waiter.done()

        await memoizer.run_computation(lambda: "late")
        assert await waiter == "late"

    async def test_eager_start(self) -> None:
        computation = AsyncMock(return_value="eager")
        memoizer = Memoizer(computation, lazy=False)

        assert memoizer.has_run
        await asyncio.sleep(0)
        assert await memoizer.result() == "eager"
        assert computation.await_count == 1

    def test_eager_requires_computation(self) -> None:
        with pytest.raises(ConfigurationError):
            Memoizer(lazy=False)

    async def test_run_requires_default_computation(self) -> None:
        with pytest.raises(ConfigurationError):
            await Memoizer().run()

    async def test_cancelled_caller_does_not_cancel_computation(self) -> None:
        release = asyncio.Event()

        async def computation() -> str:
            await release.wait()
            return "done"

        memoizer: Memoizer[str] = Memoizer(computation)
        caller = asyncio.create_task(memoizer.run())
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        assert await memoizer.run() == "done"


class TestAsyncCache:
    """Test time-bounded caching."""

    async def test_fresh_value_reused(self) -> None:
        computation = AsyncMock(side_effect=[1, 2])
        cache: AsyncCache[int] = AsyncCache(timedelta(minutes=1))

        assert await cache.fetch(computation) == 1
        assert await cache.fetch(computation) == 1
        assert computation.await_count == 1
        assert cache.is_fresh

    async def test_expired_value_recomputed(self) -> None:
        computation = AsyncMock(side_effect=[1, 2])
        cache: AsyncCache[int] = AsyncCache(timedelta(seconds=30))

        assert await cache.fetch(computation) == 1
        cache._settled_at = datetime.now() - timedelta(seconds=31)
        assert not cache.is_fresh
        assert await cache.fetch(computation) == 2

    async def test_zero_duration_only_coalesces(self) -> None:
        computation = AsyncMock(side_effect=[1, 2])
        cache: AsyncCache[int] = AsyncCache.ephemeral()

        first, second = await asyncio.gather(cache.fetch(computation), cache.fetch(computation))
        assert (first, second) == (1, 1)
        assert await cache.fetch(computation) == 2
        assert computation.await_count == 2

    async def test_errors_are_cached_while_fresh(self) -> None:
        computation = AsyncMock(side_effect=[ValueError("bad"), 5])
        cache: AsyncCache[int] = AsyncCache(timedelta(minutes=1))

        for _ in range(2):
            with pytest.raises(ValueError):
                await cache.fetch(computation)
        assert computation.await_count == 1

    async def test_invalidate(self) -> None:
        computation = AsyncMock(side_effect=[1, 2])
        cache: AsyncCache[int] = AsyncCache(timedelta(minutes=1))

        await cache.fetch(computation)
        cache.invalidate()
        assert not cache.is_fresh
        assert await cache.fetch(computation) == 2

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            AsyncCache(timedelta(seconds=-1))
