"""Single-flight result caches used by task caching.

``Memoizer`` keeps the first settled result until it is reset.
``AsyncCache`` keeps it for a fixed duration.

Both coalesce concurrent callers onto one in-flight computation and hand the
same outcome, value or exception, to every caller. Waiters are shielded, so
cancelling one caller never cancels the shared computation.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Generic, Optional, TypeVar

from asyncstate._internal.utils import call_maybe_async, get_logger
from asyncstate.exceptions import ConfigurationError
from asyncstate.types import Computation

T = TypeVar("T")

logger = get_logger(__name__)


def _settle(future: "asyncio.Future[Any]", task: "asyncio.Task[Any]") -> None:
    if future.done():
        return
    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())  # type: ignore[arg-type]
    else:
        future.set_result(task.result())


def _start(
    computation: Computation[T], future: Optional["asyncio.Future[T]"] = None
) -> "asyncio.Future[T]":
    loop = asyncio.get_running_loop()
    target: asyncio.Future[T] = future if future is not None else loop.create_future()
    task = loop.create_task(call_maybe_async(computation))
    task.add_done_callback(lambda done: _settle(target, done))
    return target


class Memoizer(Generic[T]):
    """Runs a computation once and caches its outcome until reset.

    If ``lazy`` is ``True`` (default) nothing runs until ``run``,
    ``run_computation`` or ``result`` is awaited. If ``lazy`` is ``False`` the
    default ``computation`` starts immediately, which requires a running event
    loop.

    Example::

        memoizer = Memoizer(computation=load_settings)
        settings = await memoizer.result()
    """

    def __init__(self, computation: Optional[Computation[T]] = None, *, lazy: bool = True) -> None:
        self._computation = computation
        self._future: Optional[asyncio.Future[T]] = None
        self._has_run = False

        if not lazy:
            if computation is None:
                raise ConfigurationError("computation cannot be None if lazy is False")
            self._run_once(computation)

    @property
    def has_run(self) -> bool:
        """Whether a computation has been started since the last reset."""
        return self._has_run

    async def result(self) -> T:
        """Wait for the cached result.

        Runs the default computation if nothing has run yet. Without a default
        computation this waits until ``run_computation`` or ``reset`` is called.
        """
        if not self._has_run and self._computation is not None:
            self._run_once(self._computation)
        return await asyncio.shield(self._ensure_future())

    async def run(self) -> T:
        """Run the default computation unless a result is already cached."""
        if self._computation is None:
            raise ConfigurationError(
                "No default computation provided. Use run_computation() instead."
            )
        return await asyncio.shield(self._run_once(self._computation))

    async def run_computation(self, computation: Computation[T]) -> T:
        """Run ``computation`` unless a result is already cached.

        Once anything has run, later computations are ignored and the cached
        outcome is returned instead.
        """
        return await asyncio.shield(self._run_once(computation))

    async def reset(self, computation: Computation[T]) -> T:
        """Drop the cached result and run ``computation`` in its place."""
        self.invalidate()
        return await asyncio.shield(self._run_once(computation))

    def invalidate(self) -> None:
        """Drop the cached result; the next run starts a fresh computation."""
        self._future = None
        self._has_run = False

    def _ensure_future(self) -> "asyncio.Future[T]":
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    def _run_once(self, computation: Computation[T]) -> "asyncio.Future[T]":
        future = self._ensure_future()
        if self._has_run:
            logger.debug("Memoizer hit; reusing cached result")
            return future

        self._has_run = True
        logger.debug("Memoizer miss; starting computation")
        return _start(computation, future)


class AsyncCache(Generic[T]):
    """Caches the outcome of a computation for ``duration``.

    The freshness window starts when the computation settles; while it is in
    flight every caller shares it. A zero duration therefore only coalesces
    concurrent callers. Expiry is checked on access; nothing is scheduled.
    """

    def __init__(self, duration: timedelta) -> None:
        if duration < timedelta(0):
            raise ConfigurationError("cache duration cannot be negative", duration=duration)
        self.duration = duration
        self._future: Optional[asyncio.Future[T]] = None
        self._settled_at: Optional[datetime] = None

    @classmethod
    def ephemeral(cls) -> "AsyncCache[T]":
        """Cache that only shares in-flight computations."""
        return cls(timedelta(0))

    @property
    def is_fresh(self) -> bool:
        """Whether a cached or in-flight result would be returned by ``fetch``."""
        if self._future is None:
            return False
        if self._settled_at is None:
            return True
        return datetime.now() - self._settled_at < self.duration

    async def fetch(self, computation: Computation[T]) -> T:
        """Return the cached outcome, running ``computation`` if it is stale."""
        if not self.is_fresh:
            logger.debug("AsyncCache miss; starting computation")
            future = _start(computation)
            future.add_done_callback(self._mark_settled)
            self._future = future
            self._settled_at = None
        else:
            logger.debug("AsyncCache hit")
        assert self._future is not None
        return await asyncio.shield(self._future)

    def invalidate(self) -> None:
        """Forget the cached outcome."""
        self._future = None
        self._settled_at = None

    def _mark_settled(self, future: "asyncio.Future[T]") -> None:
        if future is self._future:
            self._settled_at = datetime.now()


__all__ = ["AsyncCache", "Memoizer"]
