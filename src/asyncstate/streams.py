"""Async-iterator combinators.

Each function takes an ``AsyncIterable`` and returns an ``AsyncIterator``.
Arguments are validated when the function is called; the source is consumed
only while the result is iterated. Errors raised by the source propagate to
the consumer.

Durations are ``timedelta`` values or plain seconds::

    async for line in split_strings(read_chunks()):
        ...
    async for batch in buffer_time(events(), timedelta(milliseconds=250)):
        await flush(batch)
"""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from datetime import timedelta
from typing import Any, Optional, TypeVar, Union

T = TypeVar("T")

DurationLike = Union[timedelta, float, int]

_MISSING: Any = object()


def _to_seconds(duration: DurationLike, *, allow_zero: bool = True) -> float:
    seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
    if seconds < 0 or (not allow_zero and seconds == 0):
        raise ValueError(f"duration must be {'non-negative' if allow_zero else 'positive'}")
    return seconds


def _next_item(iterator: AsyncIterator[T]) -> "asyncio.Future[T]":
    return asyncio.ensure_future(iterator.__anext__())


def split_strings(source: AsyncIterable[str], separator: str = "\n") -> AsyncIterator[str]:
    """Re-chunk text so that each yielded string is one separated segment.

    Separators may straddle chunk boundaries. A leading separator yields an
    empty string, empty chunks are ignored and the text after the last
    separator is yielded when the source ends (if any).
    """
    if not separator:
        raise ValueError("separator must not be empty")
    return _split_strings(source, separator)


async def _split_strings(source: AsyncIterable[str], separator: str) -> AsyncIterator[str]:
    remainder = ""
    async for chunk in source:
        if not chunk:
            continue
        *segments, remainder = (remainder + chunk).split(separator)
        for segment in segments:
            yield segment
    if remainder:
        yield remainder


def debounce(source: AsyncIterable[T], duration: DurationLike) -> AsyncIterator[T]:
    """Yield an item only once ``duration`` passes without a newer one.

    An item still waiting out its quiet period when the source ends is dropped.
    """
    return _debounce(source, _to_seconds(duration))


async def _debounce(source: AsyncIterable[T], seconds: float) -> AsyncIterator[T]:
    iterator = source.__aiter__()
    pending: Optional[asyncio.Future[T]] = None
    latest: Any = _MISSING
    try:
        while True:
            if pending is None:
                pending = _next_item(iterator)
            timeout = None if latest is _MISSING else seconds
            done, _ = await asyncio.wait({pending}, timeout=timeout)
            if not done:
                item, latest = latest, _MISSING
                yield item
                continue
            try:
                latest = pending.result()
            except StopAsyncIteration:
                return
            finally:
                pending = None
    finally:
        if pending is not None:
            pending.cancel()


def throttle(source: AsyncIterable[T], duration: DurationLike) -> AsyncIterator[T]:
    """Yield an item, then drop everything arriving within ``duration`` of it."""
    return _throttle(source, _to_seconds(duration))


async def _throttle(source: AsyncIterable[T], seconds: float) -> AsyncIterator[T]:
    loop = asyncio.get_running_loop()
    last_emitted: Optional[float] = None
    async for item in source:
        now = loop.time()
        if last_emitted is not None and now - last_emitted < seconds:
            continue
        last_emitted = now
        yield item


def buffer_count(source: AsyncIterable[T], count: int) -> AsyncIterator[list[T]]:
    """Yield lists of ``count`` items; a shorter final list holds the remainder."""
    if count < 1:
        raise ValueError("count must be at least 1")
    return _buffer_count(source, count)


async def _buffer_count(source: AsyncIterable[T], count: int) -> AsyncIterator[list[T]]:
    batch: list[T] = []
    async for item in source:
        batch.append(item)
        if len(batch) == count:
            yield batch
            batch = []
    if batch:
        yield batch


def buffer_time(source: AsyncIterable[T], duration: DurationLike) -> AsyncIterator[list[T]]:
    """Every ``duration``, yield the items collected since the last batch.

    Empty periods yield nothing. Items still collected when the source ends
    are yielded as a final batch.
    """
    return _buffer_time(source, _to_seconds(duration, allow_zero=False))


async def _buffer_time(source: AsyncIterable[T], seconds: float) -> AsyncIterator[list[T]]:
    loop = asyncio.get_running_loop()
    iterator = source.__aiter__()
    deadline = loop.time() + seconds
    batch: list[T] = []
    pending: Optional[asyncio.Future[T]] = None
    try:
        while True:
            if pending is None:
                pending = _next_item(iterator)
            done, _ = await asyncio.wait({pending}, timeout=max(0.0, deadline - loop.time()))
            if not done:
                deadline += seconds
                if batch:
                    yield batch
                    batch = []
                continue
            try:
                batch.append(pending.result())
            except StopAsyncIteration:
                if batch:
                    yield batch
                return
            finally:
                pending = None
    finally:
        if pending is not None:
            pending.cancel()


__all__ = ["buffer_count", "buffer_time", "debounce", "split_strings", "throttle"]
