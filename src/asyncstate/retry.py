"""Retry driver for asynchronous operations.

Use the classmethods for one-off operations::

    data = await Retry.run(fetch_data)
    await Retry.with_exponential_backoff(api_call, max_attempts=5, max_delay=10)

or keep an instance around to reuse one configuration::

    network_retry = Retry(max_attempts=5, strategy=ExponentialBackoffStrategy())
    user = await network_retry(fetch_user)
    posts = await network_retry(fetch_posts)

An instance runs one operation at a time; create one instance per concurrent
operation.
"""

import asyncio
from collections.abc import Awaitable
from datetime import timedelta
from typing import Callable, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from asyncstate._internal.utils import call_maybe_async, get_logger
from asyncstate.backoff import (
    BackoffStrategy,
    ConstantBackoffStrategy,
    ExponentialBackoffStrategy,
    LinearBackoffStrategy,
)
from asyncstate.exceptions import RetryConcurrentUseError, RetryError

T = TypeVar("T")

OnRetry = Callable[[Exception, int], Union[bool, Awaitable[bool]]]
DurationLike = Union[timedelta, float, int]

logger = get_logger(__name__)


class RetryOptions(BaseModel):
    """Validated configuration for a Retry instance."""

    max_attempts: int = Field(default=3, ge=1)
    strategy: BackoffStrategy = Field(default_factory=ConstantBackoffStrategy)


class Retry:
    """Runs an async callable until it succeeds or the attempts run out."""

    def __init__(
        self,
        max_attempts: int = 3,
        strategy: Optional[BackoffStrategy] = None,
    ) -> None:
        options = RetryOptions(
            max_attempts=max_attempts,
            strategy=strategy if strategy is not None else ConstantBackoffStrategy(),
        )
        self.max_attempts = options.max_attempts
        self.strategy = options.strategy
        self._attempts = 0
        self._is_retrying = False

    @property
    def attempts(self) -> int:
        """Attempts made by the current or most recent call."""
        return self._attempts

    @property
    def is_retrying(self) -> bool:
        """Whether a call is in flight."""
        return self._is_retrying

    async def __call__(
        self,
        task: Callable[[], Awaitable[T]],
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run ``task``, retrying failures according to the strategy.

        ``on_retry(error, attempt)`` is consulted before every retry; returning
        ``False`` abandons the operation. Raises ``RetryError`` when the
        operation is abandoned or the attempts are exhausted.
        """
        if self._is_retrying:
            raise RetryConcurrentUseError()

        self._is_retrying = True
        self._attempts = 0
        delays = self.strategy.delays()

        try:
            while True:
                self._attempts += 1
                try:
                    return await call_maybe_async(task)  # type: ignore[no-any-return]
                except Exception as exc:
                    if self._attempts >= self.max_attempts:
                        logger.warning(
                            "Giving up after %d attempts: %r", self._attempts, exc
                        )
                        raise RetryError(exc, self._attempts, exc.__traceback__) from exc

                    if on_retry is not None:
                        should_retry = await call_maybe_async(on_retry, exc, self._attempts)
                        if not should_retry:
                            logger.warning(
                                "Retry aborted by on_retry hook after attempt %d: %r",
                                self._attempts,
                                exc,
                            )
                            raise RetryError(
                                exc, self._attempts, exc.__traceback__, aborted=True
                            ) from exc

                    delay = next(delays, None)
                    if delay is None:
                        raise RetryError(exc, self._attempts, exc.__traceback__) from exc

                    logger.debug(
                        "Attempt %d/%d failed with %r; retrying in %.3fs",
                        self._attempts,
                        self.max_attempts,
                        exc,
                        delay.total_seconds(),
                    )
                    await asyncio.sleep(delay.total_seconds())
        finally:
            self._is_retrying = False

    @classmethod
    async def run(
        cls,
        computation: Callable[[], Awaitable[T]],
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run with the defaults: 3 attempts, 1 second constant delay."""
        return await cls()(computation, on_retry=on_retry)

    @classmethod
    async def with_constant_backoff(
        cls,
        computation: Callable[[], Awaitable[T]],
        duration: DurationLike = timedelta(seconds=1),
        max_attempts: int = 3,
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run with a constant delay between attempts."""
        strategy = ConstantBackoffStrategy(duration=duration)
        return await cls(max_attempts=max_attempts, strategy=strategy)(
            computation, on_retry=on_retry
        )

    @classmethod
    async def with_linear_backoff(
        cls,
        computation: Callable[[], Awaitable[T]],
        initial_duration: DurationLike = timedelta(seconds=1),
        increment: DurationLike = timedelta(seconds=1),
        max_attempts: int = 3,
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run with a linearly growing delay between attempts."""
        strategy = LinearBackoffStrategy(initial_duration=initial_duration, increment=increment)
        return await cls(max_attempts=max_attempts, strategy=strategy)(
            computation, on_retry=on_retry
        )

    @classmethod
    async def with_exponential_backoff(
        cls,
        computation: Callable[[], Awaitable[T]],
        initial_duration: DurationLike = timedelta(seconds=1),
        multiplier: float = 2.0,
        max_delay: Optional[DurationLike] = None,
        max_attempts: int = 3,
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run with an exponentially growing, optionally capped delay."""
        strategy = ExponentialBackoffStrategy(
            initial_duration=initial_duration,
            multiplier=multiplier,
            max_delay=max_delay,
        )
        return await cls(max_attempts=max_attempts, strategy=strategy)(
            computation, on_retry=on_retry
        )

    def __repr__(self) -> str:
        return f"Retry(max_attempts={self.max_attempts}, strategy={self.strategy!r})"


__all__ = ["OnRetry", "Retry", "RetryOptions"]
