"""Backoff strategies that produce the delays between retry attempts.

A strategy is an immutable policy object. ``delays()`` returns a fresh,
infinite iterator every time it is called; a single retry run consumes one
iterator front to back.

Durations are ``timedelta`` values; plain numbers are accepted as seconds::

    >>> from itertools import islice
    >>> list(islice(LinearBackoffStrategy(initial_duration=1, increment=2).delays(), 3))
    [datetime.timedelta(seconds=1), datetime.timedelta(seconds=3), datetime.timedelta(seconds=5)]
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_ZERO = timedelta(0)
_ONE_SECOND = timedelta(seconds=1)


class BackoffStrategy(BaseModel, ABC):
    """Base class for retry delay policies."""

    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def delays(self) -> Iterator[timedelta]:
        """Return a new iterator over the wait durations."""


class ConstantBackoffStrategy(BackoffStrategy):
    """Waits the same duration before every retry."""

    duration: timedelta = Field(default=_ONE_SECOND, ge=_ZERO)

    def delays(self) -> Iterator[timedelta]:
        while True:
            yield self.duration


class LinearBackoffStrategy(BackoffStrategy):
    """Grows the delay by a fixed increment per retry."""

    initial_duration: timedelta = Field(default=_ONE_SECOND, ge=_ZERO)
    increment: timedelta = Field(default=_ONE_SECOND, ge=_ZERO)

    def delays(self) -> Iterator[timedelta]:
        current = self.initial_duration
        while True:
            yield current
            current += self.increment


class ExponentialBackoffStrategy(BackoffStrategy):
    """Multiplies the delay per retry, optionally capped at ``max_delay``."""

    initial_duration: timedelta = Field(default=_ONE_SECOND, ge=_ZERO)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: Optional[timedelta] = Field(default=None, ge=_ZERO)

    def delays(self) -> Iterator[timedelta]:
        current = self.initial_duration
        while True:
            if self.max_delay is not None and current > self.max_delay:
                # The uncapped value only grows, so every later delay is capped too.
                current = self.max_delay
            yield current
            current = current * self.multiplier


__all__ = [
    "BackoffStrategy",
    "ConstantBackoffStrategy",
    "ExponentialBackoffStrategy",
    "LinearBackoffStrategy",
]
