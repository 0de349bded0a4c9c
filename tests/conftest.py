"""Shared test fixtures and configuration."""

import asyncio
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Replace asyncio.sleep so backoff delays are recorded, not waited."""
    sleep = AsyncMock(return_value=None)
    monkeypatch.setattr(asyncio, "sleep", sleep)
    return sleep


@pytest.fixture
def flaky() -> Callable[..., AsyncMock]:
    """Factory for async callables that fail a fixed number of times before succeeding."""

    def make(failures: int, result: Any = "ok", error: type[Exception] = ValueError) -> AsyncMock:
        outcomes: list[Any] = [error(f"failure {i + 1}") for i in range(failures)]
        outcomes.append(result)
        return AsyncMock(side_effect=outcomes)

    return make


def slept_seconds(sleep: AsyncMock) -> list[float]:
    """Delays passed to a patched sleep, in call order."""
    return [call.args[0] for call in sleep.await_args_list]


@pytest.fixture
def sleeps() -> Callable[[AsyncMock], list[float]]:
    return slept_seconds
