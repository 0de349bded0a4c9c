"""Type definitions for the asyncstate library."""

from collections.abc import Awaitable
from datetime import timedelta
from enum import Enum
from typing import Callable, TypeVar, Union

T = TypeVar("T")

SyncComputation = Callable[[], T]
AsyncComputation = Callable[[], Awaitable[T]]
Computation = Callable[[], Union[T, Awaitable[T]]]

DEFAULT_CACHE_DURATION = timedelta(minutes=5)
"""Cache lifetime used by temporal caching when no duration is given."""


class TaskState(str, Enum):
    """Lifecycle state of a single task."""

    PENDING = "pending"
    RUNNING = "running"
    REFRESHING = "refreshing"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_active(self) -> bool:
        """Whether the state represents work in flight."""
        return self in (TaskState.RUNNING, TaskState.REFRESHING, TaskState.RETRYING)


class TaskGroupState(str, Enum):
    """Aggregate state derived from every task in a group."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class CachingStrategy(str, Enum):
    """How a task caches the results of ``execute``."""

    NONE = "none"
    MEMOIZE = "memoize"
    TEMPORAL = "temporal"


class ExecutionMode(str, Enum):
    """How a group drives its members' callbacks."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
