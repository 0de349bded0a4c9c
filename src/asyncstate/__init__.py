"""asyncstate: immutable async task state for Python.

Lifecycle snapshots for single operations and keyed groups, retry with
backoff, single-flight result caching and async-iterator combinators.
"""

from asyncstate._internal.utils import setup_logging
from asyncstate._version import __version__, __version_info__
from asyncstate.backoff import (
    BackoffStrategy,
    ConstantBackoffStrategy,
    ExponentialBackoffStrategy,
    LinearBackoffStrategy,
)
from asyncstate.exceptions import (
    AsyncStateError,
    ConfigurationError,
    InvalidTransitionError,
    RetryConcurrentUseError,
    RetryError,
    TaskStateAccessError,
    TaskTypeMismatchError,
)
from asyncstate.interval import Interval
from asyncstate.memoizer import AsyncCache, Memoizer
from asyncstate.retry import Retry, RetryOptions
from asyncstate.streams import buffer_count, buffer_time, debounce, split_strings, throttle
from asyncstate.task import (
    SimpleTask,
    Task,
    TaskFailure,
    TaskPending,
    TaskRefreshing,
    TaskRetrying,
    TaskRunning,
    TaskSuccess,
)
from asyncstate.task_group import (
    HeterogeneousTaskGroup,
    HomogeneousTaskGroup,
    SimpleTaskGroup,
    TaskGroup,
)
from asyncstate.types import (
    DEFAULT_CACHE_DURATION,
    CachingStrategy,
    ExecutionMode,
    TaskGroupState,
    TaskState,
)

__all__ = [
    "DEFAULT_CACHE_DURATION",
    "AsyncCache",
    "AsyncStateError",
    "BackoffStrategy",
    "CachingStrategy",
    "ConfigurationError",
    "ConstantBackoffStrategy",
    "ExecutionMode",
    "ExponentialBackoffStrategy",
    "HeterogeneousTaskGroup",
    "HomogeneousTaskGroup",
    "Interval",
    "InvalidTransitionError",
    "LinearBackoffStrategy",
    "Memoizer",
    "Retry",
    "RetryConcurrentUseError",
    "RetryError",
    "RetryOptions",
    "SimpleTask",
    "SimpleTaskGroup",
    "Task",
    "TaskFailure",
    "TaskGroup",
    "TaskGroupState",
    "TaskPending",
    "TaskRefreshing",
    "TaskRetrying",
    "TaskRunning",
    "TaskState",
    "TaskStateAccessError",
    "TaskSuccess",
    "TaskTypeMismatchError",
    "__version__",
    "__version_info__",
    "buffer_count",
    "buffer_time",
    "debounce",
    "setup_logging",
    "split_strings",
    "throttle",
]
