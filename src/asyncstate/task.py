"""Task: an immutable snapshot of one asynchronous operation's lifecycle.

A task is one of six variants (pending, running, refreshing, retrying,
success, failure). Transition methods never mutate; each returns a new
instance that carries over ``label``, ``tags``, ``initial_data`` and the
caching attachment. Any transition may be called from any state: callers
decide which transitions are legal for them.

Example::

    task = Task.pending(label="profile")
    task = task.to_running()
    task = await Task.run(load_profile, label="profile")
    if task.is_success:
        render(task.effective_data)
"""

from __future__ import annotations

import dataclasses
from abc import ABC
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import timedelta
from types import TracebackType
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar, Union

from asyncstate._internal.utils import call_maybe_async, get_logger
from asyncstate.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    TaskStateAccessError,
)
from asyncstate.memoizer import AsyncCache, Memoizer
from asyncstate.types import DEFAULT_CACHE_DURATION, CachingStrategy, Computation, TaskState

T = TypeVar("T")
U = TypeVar("U")
LabelT = TypeVar("LabelT")
TagsT = TypeVar("TagsT")
V = TypeVar("V", bound="Task[Any, Any, Any]")

TaskCache = Union[Memoizer[Any], AsyncCache[Any]]

logger = get_logger(__name__)

_LINEAGE_FIELDS = ("label", "tags", "initial_data", "caching_strategy", "cache_duration", "cache")


@dataclass(frozen=True, kw_only=True)
class Task(ABC, Generic[T, LabelT, TagsT]):
    """Base of the task variants; build instances with the named constructors."""

    state: ClassVar[TaskState]

    label: Optional[LabelT] = None
    tags: Optional[TagsT] = None
    initial_data: Optional[T] = None
    caching_strategy: CachingStrategy = CachingStrategy.NONE
    cache_duration: timedelta = DEFAULT_CACHE_DURATION
    cache: Optional[TaskCache] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not hasattr(type(self), "state"):
            raise ConfigurationError(
                "Task cannot be instantiated directly; use Task.pending(), Task.success(), ..."
            )

        strategy = CachingStrategy(self.caching_strategy)
        if strategy is CachingStrategy.MEMOIZE:
            if self.cache is None:
                object.__setattr__(self, "cache", Memoizer())
            elif not isinstance(self.cache, Memoizer):
                raise ConfigurationError(
                    "memoize caching requires a Memoizer", cache=type(self.cache).__name__
                )
        elif strategy is CachingStrategy.TEMPORAL:
            if self.cache is None:
                object.__setattr__(self, "cache", AsyncCache(self.cache_duration))
            elif not isinstance(self.cache, AsyncCache):
                raise ConfigurationError(
                    "temporal caching requires an AsyncCache", cache=type(self.cache).__name__
                )
        elif self.cache is not None:
            raise ConfigurationError("a cache was supplied but caching_strategy is none")

    # -- named constructors -------------------------------------------------

    @classmethod
    def pending(
        cls,
        *,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskPending[T, LabelT, TagsT]:
        """Create a task that has not started yet."""
        return TaskPending(
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    @classmethod
    def running(
        cls,
        *,
        previous_data: Optional[T] = None,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskRunning[T, LabelT, TagsT]:
        """Create a task that is executing."""
        return TaskRunning(
            previous_data=previous_data,
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    @classmethod
    def refreshing(
        cls,
        *,
        previous_data: Optional[T] = None,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskRefreshing[T, LabelT, TagsT]:
        """Create a task that is executing again while showing earlier data."""
        return TaskRefreshing(
            previous_data=previous_data,
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    @classmethod
    def retrying(
        cls,
        *,
        previous_data: Optional[T] = None,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskRetrying[T, LabelT, TagsT]:
        """Create a task that is executing again after a failure."""
        return TaskRetrying(
            previous_data=previous_data,
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    @classmethod
    def success(
        cls,
        *,
        data: T,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskSuccess[T, LabelT, TagsT]:
        """Create a task that completed with ``data``."""
        return TaskSuccess(
            data=data,
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    @classmethod
    def failure(
        cls,
        *,
        error: Any,
        stack_trace: Optional[TracebackType] = None,
        previous_data: Optional[T] = None,
        initial_data: Optional[T] = None,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
        caching_strategy: CachingStrategy = CachingStrategy.NONE,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
    ) -> TaskFailure[T, LabelT, TagsT]:
        """Create a task that failed with ``error``."""
        return TaskFailure(
            error=error,
            stack_trace=stack_trace,
            previous_data=previous_data,
            initial_data=initial_data,
            label=label,
            tags=tags,
            caching_strategy=caching_strategy,
            cache_duration=cache_duration,
        )

    # -- running callbacks --------------------------------------------------

    @staticmethod
    def run_sync(
        callback: Callable[[], T],
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> Task[T, LabelT, TagsT]:
        """Call ``callback`` and wrap its return value or exception in a task."""
        try:
            data = callback()
        except Exception as exc:
            logger.debug("Task %r failed: %r", label, exc)
            return TaskFailure(error=exc, stack_trace=exc.__traceback__, label=label, tags=tags)
        return TaskSuccess(data=data, label=label, tags=tags)

    @staticmethod
    async def run(
        callback: Computation[T],
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> Task[T, LabelT, TagsT]:
        """Await ``callback`` and wrap its result or exception in a task."""
        try:
            data = await call_maybe_async(callback)
        except Exception as exc:
            logger.debug("Task %r failed: %r", label, exc)
            return TaskFailure(error=exc, stack_trace=exc.__traceback__, label=label, tags=tags)
        return TaskSuccess(data=data, label=label, tags=tags)

    @staticmethod
    async def watch(
        callback: Computation[T],
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> AsyncIterator[Task[T, LabelT, TagsT]]:
        """Yield a running task, then the success or failure of ``callback``."""
        yield TaskRunning(label=label, tags=tags)
        yield await Task.run(callback, label=label, tags=tags)

    # -- state --------------------------------------------------------------

    @property
    def effective_data(self) -> Optional[T]:
        """The best data available to show for this task right now."""
        return self.initial_data

    @property
    def is_pending(self) -> bool:
        return self.state is TaskState.PENDING

    @property
    def is_running(self) -> bool:
        return self.state is TaskState.RUNNING

    @property
    def is_refreshing(self) -> bool:
        return self.state is TaskState.REFRESHING

    @property
    def is_retrying(self) -> bool:
        return self.state is TaskState.RETRYING

    @property
    def is_success(self) -> bool:
        return self.state is TaskState.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.state is TaskState.FAILURE

    def as_pending(self) -> TaskPending[T, LabelT, TagsT]:
        return self._expect(TaskPending, TaskState.PENDING)

    def as_running(self) -> TaskRunning[T, LabelT, TagsT]:
        return self._expect(TaskRunning, TaskState.RUNNING)

    def as_refreshing(self) -> TaskRefreshing[T, LabelT, TagsT]:
        return self._expect(TaskRefreshing, TaskState.REFRESHING)

    def as_retrying(self) -> TaskRetrying[T, LabelT, TagsT]:
        return self._expect(TaskRetrying, TaskState.RETRYING)

    def as_success(self) -> TaskSuccess[T, LabelT, TagsT]:
        return self._expect(TaskSuccess, TaskState.SUCCESS)

    def as_failure(self) -> TaskFailure[T, LabelT, TagsT]:
        return self._expect(TaskFailure, TaskState.FAILURE)

    def _expect(self, variant: type[V], expected: TaskState) -> V:
        if isinstance(self, variant):
            return self
        raise TaskStateAccessError(
            f"Task is not in the expected state. Expected: {expected.value}, "
            f"actual: {self.state.value}. Check is_{expected.value} before calling "
            f"as_{expected.value}().",
            expected=expected,
            actual=self.state,
        )

    # -- transitions --------------------------------------------------------

    def _lineage(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in _LINEAGE_FIELDS}

    def to_pending(self, initial_data: Optional[T] = None) -> TaskPending[T, LabelT, TagsT]:
        """Move back to pending, optionally replacing ``initial_data``."""
        lineage = self._lineage()
        if initial_data is not None:
            lineage["initial_data"] = initial_data
        return TaskPending(**lineage)

    def to_running(self) -> TaskRunning[T, LabelT, TagsT]:
        return TaskRunning(previous_data=self.effective_data, **self._lineage())

    def to_refreshing(self) -> TaskRefreshing[T, LabelT, TagsT]:
        return TaskRefreshing(previous_data=self.effective_data, **self._lineage())

    def to_retrying(self) -> TaskRetrying[T, LabelT, TagsT]:
        return TaskRetrying(previous_data=self.effective_data, **self._lineage())

    def to_success(self, data: T) -> TaskSuccess[T, LabelT, TagsT]:
        return TaskSuccess(data=data, **self._lineage())

    def to_failure(
        self, error: Any, stack_trace: Optional[TracebackType] = None
    ) -> TaskFailure[T, LabelT, TagsT]:
        return TaskFailure(
            error=error,
            stack_trace=stack_trace,
            previous_data=self.effective_data,
            **self._lineage(),
        )

    def apply_transition(
        self,
        target_state: TaskState,
        data: Optional[T] = None,
        error: Any = None,
        trace: Optional[TracebackType] = None,
    ) -> Task[T, LabelT, TagsT]:
        """Transition to ``target_state`` chosen at runtime.

        ``data`` is the success payload, or the new ``initial_data`` when moving
        to pending (the current effective data is kept otherwise). Raises
        ``InvalidTransitionError`` when success lacks ``data`` or failure lacks
        ``error``.
        """
        target = TaskState(target_state)
        if target is TaskState.PENDING:
            return self.to_pending(data if data is not None else self.effective_data)
        if target is TaskState.RUNNING:
            return self.to_running()
        if target is TaskState.REFRESHING:
            return self.to_refreshing()
        if target is TaskState.RETRYING:
            return self.to_retrying()
        if target is TaskState.SUCCESS:
            if data is None:
                raise InvalidTransitionError(
                    "Cannot transition to success without data. Pass the result as "
                    "apply_transition(TaskState.SUCCESS, data=...).",
                    target_state=target,
                )
            return self.to_success(data)
        if error is None:
            raise InvalidTransitionError(
                "Cannot transition to failure without an error. Pass it as "
                "apply_transition(TaskState.FAILURE, error=...).",
                target_state=target,
            )
        return self.to_failure(error, stack_trace=trace)

    # -- transforms ---------------------------------------------------------

    def _variant_fields(self) -> dict[str, Any]:
        return {}

    def _rebuild(self, **changes: Any) -> Task[T, LabelT, TagsT]:
        return type(self)(**{**self._lineage(), **self._variant_fields(), **changes})

    def map_data(self, transform: Callable[[T], U]) -> Task[U, LabelT, TagsT]:
        """Rewrite every payload field through ``transform``.

        ``None`` payloads stay ``None`` (success data is always transformed).
        The result starts without a cache because the payload type changed.
        """

        def apply(value: Optional[T]) -> Optional[U]:
            return transform(value) if value is not None else None

        fields = self._variant_fields()
        if "data" in fields:
            fields["data"] = transform(fields["data"])
        if "previous_data" in fields:
            fields["previous_data"] = apply(fields["previous_data"])
        return type(self)(
            label=self.label,
            tags=self.tags,
            initial_data=apply(self.initial_data),
            **fields,
        )

    def map_error(self, transform: Callable[[Any], Any]) -> Task[T, LabelT, TagsT]:
        """Rewrite the error of a failure; other states are returned unchanged."""
        return self

    def transform(
        self,
        update_data: Optional[Callable[[Optional[T]], Optional[T]]] = None,
        update_error: Optional[Callable[[Any], Any]] = None,
        update_previous: Optional[Callable[[Optional[T]], Optional[T]]] = None,
    ) -> Task[T, LabelT, TagsT]:
        """Selectively rewrite whichever payload fields this variant has.

        ``update_data`` applies to success data and pending initial data,
        ``update_previous`` to previous data, ``update_error`` to a failure's
        error (a ``None`` result keeps the old error).
        """
        changes: dict[str, Any] = {}
        if isinstance(self, TaskSuccess):
            if update_data is not None:
                changes["data"] = update_data(self.data)
        elif isinstance(self, TaskPending):
            if update_data is not None:
                changes["initial_data"] = update_data(self.initial_data)
        else:
            if update_previous is not None:
                changes["previous_data"] = update_previous(self._variant_fields()["previous_data"])
            if isinstance(self, TaskFailure) and update_error is not None:
                new_error = update_error(self.error)
                if new_error is not None:
                    changes["error"] = new_error
        return self._rebuild(**changes)

    def copy_with(self, **changes: Any) -> Task[T, LabelT, TagsT]:
        """Copy with the given fields replaced; ``None`` values are ignored.

        Changing the caching settings starts a new cache unless one is passed.
        """
        updates = {name: value for name, value in changes.items() if value is not None}
        resets_cache = "caching_strategy" in updates or "cache_duration" in updates
        if resets_cache and "cache" not in updates:
            updates["cache"] = None
        return dataclasses.replace(self, **updates)

    def copy_with_or_none(self, **changes: Any) -> Task[T, LabelT, TagsT]:
        """Copy with every optional payload field taken from ``changes``.

        Fields not mentioned become ``None``. Caching settings are kept.
        Success requires ``data`` and failure requires ``error``.
        """
        fields: dict[str, Any] = {
            name: changes.get(name) for name in ("label", "tags", "initial_data")
        }
        for name in self._variant_fields():
            fields[name] = changes.get(name)

        if isinstance(self, TaskSuccess) and "data" not in changes:
            raise InvalidTransitionError(
                "copy_with_or_none on a success task requires data",
                target_state=TaskState.SUCCESS,
            )
        if isinstance(self, TaskFailure) and fields["error"] is None:
            raise InvalidTransitionError(
                "copy_with_or_none on a failure task requires error",
                target_state=TaskState.FAILURE,
            )
        return type(self)(
            caching_strategy=self.caching_strategy,
            cache_duration=self.cache_duration,
            cache=self.cache,
            **fields,
        )

    # -- caching ------------------------------------------------------------

    async def execute(self, computation: Computation[T]) -> T:
        """Run ``computation`` through this task's caching strategy."""
        if isinstance(self.cache, Memoizer):
            return await self.cache.run_computation(computation)  # type: ignore[no-any-return]
        if isinstance(self.cache, AsyncCache):
            return await self.cache.fetch(computation)  # type: ignore[no-any-return]
        return await call_maybe_async(computation)  # type: ignore[no-any-return]

    def invalidate_cache(self) -> None:
        """Forget any cached result shared by this task's lineage."""
        if self.cache is not None:
            self.cache.invalidate()

    async def refresh(self, computation: Computation[T]) -> T:
        """Invalidate the cache and run ``computation``, caching its result."""
        if isinstance(self.cache, Memoizer):
            return await self.cache.reset(computation)  # type: ignore[no-any-return]
        if isinstance(self.cache, AsyncCache):
            self.cache.invalidate()
            return await self.cache.fetch(computation)  # type: ignore[no-any-return]
        return await call_maybe_async(computation)  # type: ignore[no-any-return]


@dataclass(frozen=True, kw_only=True)
class TaskPending(Task[T, LabelT, TagsT]):
    """Task that has been created but not started."""

    state: ClassVar[TaskState] = TaskState.PENDING


@dataclass(frozen=True, kw_only=True)
class _InFlightTask(Task[T, LabelT, TagsT]):
    previous_data: Optional[T] = None

    @property
    def effective_data(self) -> Optional[T]:
        return self.previous_data if self.previous_data is not None else self.initial_data

    def _variant_fields(self) -> dict[str, Any]:
        return {"previous_data": self.previous_data}


@dataclass(frozen=True, kw_only=True)
class TaskRunning(_InFlightTask[T, LabelT, TagsT]):
    """Task that is executing."""

    state: ClassVar[TaskState] = TaskState.RUNNING


@dataclass(frozen=True, kw_only=True)
class TaskRefreshing(_InFlightTask[T, LabelT, TagsT]):
    """Task executing again; ``previous_data`` holds what is being refreshed."""

    state: ClassVar[TaskState] = TaskState.REFRESHING


@dataclass(frozen=True, kw_only=True)
class TaskRetrying(_InFlightTask[T, LabelT, TagsT]):
    """Task executing again after a failure."""

    state: ClassVar[TaskState] = TaskState.RETRYING


@dataclass(frozen=True, kw_only=True)
class TaskSuccess(Task[T, LabelT, TagsT]):
    """Task that completed with ``data``."""

    state: ClassVar[TaskState] = TaskState.SUCCESS

    data: T

    @property
    def effective_data(self) -> Optional[T]:
        return self.data

    def _variant_fields(self) -> dict[str, Any]:
        return {"data": self.data}


@dataclass(frozen=True, kw_only=True)
class TaskFailure(_InFlightTask[T, LabelT, TagsT]):
    """Task that failed with ``error``; ``previous_data`` keeps what was shown before."""

    state: ClassVar[TaskState] = TaskState.FAILURE

    error: Any
    stack_trace: Optional[TracebackType] = field(default=None, compare=False)

    def _variant_fields(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "stack_trace": self.stack_trace,
            "previous_data": self.previous_data,
        }

    def map_error(self, transform: Callable[[Any], Any]) -> Task[T, LabelT, TagsT]:
        return self._rebuild(error=transform(self.error))


SimpleTask = Task[T, Optional[str], Optional[set[str]]]
"""Task with a string label and a set of string tags."""


__all__ = [
    "SimpleTask",
    "Task",
    "TaskCache",
    "TaskFailure",
    "TaskPending",
    "TaskRefreshing",
    "TaskRetrying",
    "TaskRunning",
    "TaskSuccess",
]
