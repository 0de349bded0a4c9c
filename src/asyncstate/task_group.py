"""Immutable collections of keyed tasks with a derived aggregate state.

Build groups with the factories::

    group = TaskGroup.uniform({"a": Task.pending(), "b": Task.pending()})
    group = await group.run_all(lambda key, task: fetch(key))
    if group.is_completed:
        ...

``TaskGroup.uniform`` returns a ``HomogeneousTaskGroup`` whose members share
one data type and which supports batch execution. ``TaskGroup.mixed`` returns a
``HeterogeneousTaskGroup`` for members of different data types.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from asyncstate._internal.utils import call_maybe_async, get_logger
from asyncstate.exceptions import TaskTypeMismatchError
from asyncstate.task import Task
from asyncstate.types import ExecutionMode, TaskGroupState, TaskState

T = TypeVar("T")
D = TypeVar("D")
LabelT = TypeVar("LabelT")
TagsT = TypeVar("TagsT")
G = TypeVar("G", bound="TaskGroup[Any, Any, Any]")

MemberCallback = Callable[[str, Task[T, LabelT, TagsT]], Union[T, Awaitable[T]]]
MemberPredicate = Callable[[str, Task[T, LabelT, TagsT]], bool]
MemberUpdater = Callable[[str, Task[T, LabelT, TagsT]], Task[T, LabelT, TagsT]]

logger = get_logger(__name__)


def compute_group_state(tasks: Iterable[Task[Any, Any, Any]]) -> TaskGroupState:
    """Derive the aggregate state of a collection of tasks.

    Active members win over everything; then all-success is completed,
    all-failure is failed and all-pending (or empty) is idle. Any other mix
    is partial.
    """
    states = {task.state for task in tasks}
    if not states:
        return TaskGroupState.IDLE
    if any(state.is_active for state in states):
        return TaskGroupState.ACTIVE
    if states == {TaskState.SUCCESS}:
        return TaskGroupState.COMPLETED
    if states == {TaskState.FAILURE}:
        return TaskGroupState.FAILED
    if states == {TaskState.PENDING}:
        return TaskGroupState.IDLE
    return TaskGroupState.PARTIAL


async def _settle_member(
    key: str, task: Task[T, LabelT, TagsT], callback: MemberCallback[T, LabelT, TagsT]
) -> tuple[str, Task[T, LabelT, TagsT]]:
    try:
        data = await call_maybe_async(callback, key, task)
    except Exception as exc:
        logger.debug("Group member %r failed: %r", key, exc)
        return key, task.to_failure(exc, stack_trace=exc.__traceback__)
    return key, task.to_success(data)


async def _settle_members(
    tasks: Mapping[str, Task[T, LabelT, TagsT]],
    callback: MemberCallback[T, LabelT, TagsT],
    mode: ExecutionMode,
) -> dict[str, Task[T, LabelT, TagsT]]:
    if ExecutionMode(mode) is ExecutionMode.PARALLEL:
        settled = await asyncio.gather(
            *(_settle_member(key, task, callback) for key, task in tasks.items())
        )
        return dict(settled)

    results: dict[str, Task[T, LabelT, TagsT]] = {}
    for key, task in tasks.items():
        settled_key, settled_task = await _settle_member(key, task, callback)
        results[settled_key] = settled_task
    return results


class TaskGroup(Generic[T, LabelT, TagsT]):
    """Read-only, keyed collection of tasks.

    Every operation returns a new group; the aggregate ``state`` is recomputed
    on construction and never set directly. ``TaskGroup()`` builds an empty
    mixed group.
    """

    def __new__(cls, *args: Any, **kwargs: Any) -> TaskGroup[T, LabelT, TagsT]:
        target = HeterogeneousTaskGroup if cls is TaskGroup else cls
        return super().__new__(target)

    def __init__(
        self,
        tasks: Optional[Mapping[str, Task[T, LabelT, TagsT]]] = None,
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> None:
        self._tasks: Mapping[str, Task[T, LabelT, TagsT]] = MappingProxyType(dict(tasks or {}))
        self._state = compute_group_state(self._tasks.values())
        self.label = label
        self.tags = tags

    @staticmethod
    def uniform(
        tasks: Mapping[str, Task[D, LabelT, TagsT]],
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> HomogeneousTaskGroup[D, LabelT, TagsT]:
        """Build a group whose members all share one data type."""
        return HomogeneousTaskGroup(tasks, label=label, tags=tags)

    @staticmethod
    def mixed(
        tasks: Mapping[str, Task[Any, LabelT, TagsT]],
        *,
        label: Optional[LabelT] = None,
        tags: Optional[TagsT] = None,
    ) -> HeterogeneousTaskGroup[LabelT, TagsT]:
        """Build a group whose members may carry different data types."""
        return HeterogeneousTaskGroup(tasks, label=label, tags=tags)

    @property
    def tasks(self) -> Mapping[str, Task[T, LabelT, TagsT]]:
        return self._tasks

    @property
    def state(self) -> TaskGroupState:
        return self._state

    def _copy(self: G, tasks: Mapping[str, Task[Any, Any, Any]]) -> G:
        return type(self)(tasks, label=self.label, tags=self.tags)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TaskGroup) or type(other) is not type(self):
            return NotImplemented
        return (
            dict(self._tasks) == dict(other._tasks)
            and self.label == other.label
            and self.tags == other.tags
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(state={self._state.value!r}, "
            f"tasks={dict(self._tasks)!r}, label={self.label!r}, tags={self.tags!r})"
        )

    # -- CRUD -----------------------------------------------------------------

    def add_task(self: G, key: str, task: Task[Any, Any, Any]) -> G:
        """Return a group with ``task`` stored under ``key``, replacing any existing entry."""
        return self._copy({**self._tasks, key: task})

    def remove_task(self: G, key: str) -> G:
        """Return a group without ``key``; the same group if it is absent."""
        if key not in self._tasks:
            return self
        return self._copy({k: t for k, t in self._tasks.items() if k != key})

    def update_task(
        self: G, key: str, updater: Callable[[Task[Any, Any, Any]], Task[Any, Any, Any]]
    ) -> G:
        """Return a group with the ``key`` entry rewritten; the same group if it is absent."""
        task = self._tasks.get(key)
        if task is None:
            return self
        return self._copy({**self._tasks, key: updater(task)})

    def get_task(
        self, key: str, expected: type[Task[Any, Any, Any]] = Task
    ) -> Optional[Task[T, LabelT, TagsT]]:
        """Look up ``key``, checking the stored task is an instance of ``expected``.

        Returns ``None`` when the key is absent and raises
        ``TaskTypeMismatchError`` when the stored task is another variant.
        """
        task = self._tasks.get(key)
        if task is None:
            return None
        if not isinstance(task, expected):
            raise TaskTypeMismatchError(
                f"Task {key!r} is {type(task).__name__}, expected {expected.__name__}",
                key=key,
                expected=expected,
                actual=type(task),
            )
        return task

    # -- queries --------------------------------------------------------------

    def where(
        self, predicate: MemberPredicate[T, LabelT, TagsT]
    ) -> dict[str, Task[T, LabelT, TagsT]]:
        return {key: task for key, task in self._tasks.items() if predicate(key, task)}

    def with_label(self, label: LabelT) -> dict[str, Task[T, LabelT, TagsT]]:
        return self.where(lambda _, task: task.label == label)

    def with_tags(self, tags: Iterable[Any]) -> dict[str, Task[T, LabelT, TagsT]]:
        """Members whose tags include every one of ``tags``."""
        wanted = set(tags)
        return self.where(lambda _, task: task.tags is not None and wanted.issubset(task.tags))

    def with_any_tag(self, tags: Iterable[Any]) -> dict[str, Task[T, LabelT, TagsT]]:
        """Members whose tags include at least one of ``tags``."""
        wanted = set(tags)
        return self.where(
            lambda _, task: task.tags is not None and not wanted.isdisjoint(task.tags)
        )

    def with_state(self, state: TaskState) -> dict[str, Task[T, LabelT, TagsT]]:
        return self.where(lambda _, task: task.state is state)

    # -- aggregate predicates -------------------------------------------------

    @property
    def is_idle(self) -> bool:
        return self._state is TaskGroupState.IDLE

    @property
    def is_active(self) -> bool:
        return self._state is TaskGroupState.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self._state is TaskGroupState.COMPLETED

    @property
    def is_partial(self) -> bool:
        return self._state is TaskGroupState.PARTIAL

    @property
    def is_failed(self) -> bool:
        return self._state is TaskGroupState.FAILED

    @property
    def all_success(self) -> bool:
        return bool(self._tasks) and all(task.is_success for task in self._tasks.values())

    @property
    def any_failure(self) -> bool:
        return any(task.is_failure for task in self._tasks.values())

    @property
    def all_failure(self) -> bool:
        return bool(self._tasks) and all(task.is_failure for task in self._tasks.values())

    @property
    def any_active(self) -> bool:
        return any(task.state.is_active for task in self._tasks.values())

    @property
    def state_counts(self) -> dict[TaskState, int]:
        """Number of members in every state, including states with no members."""
        counts = {state: 0 for state in TaskState}
        for task in self._tasks.values():
            counts[task.state] += 1
        return counts

    @property
    def success_count(self) -> int:
        return sum(1 for task in self._tasks.values() if task.is_success)

    @property
    def failure_count(self) -> int:
        return sum(1 for task in self._tasks.values() if task.is_failure)

    @property
    def task_count(self) -> int:
        return len(self._tasks)

    # -- bulk transitions -----------------------------------------------------

    def to_running(self: G) -> G:
        return self._copy({key: task.to_running() for key, task in self._tasks.items()})

    def to_pending(self: G) -> G:
        return self._copy({key: task.to_pending() for key, task in self._tasks.items()})

    def reset_failed(self: G) -> G:
        """Move failed members back to pending; other members are untouched."""
        return self._copy(
            {
                key: task.to_pending() if task.is_failure else task
                for key, task in self._tasks.items()
            }
        )


class HomogeneousTaskGroup(TaskGroup[T, LabelT, TagsT]):
    """Group whose members share a data type; supports batch execution."""

    async def run_all(
        self,
        callback: MemberCallback[T, LabelT, TagsT],
        mode: ExecutionMode = ExecutionMode.PARALLEL,
    ) -> HomogeneousTaskGroup[T, LabelT, TagsT]:
        """Mark every member running, then settle each through ``callback(key, task)``.

        Each member independently becomes a success or a failure. In parallel
        mode every callback starts before any is awaited.
        """
        running = self.to_running()
        logger.debug("Running %d group members (%s)", len(running), ExecutionMode(mode).value)
        return running._copy(await _settle_members(running.tasks, callback, mode))

    def map_tasks(
        self, transform: MemberUpdater[T, LabelT, TagsT]
    ) -> HomogeneousTaskGroup[T, LabelT, TagsT]:
        return self._copy({key: transform(key, task) for key, task in self._tasks.items()})

    def update_where(
        self,
        predicate: MemberPredicate[T, LabelT, TagsT],
        updater: MemberUpdater[T, LabelT, TagsT],
    ) -> HomogeneousTaskGroup[T, LabelT, TagsT]:
        """Rewrite only the members matching ``predicate``."""
        return self._copy(
            {
                key: updater(key, task) if predicate(key, task) else task
                for key, task in self._tasks.items()
            }
        )

    async def retry_failed(
        self,
        callback: MemberCallback[T, LabelT, TagsT],
        mode: ExecutionMode = ExecutionMode.PARALLEL,
    ) -> HomogeneousTaskGroup[T, LabelT, TagsT]:
        """Re-run the failed members only.

        Failed members move to retrying and are settled through ``callback``;
        the rest are kept as they are. Without failures the same group is
        returned and ``callback`` is never called.
        """
        failed = [key for key, task in self._tasks.items() if task.is_failure]
        if not failed:
            return self

        retrying = self.update_where(
            lambda _, task: task.is_failure, lambda _, task: task.to_retrying()
        )
        logger.debug("Retrying %d failed group members", len(failed))
        settled = await _settle_members(
            {key: retrying.tasks[key] for key in failed}, callback, mode
        )
        return retrying._copy({**retrying.tasks, **settled})

    async def watch(
        self,
        callback: MemberCallback[T, LabelT, TagsT],
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> AsyncIterator[HomogeneousTaskGroup[T, LabelT, TagsT]]:
        """Yield the running group, then a snapshot after each member settles.

        Sequential mode drives one member at a time in key order. Parallel mode
        starts every member at once and yields in completion order.
        """
        current = self.to_running()
        yield current

        if ExecutionMode(mode) is ExecutionMode.SEQUENTIAL:
            for key, task in list(current.tasks.items()):
                settled_key, settled = await _settle_member(key, task, callback)
                current = current.add_task(settled_key, settled)
                yield current
            return

        pending = [
            asyncio.ensure_future(_settle_member(key, task, callback))
            for key, task in current.tasks.items()
        ]
        try:
            for next_done in asyncio.as_completed(pending):
                settled_key, settled = await next_done
                current = current.add_task(settled_key, settled)
                yield current
        finally:
            for future in pending:
                future.cancel()


class HeterogeneousTaskGroup(TaskGroup[Any, LabelT, TagsT]):
    """Group whose members may carry different data types."""

    def get_task_typed(self, key: str, data_type: type[D]) -> Optional[Task[D, LabelT, TagsT]]:
        """Return the ``key`` member if its data is a ``data_type`` (or still absent).

        Returns ``None`` when the key is missing or the data is another type.
        """
        task = self._tasks.get(key)
        if task is None:
            return None
        data = task.effective_data
        if data is None or isinstance(data, data_type):
            return task
        return None


SimpleTaskGroup = TaskGroup[T, Optional[str], Optional[set[str]]]
"""Task group with a string label and a set of string tags."""


__all__ = [
    "HeterogeneousTaskGroup",
    "HomogeneousTaskGroup",
    "SimpleTaskGroup",
    "TaskGroup",
    "compute_group_state",
]
