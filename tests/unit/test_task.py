"""Unit tests for task states, transitions and transforms."""

import asyncio

import pytest

from asyncstate import (
    ConfigurationError,
    InvalidTransitionError,
    SimpleTask,
    Task,
    TaskFailure,
    TaskPending,
    TaskRefreshing,
    TaskRetrying,
    TaskRunning,
    TaskState,
    TaskStateAccessError,
    TaskSuccess,
)


class TestTaskConstruction:
    """Test named constructors and state predicates."""

    def test_pending(self) -> None:
        task = Task.pending(label="fetch", tags={"api"})

        assert isinstance(task, TaskPending)
        assert task.state is TaskState.PENDING
        assert task.is_pending
        assert task.label == "fetch"
        assert task.tags == {"api"}
        assert task.effective_data is None

    @pytest.mark.parametrize(
        ("task", "variant", "state"),
        [
            (Task.running(), TaskRunning, TaskState.RUNNING),
            (Task.refreshing(), TaskRefreshing, TaskState.REFRESHING),
            (Task.retrying(), TaskRetrying, TaskState.RETRYING),
            (Task.success(data=1), TaskSuccess, TaskState.SUCCESS),
            (Task.failure(error=ValueError("x")), TaskFailure, TaskState.FAILURE),
        ],
    )
    def test_constructors_build_variants(self, task, variant, state) -> None:
        assert isinstance(task, variant)
        assert task.state is state

    def test_predicates_are_exclusive(self) -> None:
        tasks = [
            Task.pending(),
            Task.running(),
            Task.refreshing(),
            Task.retrying(),
            Task.success(data=1),
            Task.failure(error="e"),
        ]
        for task in tasks:
            flags = [
                task.is_pending,
                task.is_running,
                task.is_refreshing,
                task.is_retrying,
                task.is_success,
                task.is_failure,
            ]
            assert flags.count(True) == 1

    def test_base_class_cannot_be_instantiated(self) -> None:
        with pytest.raises(ConfigurationError):
            Task()

    def test_tasks_are_immutable(self) -> None:
        task = Task.success(data=1)
        with pytest.raises(AttributeError):
            task.data = 2  # type: ignore[misc]

    def test_equality_by_value(self) -> None:
        assert Task.success(data=1, label="a") == Task.success(data=1, label="a")
        assert Task.success(data=1) != Task.success(data=2)
        assert Task.pending() != Task.running()

    def test_simple_task_alias(self) -> None:
        task: SimpleTask[int] = Task.pending(label="count", tags={"numbers"})
        assert task.label == "count"


class TestEffectiveData:
    """Test the effective_data fallback chain."""

    def test_success_uses_data(self) -> None:
        assert Task.success(data=5, initial_data=1).effective_data == 5

    def test_previous_data_preferred_over_initial(self) -> None:
        assert Task.running(previous_data=3, initial_data=1).effective_data == 3

    def test_initial_data_fallback(self) -> None:
        assert Task.refreshing(initial_data=1).effective_data == 1
        assert Task.failure(error="e", initial_data=1).effective_data == 1
        assert Task.pending(initial_data=1).effective_data == 1


class TestCheckedAccessors:
    """Test as_* accessors."""

    def test_matching_state_returns_self(self) -> None:
        task = Task.success(data="ok")
        assert task.as_success() is task

    def test_mismatch_raises(self) -> None:
        task = Task.pending()
        with pytest.raises(TaskStateAccessError) as exc_info:
            task.as_success()

        error = exc_info.value
        assert error.expected is TaskState.SUCCESS
        assert error.actual is TaskState.PENDING
        assert "success" in error.message and "pending" in error.message

    def test_all_accessors(self) -> None:
        assert Task.running().as_running().is_running
        assert Task.refreshing().as_refreshing().is_refreshing
        assert Task.retrying().as_retrying().is_retrying
        assert Task.failure(error="e").as_failure().is_failure
        assert Task.pending().as_pending().is_pending
        with pytest.raises(TaskStateAccessError):
            Task.success(data=1).as_failure()


class TestTransitions:
    """Test lifecycle transitions."""

    def test_full_lifecycle_preserves_metadata(self) -> None:
        task = Task.pending(label="load", tags={"io"}, initial_data=0)
        running = task.to_running()
        success = running.to_success(10)
        refreshing = success.to_refreshing()
        failure = refreshing.to_failure(RuntimeError("down"))
        retrying = failure.to_retrying()

        for snapshot in (running, success, refreshing, failure, retrying):
            assert snapshot.label == "load"
            assert snapshot.tags == {"io"}
            assert snapshot.initial_data == 0

        assert refreshing.previous_data == 10
        assert failure.previous_data == 10
        assert retrying.previous_data == 10

    def test_transitions_do_not_mutate(self) -> None:
        task = Task.pending()
        task.to_running()
        assert task.is_pending

    def test_to_running_captures_effective_data(self) -> None:
        assert Task.success(data="cached").to_running().previous_data == "cached"
        assert Task.pending(initial_data="seed").to_running().previous_data == "seed"

    def test_to_failure_records_trace(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError as exc:
            failure = Task.running().to_failure(exc, stack_trace=exc.__traceback__)

        assert isinstance(failure.error, ValueError)
        assert failure.stack_trace is not None

    def test_to_pending_replaces_initial_data(self) -> None:
        task = Task.success(data=2, initial_data=1)
        assert task.to_pending().initial_data == 1
        assert task.to_pending(initial_data=9).initial_data == 9

    def test_transitions_allowed_from_any_state(self) -> None:
        assert Task.success(data=1).to_success(2).data == 2
        assert Task.pending().to_failure("e").is_failure


class TestApplyTransition:
    """Test the runtime transition dispatcher."""

    def test_dispatches_by_state(self) -> None:
        task = Task.pending(label="x")
        assert task.apply_transition(TaskState.RUNNING).is_running
        assert task.apply_transition(TaskState.REFRESHING).is_refreshing
        assert task.apply_transition(TaskState.RETRYING).is_retrying
        assert task.apply_transition(TaskState.SUCCESS, data=3).as_success().data == 3

    def test_failure_with_error(self) -> None:
        failure = Task.running().apply_transition(TaskState.FAILURE, error="boom")
        assert failure.as_failure().error == "boom"

    def test_accepts_state_values(self) -> None:
        assert Task.pending().apply_transition("running").is_running

    def test_pending_keeps_effective_data(self) -> None:
        task = Task.success(data=4)
        assert task.apply_transition(TaskState.PENDING).initial_data == 4
        assert task.apply_transition(TaskState.PENDING, data=7).initial_data == 7

    def test_success_without_data_rejected(self) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            Task.running().apply_transition(TaskState.SUCCESS)
        assert exc_info.value.target_state is TaskState.SUCCESS

    def test_failure_without_error_rejected(self) -> None:
        with pytest.raises(InvalidTransitionError):
            Task.running().apply_transition(TaskState.FAILURE)


class TestDataTransforms:
    """Test map_data, map_error, transform and copies."""

    def test_map_data_on_success(self) -> None:
        task = Task.success(data=2, initial_data=1, label="n").map_data(lambda n: n * 10)
        assert task.as_success().data == 20
        assert task.initial_data == 10
        assert task.label == "n"

    def test_map_data_on_in_flight(self) -> None:
        task = Task.refreshing(previous_data=3).map_data(str)
        assert task.as_refreshing().previous_data == "3"
        assert task.initial_data is None

    def test_map_data_keeps_failure_error(self) -> None:
        task = Task.failure(error="e", previous_data=1).map_data(lambda n: n + 1)
        failure = task.as_failure()
        assert failure.error == "e"
        assert failure.previous_data == 2

    def test_map_error(self) -> None:
        failure = Task.failure(error=ValueError("low")).map_error(lambda e: RuntimeError(str(e)))
        assert isinstance(failure.as_failure().error, RuntimeError)

    def test_map_error_ignores_other_states(self) -> None:
        task = Task.success(data=1)
        assert task.map_error(lambda e: "never") is task

    def test_transform_success(self) -> None:
        task = Task.success(data=1).transform(update_data=lambda d: d + 1)
        assert task.as_success().data == 2

    def test_transform_pending_initial_data(self) -> None:
        task = Task.pending(initial_data=1).transform(update_data=lambda d: d * 3)
        assert task.initial_data == 3

    def test_transform_failure(self) -> None:
        task = Task.failure(error="old", previous_data=1).transform(
            update_error=lambda e: e.upper(),
            update_previous=lambda d: d + 1,
        )
        failure = task.as_failure()
        assert failure.error == "OLD"
        assert failure.previous_data == 2

    def test_transform_error_none_keeps_previous_error(self) -> None:
        task = Task.failure(error="kept").transform(update_error=lambda e: None)
        assert task.as_failure().error == "kept"

    def test_transform_without_updaters_is_equal(self) -> None:
        task = Task.running(previous_data=1, label="l")
        assert task.transform() == task

    def test_copy_with_ignores_none(self) -> None:
        task = Task.success(data=1, label="a")
        copied = task.copy_with(data=2, label=None)
        assert copied.as_success().data == 2
        assert copied.label == "a"

    def test_copy_with_or_none_clears_fields(self) -> None:
        task = Task.running(previous_data=1, label="a", tags={"t"}, initial_data=0)
        copied = task.copy_with_or_none(label="b")
        assert copied.label == "b"
        assert copied.tags is None
        assert copied.initial_data is None
        assert copied.as_running().previous_data is None

    def test_copy_with_or_none_requires_success_data(self) -> None:
        with pytest.raises(InvalidTransitionError):
            Task.success(data=1).copy_with_or_none(label="x")
        assert Task.success(data=1).copy_with_or_none(data=5).as_success().data == 5

    def test_copy_with_or_none_requires_failure_error(self) -> None:
        with pytest.raises(InvalidTransitionError):
            Task.failure(error="e").copy_with_or_none()


class TestRunners:
    """Test run_sync, run and watch."""

    def test_run_sync_success(self) -> None:
        task = Task.run_sync(lambda: 42, label="answer")
        assert task.as_success().data == 42
        assert task.label == "answer"

    def test_run_sync_failure(self) -> None:
        def explode() -> int:
            raise KeyError("missing")

        failure = Task.run_sync(explode).as_failure()
        assert isinstance(failure.error, KeyError)
        assert failure.stack_trace is not None

    async def test_run_async_success(self) -> None:
        async def compute() -> str:
            await asyncio.sleep(0)
            return "done"

        task = await Task.run(compute, tags={"async"})
        assert task.as_success().data == "done"
        assert task.tags == {"async"}

    async def test_run_async_failure(self) -> None:
        async def compute() -> str:
            raise ConnectionError("offline")

        task = await Task.run(compute)
        assert isinstance(task.as_failure().error, ConnectionError)

    async def test_run_does_not_catch_base_exceptions(self) -> None:
        class Shutdown(BaseException):
            pass

        async def compute() -> None:
            raise Shutdown()

        with pytest.raises(Shutdown):
            await Task.run(compute)

    async def test_watch_yields_running_then_result(self) -> None:
        snapshots = [task async for task in Task.watch(lambda: 7, label="w")]

        assert [task.state for task in snapshots] == [TaskState.RUNNING, TaskState.SUCCESS]
        assert snapshots[-1].as_success().data == 7
        assert all(task.label == "w" for task in snapshots)

    async def test_watch_yields_failure(self) -> None:
        async def compute() -> int:
            raise ValueError("nope")

        snapshots = [task async for task in Task.watch(compute)]
        assert snapshots[0].is_running
        assert snapshots[1].is_failure


class TestEffectiveDataAcrossTransitions:
    """Test effective_data as a task moves through its lifecycle."""

    def test_success_data_survives_running_and_failure(self) -> None:
        success = Task.success(data=5)
        running = success.to_running()
        failure = running.to_failure(RuntimeError("lost"))

        assert success.effective_data == 5
        assert running.effective_data == 5
        assert failure.effective_data == 5
        assert Task.pending(initial_data=None).effective_data is None
