"""Exception hierarchy for the asyncstate library."""

from types import TracebackType
from typing import Any, Optional


class AsyncStateError(Exception):
    """Base exception for all asyncstate errors."""

    def __init__(self, message: str, **extra_data: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra_data = extra_data


class ConfigurationError(AsyncStateError):
    """Raised when a constructor or factory is misused."""

    pass


class InvalidTransitionError(AsyncStateError):
    """Raised when a transition is requested without its required payload."""

    def __init__(self, message: str, target_state: Any = None, **extra_data: Any) -> None:
        super().__init__(message, **extra_data)
        self.target_state = target_state


class TaskTypeMismatchError(AsyncStateError):
    """Raised when a stored task is not the variant the caller asked for."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        expected: Optional[type] = None,
        actual: Optional[type] = None,
        **extra_data: Any,
    ) -> None:
        super().__init__(message, **extra_data)
        self.key = key
        self.expected = expected
        self.actual = actual


class TaskStateAccessError(AsyncStateError):
    """Raised when a checked accessor is used on a task in another state."""

    def __init__(
        self, message: str, expected: Any = None, actual: Any = None, **extra_data: Any
    ) -> None:
        super().__init__(message, **extra_data)
        self.expected = expected
        self.actual = actual


class RetryError(AsyncStateError):
    """Raised when a retried operation gives up.

    Either every attempt failed or the ``on_retry`` hook declined to continue.
    The last error is also chained as ``__cause__``.
    """

    def __init__(
        self,
        last_error: BaseException,
        attempts: int,
        stack_trace: Optional[TracebackType] = None,
        **extra_data: Any,
    ) -> None:
        super().__init__(
            f"Failed after {attempts} attempts. Last error: {last_error!r}", **extra_data
        )
        self.last_error = last_error
        self.attempts = attempts
        self.stack_trace = stack_trace

    def to_dict(self) -> dict[str, Any]:
        """Summarise the failure as plain data."""
        return {
            "message": self.message,
            "attempts": self.attempts,
            "last_error": repr(self.last_error),
            "last_error_type": type(self.last_error).__name__,
            **self.extra_data,
        }


class RetryConcurrentUseError(AsyncStateError):
    """Raised when a Retry instance is called while a call is already in flight."""

    def __init__(self, message: Optional[str] = None, **extra_data: Any) -> None:
        super().__init__(
            message
            or (
                "Cannot call retry while another operation is in progress. "
                "Create a new Retry instance or wait for the current operation to complete."
            ),
            **extra_data,
        )


__all__ = [
    "AsyncStateError",
    "ConfigurationError",
    "InvalidTransitionError",
    "RetryConcurrentUseError",
    "RetryError",
    "TaskStateAccessError",
    "TaskTypeMismatchError",
]
