"""Closed intervals over ordered values."""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class Interval(Generic[T]):
    """The closed range ``[start, end]``.

    Intervals order by ``start``, then ``end``. The plain constructor does not
    check its bounds; use ``Interval.checked`` to reject ``start > end``.
    """

    start: T
    end: T

    @classmethod
    def checked(cls, start: T, end: T) -> "Interval[T]":
        if start > end:  # type: ignore[operator]
            raise ValueError(
                f"end ({end!r}) must be greater than or equal to start ({start!r})"
            )
        return cls(start, end)

    @property
    def is_empty(self) -> bool:
        """True only for an unchecked interval whose start lies after its end."""
        return self.start > self.end  # type: ignore[operator,no-any-return]

    def contains(self, value: T) -> bool:
        return self.start <= value <= self.end  # type: ignore[operator,no-any-return]

    def __contains__(self, value: object) -> bool:
        return self.contains(value)  # type: ignore[arg-type]

    def contains_interval(self, other: "Interval[T]") -> bool:
        return self.start <= other.start and other.end <= self.end  # type: ignore[operator]

    def overlaps(self, other: "Interval[T]") -> bool:
        return self.start <= other.end and other.start <= self.end  # type: ignore[operator]

    def intersection(self, other: "Interval[T]") -> Optional["Interval[T]"]:
        """The largest interval inside both, or ``None`` if they are disjoint."""
        if not self.overlaps(other):
            return None
        start = max(self.start, other.start)  # type: ignore[type-var]
        end = min(self.end, other.end)  # type: ignore[type-var]
        return Interval(start, end)

    def span(self, other: "Interval[T]") -> "Interval[T]":
        """The smallest interval covering both, including any gap between them."""
        start = min(self.start, other.start)  # type: ignore[type-var]
        end = max(self.end, other.end)  # type: ignore[type-var]
        return Interval(start, end)

    @property
    def length(self) -> Any:
        """``end - start``: a number for numeric bounds, a ``timedelta`` for datetimes."""
        return self.end - self.start  # type: ignore[operator]

    def __str__(self) -> str:
        return f"[{self.start}, {self.end}]"


__all__ = ["Interval"]
