"""
Intervals -- inclusive date ranges with an optional open end.

Responsibility:
    The one overlap predicate used by the history store, its SQL
    counterpart and the tests.  A missing end date means "open ended"
    and compares as +infinity.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    [a1, b1] and [a2, b2] overlap iff a1 <= b2 and a2 <= b1.  This covers
    partial overlap, identical ranges, shared boundary days and full
    containment in either direction.
"""

from dataclasses import dataclass
from datetime import date, timedelta

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DateInterval:
    """Inclusive [start, end] range.  ``end=None`` is open ended."""

    start: date
    end: date | None = None

    def __post_init__(self) -> None:
        if self.end is not None and self.end < self.start:
            raise ValueError(
                f"Interval end {self.end} is before start {self.start}"
            )

    @property
    def is_open(self) -> bool:
        return self.end is None

    def contains(self, day: date) -> bool:
        return self.start <= day and (self.end is None or day <= self.end)

    def overlaps(self, other: "DateInterval") -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)

    def intersection(self, other: "DateInterval") -> "DateInterval | None":
        """The shared span, or None when the intervals are disjoint."""
        if not self.overlaps(other):
            return None
        start = max(self.start, other.start)
        if self.end is None:
            end = other.end
        elif other.end is None:
            end = self.end
        else:
            end = min(self.end, other.end)
        return DateInterval(start, end)


def intervals_overlap(
    start1: date, end1: date | None, start2: date, end2: date | None
) -> bool:
    """Closed-interval overlap test with None meaning +infinity."""
    starts_before_other_ends = end2 is None or start1 <= end2
    other_starts_before_end = end1 is None or start2 <= end1
    return starts_before_other_ends and other_starts_before_end


def day_before(day: date) -> date:
    return day - ONE_DAY
