"""
Half-open date intervals used by every booking and calendar computation.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from .errors import ValidationError

ONE_DAY = timedelta(days=1)


def sunday_weekday(day: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class DateRange:
    """The nights ``[start, end)``; ``end`` is the check-out day."""

    start: date
    end: date

    def __post_init__(self):
        if self.end <= self.start:
            raise ValidationError(
                f"End date {self.end.isoformat()} must be after start date {self.start.isoformat()}",
                {"start": self.start.isoformat(), "end": self.end.isoformat()}
            )

    @classmethod
    def inclusive(cls, first: date, last: date) -> "DateRange":
        """Range covering ``first`` through ``last`` (both included)."""
        if last < first:
            raise ValidationError(
                f"Last date {last.isoformat()} is before first date {first.isoformat()}"
            )
        return cls(first, last + ONE_DAY)

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    @property
    def last(self) -> date:
        return self.end - ONE_DAY

    def days(self) -> List[date]:
        return [self.start + timedelta(days=n) for n in range(self.nights)]

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def overlaps(self, other: "DateRange") -> bool:
        # Back-to-back ranges (one ends the day the other starts) do not overlap
        return self.start < other.end and self.end > other.start

    def __len__(self) -> int:
        return self.nights

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"
