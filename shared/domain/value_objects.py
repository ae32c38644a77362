"""
Common Value Objects

Value objects used across the salon domains:
- TimeSlot: a half-open interval [start, end) on one employee's calendar
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from shared.domain.base import ValueObject


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:
    """
    Half-open overlap test

    [start_a, end_a) and [start_b, end_b) overlap iff
    start_a < end_b AND start_b < end_a. Touching boundaries do not overlap.
    """
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class TimeSlot(ValueObject):
    """
    Time slot value object

    Represents a range from start (inclusive) to end (exclusive).
    Used for bookings, freed slots and waitlist offers.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Slot start ({self.start}) must be before slot end ({self.end})")

    @classmethod
    def starting_at(cls, start: datetime, minutes: int) -> 'TimeSlot':
        """Build a slot of the given length in minutes"""
        if minutes <= 0:
            raise ValueError("Slot duration must be positive")
        return cls(start, start + timedelta(minutes=minutes))

    def overlaps_with(self, other: 'TimeSlot') -> bool:
        """
        Check if this slot overlaps with another

        Examples:
            - [10:00, 10:30) overlaps with [10:29, 11:00) -> True
            - [10:00, 10:30) overlaps with [10:30, 11:00) -> False (adjacent)
        """
        if not isinstance(other, TimeSlot):
            raise TypeError("Can only check overlap with another TimeSlot")
        return intervals_overlap(self.start, self.end, other.start, other.end)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def __str__(self):
        return f"{self.start.isoformat()} - {self.end.isoformat()}"

    def __repr__(self):
        return f"TimeSlot({self.start!r}, {self.end!r})"
