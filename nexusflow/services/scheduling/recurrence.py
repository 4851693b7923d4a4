import enum
from datetime import date, timedelta
from typing import FrozenSet, Optional


class Weekday(enum.IntEnum):
    """Weekdays numbered like `date.weekday()`."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())

    @classmethod
    def from_name(cls, name: str) -> Optional["Weekday"]:
        """Map a stored English weekday name ("Monday", "monday", " Mon") to a member."""
        cleaned = name.strip().upper()
        if not cleaned:
            return None
        for member in cls:
            if member.name == cleaned or member.name[:3] == cleaned:
                return member
        return None


def parse_weekly_details(details: Optional[str]) -> Optional[FrozenSet[Weekday]]:
    """
    Parse a weekly `recurrence_details` value such as "Monday,Wednesday".

    Returns None when the value is missing or any entry is not a weekday
    name, so callers can fail closed.
    """
    if not details:
        return None

    weekdays = set()
    for raw_name in details.split(","):
        weekday = Weekday.from_name(raw_name)
        if weekday is None:
            return None
        weekdays.add(weekday)

    return frozenset(weekdays) if weekdays else None


def parse_monthly_details(details: Optional[str]) -> Optional[int]:
    """Parse a monthly `recurrence_details` day-of-month (1..31)."""
    if not details:
        return None
    try:
        day_of_month = int(details.strip())
    except ValueError:
        return None
    if not 1 <= day_of_month <= 31:
        return None
    return day_of_month


def most_recent_occurrence(weekdays: FrozenSet[Weekday], today: date) -> date:
    """Latest date on or before `today` whose weekday is in `weekdays`."""
    for offset in range(7):
        candidate = today - timedelta(days=offset)
        if Weekday.of(candidate) in weekdays:
            return candidate
    raise ValueError("weekdays must not be empty")
