from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator

from .config import SLOT_DURATION_MINUTES
from .models import WEEKEND_DAYS, ScheduleConfig, weekday_number


@dataclass(frozen=True)
class TimeSlot:
    start_time: str
    end_time: str


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` string into minutes since midnight."""
    hours, minutes = value.strip().split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_clock_time(value: str) -> int:
    """Like ``time_to_minutes`` but only accepts zero-padded ``HH:MM`` within a day.

    Raises ValueError for values such as ``9:00``, ``10:75`` or ``24:00``.
    """
    minutes = time_to_minutes(value)
    if not 0 <= minutes < 24 * 60 or minutes_to_time(minutes) != value:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return minutes


def parse_day(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` date, rejecting the other ISO spellings."""
    parsed = date.fromisoformat(value)
    if parsed.isoformat() != value:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    return parsed


def as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def hours_until(day: date | str, start_time: str, now: datetime) -> float:
    target = datetime.combine(as_date(day), datetime.strptime(start_time, "%H:%M").time())
    return (target - now).total_seconds() / 3600


def ranges_overlap(start: int, end: int, other_start: int, other_end: int) -> bool:
    """Return True when two minute ranges overlap by even one minute.

    Ranges are treated as half-open: [start, end)
    so touching boundaries (e.g. 13:30-14:00 and 14:00-15:00) do not overlap.
    """
    return start < other_end and end > other_start


def has_time_overlap(start_time: str, end_time: str, other_start: str, other_end: str) -> bool:
    return ranges_overlap(
        time_to_minutes(start_time),
        time_to_minutes(end_time),
        time_to_minutes(other_start),
        time_to_minutes(other_end),
    )


def can_reserve(start_time: str, end_time: str, existing: Iterable[tuple[str, str]]) -> bool:
    """Return True if the requested range does not overlap any existing range."""
    if time_to_minutes(start_time) >= time_to_minutes(end_time):
        raise ValueError("start_time must be earlier than end_time.")

    for other_start, other_end in existing:
        if has_time_overlap(start_time, end_time, other_start, other_end):
            return False
    return True


def is_weekend(day: date | str) -> bool:
    return weekday_number(as_date(day)) in WEEKEND_DAYS


def is_slot_in_break(start_time: str, end_time: str, config: ScheduleConfig, day: date | str) -> bool:
    """Return True if the slot overlaps the break that applies on ``day``.

    Weekend dates use the weekend break only when differentiated schedules
    are enabled; otherwise the single break definition always applies.
    """
    target = as_date(day)
    weekday = weekday_number(target)

    if config.differentiated and weekday in WEEKEND_DAYS:
        break_start = config.weekend_break_start
        break_end = config.weekend_break_end
        break_days = config.weekend_break_days_of_week
    else:
        break_start = config.break_start
        break_end = config.break_end
        break_days = config.break_days_of_week

    if not break_start or not break_end:
        return False
    if break_days is not None and weekday not in break_days:
        return False

    return has_time_overlap(start_time, end_time, break_start, break_end)


def effective_hours(config: ScheduleConfig, day: date | str) -> tuple[int, int]:
    opening = config.opening_time
    closing = config.closing_time
    if config.differentiated:
        if is_weekend(day):
            opening = config.weekend_opening_time or opening
            closing = config.weekend_closing_time or closing
        else:
            opening = config.weekday_opening_time or opening
            closing = config.weekday_closing_time or closing
    return time_to_minutes(opening), time_to_minutes(closing)


def generate_slots(day: date | str, config: ScheduleConfig) -> Iterator[TimeSlot]:
    """Yield the bookable slots for ``day`` in order, skipping break slots."""
    target = as_date(day)
    opening, closing = effective_hours(config, target)
    duration = SLOT_DURATION_MINUTES

    current = opening
    while current + duration <= closing:
        start_time = minutes_to_time(current)
        end_time = minutes_to_time(current + duration)
        if not is_slot_in_break(start_time, end_time, config, target):
            yield TimeSlot(start_time, end_time)
        current += duration
