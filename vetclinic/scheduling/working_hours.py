"""Doctor working hours.

Doctors store their hours either as a single daily range ("09:00-19:00")
that applies to every day of the week, or as a weekly schedule mapping
weekday names to one or more such ranges. Both are read into a
``WeeklySchedule``; an unreadable value means the doctor is never available.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

_TIME_PATTERN = re.compile(r'^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$')


def parse_time_of_day(value: str) -> time | None:
    match = _TIME_PATTERN.match(value)
    if not match:
        return None

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return None

    return time(hour, minute, second)


def parse_working_hours(value: str | None) -> tuple[time, time] | None:
    """Parse "HH:MM-HH:MM" into a (start, end) pair.

    Returns None for a missing value, a value without "-" or a side that is
    not a time of day. ``start >= end`` is not rejected here; such a range
    simply produces no slots.
    """
    if not isinstance(value, str) or '-' not in value:
        return None

    start_text, end_text = value.split('-', 1)
    start = parse_time_of_day(start_text)
    end = parse_time_of_day(end_text)
    if start is None or end is None:
        return None

    return start, end


def working_window(value: str | None, day: date) -> tuple[datetime, datetime] | None:
    parsed = parse_working_hours(value)
    if parsed is None:
        return None

    start, end = parsed
    return datetime.combine(day, start), datetime.combine(day, end)


def _weekday_index(key) -> int | None:
    if isinstance(key, int):
        return key if 0 <= key <= 6 else None

    normalized = str(key).strip().lower()
    if normalized.isdigit():
        return _weekday_index(int(normalized))

    for index, name in enumerate(WEEKDAY_NAMES):
        if name == normalized or name[:3] == normalized:
            return index

    return None


def merge_ranges(ranges) -> tuple[tuple[time, time], ...]:
    """Sort ranges and join the ones that overlap or touch.

    Empty or inverted ranges are dropped.
    """
    merged: list[tuple[time, time]] = []
    for start, end in sorted(r for r in ranges if r[0] < r[1]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return tuple(merged)


@dataclass(frozen=True)
class WeeklySchedule:
    intervals: dict[int, tuple[tuple[time, time], ...]] = field(default_factory=dict)

    @classmethod
    def from_working_hours(cls, value: str | None) -> 'WeeklySchedule':
        parsed = parse_working_hours(value)
        if parsed is None:
            return cls()
        return cls({weekday: (parsed,) for weekday in range(7)})

    @classmethod
    def from_mapping(cls, mapping: dict | None) -> 'WeeklySchedule':
        if not mapping:
            return cls()

        intervals: dict[int, tuple[tuple[time, time], ...]] = {}
        for key, ranges in mapping.items():
            weekday = _weekday_index(key)
            if weekday is None:
                logger.warning('Ignoring unknown weekday %r in weekly schedule', key)
                continue

            if isinstance(ranges, str):
                ranges = [ranges]

            parsed_ranges = []
            for range_text in ranges or []:
                parsed = parse_working_hours(range_text)
                if parsed is None:
                    logger.warning('Ignoring malformed working hours %r for %s', range_text, WEEKDAY_NAMES[weekday])
                    continue
                parsed_ranges.append(parsed)

            merged = merge_ranges(parsed_ranges)
            if merged:
                intervals[weekday] = merged

        return cls(intervals)

    @property
    def is_empty(self) -> bool:
        return not self.intervals

    def windows_for(self, day: date) -> list[tuple[datetime, datetime]]:
        return [
            (datetime.combine(day, start), datetime.combine(day, end))
            for start, end in self.intervals.get(day.weekday(), ())
        ]

    def is_working_at(self, moment: datetime) -> bool:
        """True when ``moment`` falls inside a working range, both ends included."""
        return any(start <= moment <= end for start, end in self.windows_for(moment.date()))

    def covers(self, start: datetime, end: datetime) -> bool:
        return any(
            window_start <= start and end <= window_end
            for window_start, window_end in self.windows_for(start.date())
        )


def schedule_for_doctor(doctor) -> WeeklySchedule:
    if doctor.weekly_schedule:
        return WeeklySchedule.from_mapping(doctor.weekly_schedule)
    return WeeklySchedule.from_working_hours(doctor.working_hours)


def has_working_hours(doctor) -> bool:
    return doctor.working_hours is not None or bool(doctor.weekly_schedule)
