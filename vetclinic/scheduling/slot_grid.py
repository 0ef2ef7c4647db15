from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Iterable, Iterator

# 15 minutes for the visit and 5 minutes of rest.
SLOT_DURATION = 20
SLOT_DELTA = timedelta(minutes=SLOT_DURATION)


@dataclass(frozen=True)
class Slot:
    start: time
    end: time

    def to_dict(self) -> dict[str, str]:
        return {'start': self.start.strftime('%H:%M'), 'end': self.end.strftime('%H:%M')}


def round_up_to_slot(moment: datetime) -> datetime:
    """Round up to the next SLOT_DURATION boundary counted from midnight.

    Seconds are dropped first, so 09:20:30 stays at 09:20.
    """
    current = moment.replace(second=0, microsecond=0)
    minutes_since_midnight = current.hour * 60 + current.minute
    remainder = minutes_since_midnight % SLOT_DURATION

    if remainder:
        current += timedelta(minutes=SLOT_DURATION - remainder)

    return current


def effective_window_start(window_start: datetime, now: datetime | None) -> datetime:
    if now is not None and now.date() == window_start.date() and now > window_start:
        return round_up_to_slot(now)
    return window_start


def iter_slots(window_start: datetime, window_end: datetime) -> Iterator[tuple[datetime, datetime]]:
    cursor = window_start

    while cursor < window_end:
        slot_end = cursor + SLOT_DELTA
        if slot_end > window_end:
            break

        yield cursor, slot_end
        cursor = slot_end


def slot_grid(
    windows: Iterable[tuple[datetime, datetime]],
    now: datetime | None = None,
) -> list[tuple[datetime, datetime]]:
    slots: list[tuple[datetime, datetime]] = []

    for window_start, window_end in windows:
        start = effective_window_start(window_start, now)
        if start >= window_end:
            continue
        slots.extend(iter_slots(start, window_end))

    return slots
