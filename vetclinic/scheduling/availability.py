"""Bookable slot computation.

Nothing is cached: every call re-reads the appointments and restricted zones
it needs, so results always reflect the latest committed bookings.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from vetclinic.core.exceptions import AppointmentValidationError
from vetclinic.models.doctor import Doctor
from vetclinic.scheduling.conflicts import ConflictIndex, ConflictSet, group_by_doctor
from vetclinic.scheduling.slot_grid import SLOT_DELTA, Slot, slot_grid
from vetclinic.scheduling.working_hours import has_working_hours, schedule_for_doctor


def _grid_bounds(grid: list[tuple[datetime, datetime]]) -> tuple[datetime, datetime]:
    return min(start for start, _ in grid), max(end for _, end in grid)


@dataclass(frozen=True)
class CalendarSlot:
    time: time
    available_count: int
    total_doctors: int

    def to_dict(self) -> dict:
        start = datetime.combine(date.min, self.time)
        return {
            'time': self.time.strftime('%H:%M'),
            'time_range': f"{start:%H:%M} - {start + SLOT_DELTA:%H:%M}",
            'available_count': self.available_count,
            'total_doctors': self.total_doctors,
        }


@dataclass
class DayAvailability:
    date: date
    available_slots: list[CalendarSlot] = field(default_factory=list)

    @property
    def day_name(self) -> str:
        return self.date.strftime('%A')

    @property
    def total_available_slots(self) -> int:
        return sum(slot.available_count for slot in self.available_slots)

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'day_name': self.day_name,
            'available_slots': [slot.to_dict() for slot in self.available_slots],
            'total_available_slots': self.total_available_slots,
        }


class AvailabilityCalculator:
    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock
        self.conflicts = ConflictIndex(db)

    def active_doctors(self) -> list[Doctor]:
        doctors = self.db.query(Doctor).order_by(Doctor.id.asc()).all()
        return [doctor for doctor in doctors if has_working_hours(doctor)]

    def _candidate_grid(self, doctor: Doctor, day: date, now: datetime) -> list[tuple[datetime, datetime]]:
        return slot_grid(schedule_for_doctor(doctor).windows_for(day), now)

    @staticmethod
    def _open_slots(grid: list[tuple[datetime, datetime]], conflicts: ConflictSet) -> list[Slot]:
        return [
            Slot(start.time(), end.time())
            for start, end in grid
            if not conflicts.blocks(start, end)
        ]

    def slots_for_doctor_on_date(self, doctor: Doctor, day: date) -> list[Slot]:
        grid = self._candidate_grid(doctor, day, self.clock())
        if not grid:
            return []

        window_start, window_end = _grid_bounds(grid)
        conflicts = self.conflicts.load([doctor.id], window_start, window_end)
        return self._open_slots(grid, conflicts)

    def multi_doctor_slots(self, doctors: Iterable[Doctor], day: date) -> dict[int, list[Slot]]:
        """Same result as slots_for_doctor_on_date per doctor, with one conflict query."""
        now = self.clock()
        grids = {doctor.id: self._candidate_grid(doctor, day, now) for doctor in doctors}

        non_empty = [grid for grid in grids.values() if grid]
        if not non_empty:
            return {doctor_id: [] for doctor_id in grids}

        bounds = [_grid_bounds(grid) for grid in non_empty]
        window_start = min(start for start, _ in bounds)
        window_end = max(end for _, end in bounds)
        grouped = group_by_doctor(self.conflicts.load(grids.keys(), window_start, window_end))

        return {
            doctor_id: self._open_slots(grid, grouped.get(doctor_id, ConflictSet()))
            for doctor_id, grid in grids.items()
        }

    def calendar_for_date_range(self, start_date: date, end_date: date) -> list[DayAvailability]:
        if end_date < start_date:
            raise AppointmentValidationError(
                'The end date must be a date after or equal to start date.',
                errors={'end_date': ['The end date must be a date after or equal to start date.']},
            )

        doctors = self.active_doctors()
        if not doctors:
            return []

        calendar: list[DayAvailability] = []
        current_day = start_date

        while current_day <= end_date:
            slots_by_doctor = self.multi_doctor_slots(doctors, current_day)
            counts = Counter(slot.start for slots in slots_by_doctor.values() for slot in slots)

            day = DayAvailability(
                date=current_day,
                available_slots=[
                    CalendarSlot(time=slot_time, available_count=count, total_doctors=len(doctors))
                    for slot_time, count in sorted(counts.items())
                ],
            )
            # Days without a single free doctor are left out rather than reported empty.
            if day.total_available_slots > 0:
                calendar.append(day)

            current_day += timedelta(days=1)

        return calendar

    def doctors_available_at(
        self,
        start_time: datetime,
        end_time: datetime,
        doctors: Iterable[Doctor] | None = None,
    ) -> list[Doctor]:
        if end_time <= start_time:
            raise AppointmentValidationError('The end time must be after the start time.')

        candidates = [
            doctor
            for doctor in (self.active_doctors() if doctors is None else doctors)
            if schedule_for_doctor(doctor).covers(start_time, end_time)
        ]
        if not candidates:
            return []

        conflicts = self.conflicts.load([doctor.id for doctor in candidates], start_time, end_time)
        return [
            doctor
            for doctor in candidates
            if not conflicts.for_doctor(doctor.id).blocks(start_time, end_time)
        ]
