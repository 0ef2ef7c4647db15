"""Loading and testing of scheduling conflicts.

Two half-open intervals [a, b) and [c, d) overlap when ``a < d and b > c``.
The same test is used in SQL (to fetch candidates) and in Python (to check a
single slot or range), for appointments and restricted zones alike.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import and_
from sqlalchemy.orm import Session

from vetclinic.models.appointment import Appointment
from vetclinic.models.restricted_zone import RestrictedZone

NON_BLOCKING_STATUSES = frozenset({'cancelled'})


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def overlap_clause(model, start: datetime, end: datetime):
    return and_(model.start_datetime < end, model.end_datetime > start)


def is_blocking(appointment: Appointment) -> bool:
    return appointment.status not in NON_BLOCKING_STATUSES


@dataclass
class ConflictSet:
    appointments: list[Appointment] = field(default_factory=list)
    restricted_zones: list[RestrictedZone] = field(default_factory=list)

    def for_doctor(self, doctor_id: int) -> 'ConflictSet':
        return ConflictSet(
            appointments=[a for a in self.appointments if a.doctor_id == doctor_id],
            restricted_zones=[z for z in self.restricted_zones if z.doctor_id == doctor_id],
        )

    def blocking_appointments(self) -> list[Appointment]:
        return [a for a in self.appointments if is_blocking(a)]

    def conflicting_appointment(self, start: datetime, end: datetime) -> Appointment | None:
        for appointment in self.blocking_appointments():
            if overlaps(start, end, appointment.start_datetime, appointment.end_datetime):
                return appointment
        return None

    def conflicting_zone(self, start: datetime, end: datetime) -> RestrictedZone | None:
        for zone in self.restricted_zones:
            if overlaps(start, end, zone.start_datetime, zone.end_datetime):
                return zone
        return None

    def blocks(self, start: datetime, end: datetime) -> bool:
        return (
            self.conflicting_appointment(start, end) is not None
            or self.conflicting_zone(start, end) is not None
        )


class ConflictIndex:
    """Fetches everything that may collide with a time window."""

    def __init__(self, db: Session):
        self.db = db

    def load(
        self,
        doctor_ids: Iterable[int],
        window_start: datetime,
        window_end: datetime,
        exclude_appointment_id: int | None = None,
    ) -> ConflictSet:
        ids = sorted(set(doctor_ids))
        if not ids or window_start >= window_end:
            return ConflictSet()

        appointment_query = self.db.query(Appointment).filter(
            Appointment.doctor_id.in_(ids),
            overlap_clause(Appointment, window_start, window_end),
        )
        if exclude_appointment_id is not None:
            appointment_query = appointment_query.filter(Appointment.id != exclude_appointment_id)

        zones = self.db.query(RestrictedZone).filter(
            RestrictedZone.doctor_id.in_(ids),
            overlap_clause(RestrictedZone, window_start, window_end),
        ).order_by(RestrictedZone.start_datetime.asc()).all()

        return ConflictSet(
            appointments=appointment_query.order_by(Appointment.start_datetime.asc()).all(),
            restricted_zones=zones,
        )


def group_by_doctor(conflicts: ConflictSet) -> dict[int, ConflictSet]:
    grouped: dict[int, ConflictSet] = defaultdict(ConflictSet)
    for appointment in conflicts.appointments:
        grouped[appointment.doctor_id].appointments.append(appointment)
    for zone in conflicts.restricted_zones:
        grouped[zone.doctor_id].restricted_zones.append(zone)
    return grouped
