"""Appointment list filters.

Each filter is a small function turning one request field into a SQL
predicate (or nothing when the field is unset); ``build_predicates`` joins
the ones that apply.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable

from sqlalchemy import and_, true

from vetclinic.models.appointment import Appointment


@dataclass(frozen=True)
class AppointmentFilters:
    doctor_id: int | None = None
    pet_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    appointment_type: str | None = None

    def applied(self) -> dict:
        return {key: value for key, value in vars(self).items() if value is not None}


def by_doctor(filters: AppointmentFilters):
    if filters.doctor_id is not None:
        return Appointment.doctor_id == filters.doctor_id
    return None


def by_pet(filters: AppointmentFilters):
    if filters.pet_id is not None:
        return Appointment.pet_id == filters.pet_id
    return None


def by_start_date(filters: AppointmentFilters):
    if filters.start_date is not None:
        return Appointment.start_datetime >= datetime.combine(filters.start_date, time.min)
    return None


def by_end_date(filters: AppointmentFilters):
    # Inclusive: the whole end date counts.
    if filters.end_date is not None:
        return Appointment.start_datetime < datetime.combine(filters.end_date + timedelta(days=1), time.min)
    return None


def by_status(filters: AppointmentFilters):
    if filters.status is not None:
        return Appointment.status == filters.status
    return None


def by_type(filters: AppointmentFilters):
    if filters.appointment_type is not None:
        return Appointment.appointment_type == filters.appointment_type
    return None


FILTERS: tuple[Callable[[AppointmentFilters], object], ...] = (
    by_doctor,
    by_pet,
    by_start_date,
    by_end_date,
    by_status,
    by_type,
)


def build_predicates(filters: AppointmentFilters):
    clauses = [clause for clause in (build(filters) for build in FILTERS) if clause is not None]
    if not clauses:
        return true()
    return and_(*clauses)
