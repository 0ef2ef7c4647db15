import datetime as dt
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from vetclinic.core.exceptions import (
    AppointmentNotFoundError,
    AppointmentValidationError,
    AvailabilityError,
    ForbiddenError,
    InvalidStateError,
    OwnershipError,
    SlotConflictError,
)
from vetclinic.models.appointment import (
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    TERMINAL_STATUSES,
    Appointment,
)
from vetclinic.models.doctor import Doctor
from vetclinic.models.pet import Pet
from vetclinic.models.user import User
from vetclinic.scheduling.conflicts import NON_BLOCKING_STATUSES, ConflictIndex, is_blocking
from vetclinic.scheduling.filters import AppointmentFilters, build_predicates
from vetclinic.scheduling.locks import DoctorLockRegistry, doctor_locks
from vetclinic.scheduling.working_hours import schedule_for_doctor

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120
MAX_NOTES_LENGTH = 1000
UPCOMING_LIMIT = 10


@dataclass(frozen=True)
class BookingData:
    doctor_id: int
    pet_id: int
    date: date
    time: time
    appointment_type: str
    duration: int
    notes: str | None = None


@dataclass(frozen=True)
class AppointmentPatch:
    """Partial update; fields left as None are not touched."""
    doctor_id: int | None = None
    pet_id: int | None = None
    date: dt.date | None = None
    time: dt.time | None = None
    appointment_type: str | None = None
    duration: int | None = None
    status: str | None = None
    notes: str | None = None

    def changes_schedule(self) -> bool:
        return any(value is not None for value in (self.doctor_id, self.date, self.time, self.duration))


@dataclass
class AppointmentPage:
    items: list[Appointment]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))


class BookingService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = datetime.now,
        locks: DoctorLockRegistry = doctor_locks,
    ):
        self.db = db
        self.clock = clock
        self.locks = locks
        self.conflicts = ConflictIndex(db)

    # Commands

    def book_appointment(self, data: BookingData, user: User) -> Appointment:
        self._validate_fields(
            appointment_type=data.appointment_type,
            duration=data.duration,
            day=data.date,
            notes=data.notes,
        )
        start = datetime.combine(data.date, data.time)
        end = start + timedelta(minutes=data.duration)

        with self.locks.hold([data.doctor_id]):
            try:
                self._validate_pet_ownership(data.pet_id, user.id)
                doctor = self._lock_doctor(data.doctor_id)
                self._ensure_slot_available(doctor, start, end)

                appointment = Appointment(
                    doctor_id=doctor.id,
                    user_id=user.id,
                    pet_id=data.pet_id,
                    start_datetime=start,
                    end_datetime=end,
                    appointment_type=data.appointment_type,
                    duration=data.duration,
                    notes=data.notes,
                    status='pending',
                )
                self.db.add(appointment)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(appointment)
        logger.info(
            'Booked appointment %s with doctor %s from %s to %s',
            appointment.id, appointment.doctor_id, start, end,
        )
        return appointment

    def update_appointment(self, appointment: Appointment, patch: AppointmentPatch, user: User) -> Appointment:
        self._validate_appointment_ownership(appointment, user)
        self._validate_fields(
            appointment_type=patch.appointment_type,
            duration=patch.duration,
            day=patch.date,
            notes=patch.notes,
            status=patch.status,
        )

        reschedule = patch.changes_schedule()
        # A cancelled appointment taking a blocking status again must still fit its slot.
        reactivate = (
            patch.status is not None
            and patch.status not in NON_BLOCKING_STATUSES
            and not is_blocking(appointment)
        )
        target_doctor_id = patch.doctor_id if patch.doctor_id is not None else appointment.doctor_id
        locked_doctors = {appointment.doctor_id, target_doctor_id} if reschedule or reactivate else set()

        with self.locks.hold(locked_doctors):
            try:
                if patch.pet_id is not None and patch.pet_id != appointment.pet_id:
                    self._validate_pet_ownership(patch.pet_id, user.id)
                    appointment.pet_id = patch.pet_id

                if reschedule:
                    day = patch.date if patch.date is not None else appointment.start_datetime.date()
                    start_time = patch.time if patch.time is not None else appointment.start_datetime.time()
                    duration = patch.duration if patch.duration is not None else appointment.duration
                    start = datetime.combine(day, start_time)
                    end = start + timedelta(minutes=duration)

                    doctor = self._lock_doctor(target_doctor_id)
                    self._ensure_slot_available(doctor, start, end, exclude_appointment_id=appointment.id)

                    appointment.doctor_id = doctor.id
                    appointment.start_datetime = start
                    appointment.end_datetime = end
                    appointment.duration = duration
                elif reactivate:
                    doctor = self._lock_doctor(appointment.doctor_id)
                    self._ensure_slot_available(
                        doctor,
                        appointment.start_datetime,
                        appointment.end_datetime,
                        exclude_appointment_id=appointment.id,
                    )

                if patch.appointment_type is not None:
                    appointment.appointment_type = patch.appointment_type
                if patch.status is not None:
                    appointment.status = patch.status
                if patch.notes is not None:
                    appointment.notes = patch.notes

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(appointment)
        logger.info('Updated appointment %s', appointment.id)
        return appointment

    def cancel_appointment(self, appointment: Appointment, user: User) -> Appointment:
        self._validate_appointment_ownership(appointment, user)

        if appointment.start_datetime < self.clock():
            raise InvalidStateError('Cannot cancel past appointments')

        if appointment.status in TERMINAL_STATUSES:
            raise InvalidStateError(f'Appointment is already {appointment.status}')

        try:
            appointment.status = 'cancelled'
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info('Cancelled appointment %s', appointment.id)
        return appointment

    def delete_appointment(self, appointment: Appointment, user: User) -> None:
        if not user.is_admin and appointment.user_id != user.id:
            raise ForbiddenError('Unauthorized to delete this appointment')

        appointment_id = appointment.id
        try:
            self.db.delete(appointment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info('Deleted appointment %s on behalf of user %s', appointment_id, user.id)

    # Queries

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError()
        return appointment

    def get_user_appointment(self, appointment_id: int, user: User) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None or appointment.user_id != user.id:
            raise AppointmentNotFoundError()
        return appointment

    def _user_query(self, user: User, filters: AppointmentFilters | None = None):
        return self.db.query(Appointment).filter(
            Appointment.user_id == user.id,
            build_predicates(filters or AppointmentFilters()),
        )

    def get_user_appointments(self, user: User, filters: AppointmentFilters | None = None) -> list[Appointment]:
        return self._user_query(user, filters).order_by(
            Appointment.start_datetime.asc(),
            Appointment.id.asc(),
        ).all()

    def paginate_user_appointments(
        self,
        user: User,
        filters: AppointmentFilters | None = None,
        page: int = 1,
        per_page: int = 15,
    ) -> AppointmentPage:
        query = self._user_query(user, filters)
        items = query.order_by(
            Appointment.start_datetime.asc(),
            Appointment.id.asc(),
        ).offset((page - 1) * per_page).limit(per_page).all()
        return AppointmentPage(items=items, total=query.count(), page=page, per_page=per_page)

    def upcoming_appointments(self, user: User, limit: int = UPCOMING_LIMIT) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.user_id == user.id,
            Appointment.start_datetime >= self.clock(),
            Appointment.status != 'cancelled',
        ).order_by(Appointment.start_datetime.asc()).limit(limit).all()

    def appointment_history(self, user: User, page: int = 1, per_page: int = 15) -> AppointmentPage:
        query = self.db.query(Appointment).filter(
            Appointment.user_id == user.id,
            Appointment.start_datetime < self.clock(),
        )
        items = query.order_by(
            Appointment.start_datetime.desc(),
        ).offset((page - 1) * per_page).limit(per_page).all()
        return AppointmentPage(items=items, total=query.count(), page=page, per_page=per_page)

    def is_slot_available(
        self,
        doctor_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: int | None = None,
    ) -> bool:
        doctor = self.db.get(Doctor, doctor_id)
        if doctor is None:
            return False
        try:
            self._ensure_slot_available(doctor, start, end, exclude_appointment_id)
        except (AvailabilityError, SlotConflictError):
            return False
        return True

    # Rules

    def _validate_fields(
        self,
        appointment_type: str | None = None,
        duration: int | None = None,
        day: date | None = None,
        notes: str | None = None,
        status: str | None = None,
    ) -> None:
        errors: dict[str, list[str]] = {}

        if appointment_type is not None and appointment_type not in APPOINTMENT_TYPES:
            errors['appointment_type'] = ['The selected appointment type is invalid.']
        if duration is not None and not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            errors['duration'] = [
                f'The duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.'
            ]
        if day is not None and day < self.clock().date():
            errors['date'] = ['The date must be a date after or equal to today.']
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            errors['notes'] = [f'The notes may not be greater than {MAX_NOTES_LENGTH} characters.']
        if status is not None and status not in APPOINTMENT_STATUSES:
            errors['status'] = ['The selected status is invalid.']

        if errors:
            raise AppointmentValidationError(errors=errors)

    def _validate_pet_ownership(self, pet_id: int, user_id: int) -> None:
        pet = self.db.get(Pet, pet_id)
        if pet is None:
            raise AppointmentValidationError(errors={'pet_id': ['The selected pet id is invalid.']})
        if pet.owner_id != user_id:
            raise OwnershipError('Pet not found or you do not own this pet')

    @staticmethod
    def _validate_appointment_ownership(appointment: Appointment, user: User) -> None:
        if appointment.user_id != user.id:
            raise OwnershipError('You do not own this appointment')

    def _lock_doctor(self, doctor_id: int) -> Doctor:
        # FOR UPDATE serializes bookings for this doctor across processes; SQLite ignores it.
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update(of=Doctor).first()
        if doctor is None:
            raise AppointmentValidationError(errors={'doctor_id': ['The selected doctor id is invalid.']})
        return doctor

    def _ensure_slot_available(
        self,
        doctor: Doctor,
        start: datetime,
        end: datetime,
        exclude_appointment_id: int | None = None,
    ) -> None:
        if not schedule_for_doctor(doctor).is_working_at(start):
            logger.info('Rejected booking: doctor %s is not working at %s', doctor.id, start)
            raise AvailabilityError('Doctor is not working at the selected time')

        conflicts = self.conflicts.load([doctor.id], start, end, exclude_appointment_id)
        if conflicts.blocks(start, end):
            logger.info('Rejected booking: doctor %s is busy between %s and %s', doctor.id, start, end)
            raise SlotConflictError('The selected time slot is not available')
