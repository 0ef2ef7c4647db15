import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Callable

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vetclinic.auth.dependencies import get_current_doctor
from vetclinic.core import responses
from vetclinic.core.exceptions import AppointmentValidationError, SlotConflictError
from vetclinic.database import get_db
from vetclinic.models.doctor import Doctor
from vetclinic.models.restricted_zone import RestrictedZone
from vetclinic.routes.providers import get_availability_calculator, get_clock
from vetclinic.scheduling.availability import AvailabilityCalculator
from vetclinic.scheduling.conflicts import overlap_clause
from vetclinic.scheduling.slot_grid import SLOT_DURATION

logger = logging.getLogger(__name__)

router = APIRouter(tags=['availability'])

MAX_CALENDAR_DAYS = 62
MAX_REASON_LENGTH = 1000
TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$')


def parse_request_time(value: str, field: str = 'time') -> time:
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise AppointmentValidationError(errors={field: [f'The {field} field format is invalid.']})
    return time(int(match.group(1)), int(match.group(2)))


def ensure_not_before_today(day: date, today: date, field: str = 'date') -> None:
    if day < today:
        raise AppointmentValidationError(
            errors={field: [f'The {field.replace("_", " ")} must be a date after or equal to today.']}
        )


class RestrictedZoneRequest(BaseModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None

    @field_validator('start_datetime', 'end_datetime')
    @classmethod
    def validate_naive(cls, value: datetime) -> datetime:
        # Stored times are naive clinic-local; convert offsets to local time.
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_range(self) -> 'RestrictedZoneRequest':
        if self.end_datetime <= self.start_datetime:
            raise ValueError('The end datetime must be after the start datetime.')
        return self


class RestrictedZoneResponse(BaseModel):
    id: int
    doctor_id: int
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None

    class Config:
        from_attributes = True


def serialize_doctor(doctor: Doctor) -> dict:
    return {
        'id': doctor.id,
        'name': doctor.name,
        'specialization': doctor.specialization,
        'working_hours': doctor.working_hours,
        'weekly_schedule': doctor.weekly_schedule,
    }


@router.get('/appointments/calendar')
def calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    ensure_not_before_today(start_date, clock().date(), 'start_date')
    if end_date < start_date:
        raise AppointmentValidationError(
            errors={'end_date': ['The end date must be a date after or equal to start date.']}
        )
    if (end_date - start_date).days >= MAX_CALENDAR_DAYS:
        raise AppointmentValidationError(
            errors={'end_date': [f'The date range may not exceed {MAX_CALENDAR_DAYS} days.']}
        )

    days = calculator.calendar_for_date_range(start_date, end_date)
    data = {
        'calendar': [day.to_dict() for day in days],
        'date_range': {'start': start_date, 'end': end_date},
    }

    if not days:
        return responses.success('No available appointments found in the selected date range', data)

    return responses.success('Calendar availability retrieved successfully', data)


@router.get('/appointments/available-doctors')
@router.get('/appointments/calendar-by-doctor')
def available_doctors(
    date: date = Query(...),
    time: str = Query(...),
    duration: int = Query(default=SLOT_DURATION, ge=15, le=120),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    ensure_not_before_today(date, clock().date())
    slot_start = datetime.combine(date, parse_request_time(time))
    slot_end = slot_start + timedelta(minutes=duration)

    doctors = calculator.doctors_available_at(slot_start, slot_end)

    return responses.success('Available doctors retrieved successfully', {
        'doctors': [
            {
                **serialize_doctor(doctor),
                'slot': {
                    'start': slot_start.strftime('%H:%M'),
                    'end': slot_end.strftime('%H:%M'),
                    'date': date.isoformat(),
                },
            }
            for doctor in doctors
        ],
        'requested_slot': {
            'date': date.isoformat(),
            'time': slot_start.strftime('%H:%M'),
            'duration': f'{duration} minutes',
        },
        'total_available': len(doctors),
    })


@router.get('/doctors/{doctor_id}/available-slots')
def doctor_available_slots(
    doctor_id: int,
    date: date = Query(...),
    db: Session = Depends(get_db),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
):
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        return responses.error('Doctor not found', status.HTTP_404_NOT_FOUND)

    slots = calculator.slots_for_doctor_on_date(doctor, date)
    message = 'Available slots retrieved successfully' if slots else 'No available slots for this date'

    return responses.success(message, {
        'doctor': serialize_doctor(doctor),
        'available_slots': [slot.to_dict() for slot in slots],
    })


@router.get('/doctors/me/restricted-zones')
def list_restricted_zones(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    zones = db.query(RestrictedZone).filter(
        RestrictedZone.doctor_id == doctor.id,
        RestrictedZone.end_datetime > clock(),
    ).order_by(RestrictedZone.start_datetime.asc()).all()

    return responses.success('Restricted zones retrieved successfully', [
        RestrictedZoneResponse.model_validate(zone).model_dump() for zone in zones
    ])


@router.post('/doctors/me/restricted-zones', status_code=status.HTTP_201_CREATED)
def create_restricted_zone(
    data: RestrictedZoneRequest,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    try:
        overlapping_zone = db.query(RestrictedZone).filter(
            RestrictedZone.doctor_id == doctor.id,
            overlap_clause(RestrictedZone, data.start_datetime, data.end_datetime),
        ).first()
        if overlapping_zone:
            raise SlotConflictError('This time is already blocked.')

        zone = RestrictedZone(
            doctor_id=doctor.id,
            start_datetime=data.start_datetime,
            end_datetime=data.end_datetime,
            reason=data.reason,
        )
        db.add(zone)
        db.commit()
        db.refresh(zone)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Doctor %s blocked %s to %s', doctor.id, zone.start_datetime, zone.end_datetime)
    return responses.success(
        'Restricted zone created successfully',
        RestrictedZoneResponse.model_validate(zone).model_dump(),
        status.HTTP_201_CREATED,
    )


@router.delete('/doctors/me/restricted-zones/{zone_id}')
def remove_restricted_zone(
    zone_id: int,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    zone = db.query(RestrictedZone).filter(
        RestrictedZone.id == zone_id,
        RestrictedZone.doctor_id == doctor.id,
    ).first()

    if not zone:
        return responses.error('Restricted zone not found.', status.HTTP_404_NOT_FOUND)

    try:
        db.delete(zone)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return responses.success('Restricted zone removed successfully')

