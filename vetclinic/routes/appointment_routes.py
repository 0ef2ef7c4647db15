import datetime as dt
from datetime import date, datetime, time
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator

from vetclinic.auth.dependencies import get_current_user
from vetclinic.core import responses
from vetclinic.core.exceptions import AppointmentValidationError
from vetclinic.models.appointment import APPOINTMENT_STATUSES, APPOINTMENT_TYPES, Appointment
from vetclinic.models.user import User
from vetclinic.routes.availability_routes import parse_request_time
from vetclinic.routes.providers import get_booking_service
from vetclinic.scheduling.booking import (
    MAX_DURATION_MINUTES,
    MAX_NOTES_LENGTH,
    MIN_DURATION_MINUTES,
    AppointmentPage,
    AppointmentPatch,
    BookingData,
    BookingService,
)
from vetclinic.scheduling.filters import AppointmentFilters

router = APIRouter(tags=['appointments'])


def _normalize_time(value):
    if value is None or isinstance(value, time):
        return value
    try:
        return parse_request_time(value)
    except AppointmentValidationError as exc:
        raise ValueError('The time field format is invalid.') from exc


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'The notes may not be greater than {MAX_NOTES_LENGTH} characters.')

    return normalized


def _normalize_choice(value: str | None, choices: tuple[str, ...], label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip().lower()
    if normalized not in choices:
        raise ValueError(f'The selected {label} is invalid.')

    return normalized


class BookAppointmentRequest(BaseModel):
    doctor_id: int
    pet_id: int
    date: date
    time: time
    appointment_type: str
    duration: int
    notes: str | None = None

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value):
        return _normalize_time(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        return _normalize_choice(value, APPOINTMENT_TYPES, 'appointment type')

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if not MIN_DURATION_MINUTES <= value <= MAX_DURATION_MINUTES:
            raise ValueError(
                f'The duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.'
            )
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    def to_booking_data(self) -> BookingData:
        return BookingData(
            doctor_id=self.doctor_id,
            pet_id=self.pet_id,
            date=self.date,
            time=self.time,
            appointment_type=self.appointment_type,
            duration=self.duration,
            notes=self.notes,
        )


class UpdateAppointmentRequest(BaseModel):
    doctor_id: int | None = None
    pet_id: int | None = None
    date: dt.date | None = None
    time: dt.time | None = None
    appointment_type: str | None = None
    duration: int | None = None
    status: str | None = None
    notes: str | None = None

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value):
        return _normalize_time(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str | None) -> str | None:
        return _normalize_choice(value, APPOINTMENT_TYPES, 'appointment type')

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _normalize_choice(value, APPOINTMENT_STATUSES, 'status')

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and not MIN_DURATION_MINUTES <= value <= MAX_DURATION_MINUTES:
            raise ValueError(
                f'The duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.'
            )
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    def to_patch(self) -> AppointmentPatch:
        return AppointmentPatch(**self.model_dump())


class AppointmentListQuery(BaseModel):
    doctor_id: int | None = None
    pet_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    appointment_type: str | None = None
    per_page: int = Field(default=15, ge=1, le=100)
    page: int = Field(default=1, ge=1)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _normalize_choice(value, APPOINTMENT_STATUSES, 'status')

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str | None) -> str | None:
        return _normalize_choice(value, APPOINTMENT_TYPES, 'appointment type')

    @model_validator(mode='after')
    def validate_range(self) -> 'AppointmentListQuery':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('The end date must be a date after or equal to start date.')
        return self

    def to_filters(self) -> AppointmentFilters:
        return AppointmentFilters(
            doctor_id=self.doctor_id,
            pet_id=self.pet_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.status,
            appointment_type=self.appointment_type,
        )


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    doctor_name: str
    doctor_specialization: str
    user_id: int
    user_name: str
    user_email: str
    pet_id: int
    pet_name: str
    pet_species: str | None = None
    pet_breed: str | None = None
    start_datetime: datetime
    end_datetime: datetime
    appointment_type: str
    duration: int
    notes: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime


def serialize_appointment(appointment: Appointment) -> dict:
    doctor, pet, user = appointment.doctor, appointment.pet, appointment.user
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        doctor_name=doctor.name if doctor else '',
        doctor_specialization=(doctor.specialization if doctor else None) or 'General Veterinarian',
        user_id=appointment.user_id,
        user_name=user.name if user else '',
        user_email=user.email if user else '',
        pet_id=appointment.pet_id,
        pet_name=pet.name if pet else '',
        pet_species=pet.species if pet else None,
        pet_breed=pet.breed if pet else None,
        start_datetime=appointment.start_datetime,
        end_datetime=appointment.end_datetime,
        appointment_type=appointment.appointment_type,
        duration=appointment.duration,
        notes=appointment.notes,
        status=appointment.status,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    ).model_dump()


def serialize_page(page: AppointmentPage) -> dict:
    return {
        'appointments': [serialize_appointment(appointment) for appointment in page.items],
        'pagination': {
            'current_page': page.page,
            'last_page': page.last_page,
            'per_page': page.per_page,
            'total': page.total,
        },
    }


@router.get('/appointments')
def list_appointments(
    query: Annotated[AppointmentListQuery, Query()],
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    filters = query.to_filters()
    result = service.paginate_user_appointments(current_user, filters, page=query.page, per_page=query.per_page)

    return responses.success('Appointments retrieved successfully', {
        **serialize_page(result),
        'filters_applied': filters.applied(),
    })


@router.get('/appointments/upcoming')
def upcoming_appointments(
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointments = service.upcoming_appointments(current_user)
    return responses.success('Upcoming appointments retrieved successfully', {
        'appointments': [serialize_appointment(appointment) for appointment in appointments],
        'total': len(appointments),
    })


@router.get('/appointments/history')
def appointment_history(
    page: int = Query(default=1, ge=1),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    result = service.appointment_history(current_user, page=page)
    return responses.success('Appointment history retrieved successfully', serialize_page(result))


@router.get('/appointments/{appointment_id}')
def show_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.get_user_appointment(appointment_id, current_user)
    return responses.success('Appointment retrieved successfully', {
        'appointment': serialize_appointment(appointment),
    })


@router.post('/appointments', status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.book_appointment(data.to_booking_data(), current_user)
    return responses.success(
        'Appointment booked successfully',
        {'appointment': serialize_appointment(appointment)},
        status.HTTP_201_CREATED,
    )


@router.put('/appointments/{appointment_id}')
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.get_appointment(appointment_id)
    appointment = service.update_appointment(appointment, data.to_patch(), current_user)
    return responses.success('Appointment updated successfully', {
        'appointment': serialize_appointment(appointment),
    })


@router.patch('/appointments/{appointment_id}/cancel')
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.get_appointment(appointment_id)
    appointment = service.cancel_appointment(appointment, current_user)
    return responses.success('Appointment cancelled successfully', {
        'appointment': serialize_appointment(appointment),
    })


@router.delete('/appointments/{appointment_id}')
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.get_appointment(appointment_id)
    service.delete_appointment(appointment, current_user)
    return responses.success('Appointment deleted successfully')
