"""Domain errors raised by the scheduling core.

Each error carries the HTTP status the API layer answers with, so routes
never need to map them one by one.
"""

from fastapi import status


class AppointmentError(Exception):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = 'Invalid appointment request.'

    def __init__(self, message: str | None = None, errors: dict | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class AppointmentValidationError(AppointmentError):
    default_message = 'The given data was invalid.'


class OwnershipError(AppointmentError):
    # 404 rather than 403 so callers cannot probe for other users' records.
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'You do not own this appointment'


class ForbiddenError(AppointmentError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not allowed to perform this action'


class AppointmentNotFoundError(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Appointment not found'


class AvailabilityError(AppointmentError):
    default_message = 'Doctor is not working at the selected time'


class SlotConflictError(AppointmentError):
    default_message = 'The selected time slot is not available'


class InvalidStateError(AppointmentError):
    default_message = 'Appointment cannot be changed in its current state'


class SchedulingBusyError(AppointmentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'The schedule is busy, please retry.'
