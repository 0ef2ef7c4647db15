from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from vetclinic.database import get_db
from vetclinic.scheduling.availability import AvailabilityCalculator
from vetclinic.scheduling.booking import BookingService


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def get_availability_calculator(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AvailabilityCalculator:
    return AvailabilityCalculator(db, clock=clock)


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, clock=clock)
