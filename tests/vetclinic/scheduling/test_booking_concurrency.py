import threading
from datetime import time

import pytest
from conftest import BOOKING_DAY, NOW, Factory, fixed_clock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vetclinic.core.exceptions import SchedulingBusyError, SlotConflictError
from vetclinic.database import init_db
from vetclinic.models.appointment import Appointment
from vetclinic.models.user import User
from vetclinic.scheduling.booking import BookingData, BookingService
from vetclinic.scheduling.locks import DoctorLockRegistry

WORKERS = 6


@pytest.fixture
def file_session_factory(tmp_path):
    file_engine = create_engine(
        f'sqlite:///{tmp_path / "concurrency.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    init_db(file_engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    finally:
        file_engine.dispose()


def test_parallel_bookings_for_one_slot_leave_a_single_appointment(file_session_factory) -> None:
    setup_session = file_session_factory()
    factory = Factory(setup_session)
    owner = factory.user()
    pet = factory.pet(owner)
    doctor = factory.doctor()
    owner_id, pet_id, doctor_id = owner.id, pet.id, doctor.id
    setup_session.close()

    locks = DoctorLockRegistry(timeout=30)
    barrier = threading.Barrier(WORKERS)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt() -> None:
        session = file_session_factory()
        try:
            user = session.get(User, owner_id)
            service = BookingService(session, clock=fixed_clock(NOW), locks=locks)
            data = BookingData(
                doctor_id=doctor_id,
                pet_id=pet_id,
                date=BOOKING_DAY,
                time=time(10, 0),
                appointment_type='checkup',
                duration=20,
            )
            barrier.wait()
            try:
                service.book_appointment(data, user)
                outcome = 'booked'
            except SlotConflictError:
                outcome = 'conflict'
            with outcomes_lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(WORKERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ['booked'] + ['conflict'] * (WORKERS - 1)

    check_session = file_session_factory()
    try:
        assert check_session.query(Appointment).filter(Appointment.doctor_id == doctor_id).count() == 1
    finally:
        check_session.close()


def test_lock_wait_gives_up_with_busy_error() -> None:
    locks = DoctorLockRegistry(timeout=0.05)

    with locks.hold([2]):
        with pytest.raises(SchedulingBusyError) as exception_info:
            with locks.hold([2, 1]):
                pass

    assert exception_info.value.status_code == 503

    # Both locks were released, including the one taken before the timeout.
    with locks.hold([1, 2]):
        pass


def test_hold_ignores_missing_doctor_ids() -> None:
    locks = DoctorLockRegistry(timeout=0.05)

    with locks.hold([None, 3, 3]):
        with locks.hold([4]):
            pass
