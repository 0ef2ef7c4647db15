import os
from datetime import date, datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-that-is-long-enough-for-hs256')

from vetclinic.auth.jwt_handler import create_access_token  # noqa: E402
from vetclinic.database import enable_sqlite_foreign_keys, get_db, init_db  # noqa: E402
from vetclinic.main import app  # noqa: E402
from vetclinic.models.appointment import Appointment  # noqa: E402
from vetclinic.models.doctor import Doctor  # noqa: E402
from vetclinic.models.pet import Pet  # noqa: E402
from vetclinic.models.restricted_zone import RestrictedZone  # noqa: E402
from vetclinic.models.user import User  # noqa: E402
from vetclinic.routes.providers import get_clock  # noqa: E402

# A Monday early in the morning; BOOKING_DAY is the following Tuesday.
NOW = datetime(2030, 1, 7, 8, 0)
BOOKING_DAY = date(2030, 1, 8)


def fixed_clock(moment: datetime):
    return lambda: moment


class Factory:
    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: str = 'owner', name: str | None = None) -> User:
        number = self._next()
        user = User(
            name=name or f'User {number}',
            email=f'user{number}@example.com',
            hashed_password='',
            role=role,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def pet(self, owner: User, name: str = 'Rex') -> Pet:
        pet = Pet(name=name, species='dog', breed='beagle', owner_id=owner.id)
        self.db.add(pet)
        self.db.commit()
        return pet

    def doctor(self, working_hours: str | None = '09:00-19:00', weekly_schedule: dict | None = None) -> Doctor:
        user = self.user(role='doctor')
        doctor = Doctor(
            user_id=user.id,
            specialization='General Veterinarian',
            working_hours=working_hours,
            weekly_schedule=weekly_schedule,
        )
        self.db.add(doctor)
        self.db.commit()
        return doctor

    def appointment(
        self,
        doctor: Doctor,
        owner: User,
        pet: Pet,
        start: datetime,
        minutes: int = 20,
        status: str = 'pending',
    ) -> Appointment:
        appointment = Appointment(
            doctor_id=doctor.id,
            user_id=owner.id,
            pet_id=pet.id,
            start_datetime=start,
            end_datetime=start + timedelta(minutes=minutes),
            appointment_type='checkup',
            duration=minutes,
            status=status,
        )
        self.db.add(appointment)
        self.db.commit()
        return appointment

    def restricted_zone(self, doctor: Doctor, start: datetime, end: datetime, reason: str = 'Meeting') -> RestrictedZone:
        zone = RestrictedZone(doctor_id=doctor.id, start_datetime=start, end_datetime=end, reason=reason)
        self.db.add(zone)
        self.db.commit()
        return zone


@pytest.fixture
def engine():
    test_engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    init_db(test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


def at(hour: int, minute: int = 0, day: date = BOOKING_DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


def auth_headers(user: User) -> dict[str, str]:
    return {'Authorization': f'Bearer {create_access_token(user.email, role=user.role)}'}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock(NOW)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
