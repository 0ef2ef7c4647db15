from datetime import datetime, time, timedelta, timezone

import pytest
from conftest import BOOKING_DAY, NOW, at, auth_headers
from pydantic import ValidationError

from vetclinic.core.exceptions import AppointmentValidationError
from vetclinic.routes.availability_routes import RestrictedZoneRequest, parse_request_time


def test_parse_request_time_accepts_short_hours() -> None:
    assert parse_request_time('9:05') == time(9, 5)
    assert parse_request_time(' 18:40 ') == time(18, 40)


@pytest.mark.parametrize('value', ['24:00', '9', '09:60', 'noon', ''])
def test_parse_request_time_rejects_bad_values(value: str) -> None:
    with pytest.raises(AppointmentValidationError) as exception_info:
        parse_request_time(value)

    assert exception_info.value.errors == {'time': ['The time field format is invalid.']}


def test_restricted_zone_request_requires_end_after_start() -> None:
    with pytest.raises(ValidationError):
        RestrictedZoneRequest(start_datetime=at(10, 0), end_datetime=at(10, 0))


def test_restricted_zone_request_normalizes_blank_reason() -> None:
    request = RestrictedZoneRequest(start_datetime=at(10, 0), end_datetime=at(11, 0), reason='   ')

    assert request.reason is None


def test_calendar_returns_days_with_free_slots(client, factory) -> None:
    factory.doctor()
    factory.doctor(working_hours='09:00-10:00')

    response = client.get('/appointments/calendar', params={
        'start_date': BOOKING_DAY.isoformat(),
        'end_date': BOOKING_DAY.isoformat(),
    })

    assert response.status_code == 200
    body = response.json()
    assert body['message'] == 'Calendar availability retrieved successfully'
    day = body['data']['calendar'][0]
    assert day['date'] == '2030-01-08'
    assert day['day_name'] == 'Tuesday'
    assert day['available_slots'][0] == {
        'time': '09:00',
        'time_range': '09:00 - 09:20',
        'available_count': 2,
        'total_doctors': 2,
    }
    assert day['total_available_slots'] == 33
    assert body['data']['date_range'] == {'start': '2030-01-08', 'end': '2030-01-08'}


def test_calendar_without_doctors_reports_nothing_found(client) -> None:
    response = client.get('/appointments/calendar', params={
        'start_date': BOOKING_DAY.isoformat(),
        'end_date': (BOOKING_DAY + timedelta(days=2)).isoformat(),
    })

    assert response.status_code == 200
    assert response.json()['message'] == 'No available appointments found in the selected date range'
    assert response.json()['data']['calendar'] == []


@pytest.mark.parametrize(
    ('start_offset', 'end_offset', 'field'),
    [
        (-1, 0, 'start_date'),
        (2, 1, 'end_date'),
        (0, 62, 'end_date'),
    ],
)
def test_calendar_rejects_bad_ranges(client, start_offset: int, end_offset: int, field: str) -> None:
    response = client.get('/appointments/calendar', params={
        'start_date': (NOW.date() + timedelta(days=start_offset)).isoformat(),
        'end_date': (NOW.date() + timedelta(days=end_offset)).isoformat(),
    })

    assert response.status_code == 422
    assert field in response.json()['data']['errors']


@pytest.mark.parametrize('path', ['/appointments/available-doctors', '/appointments/calendar-by-doctor'])
def test_available_doctors(client, factory, path: str) -> None:
    owner = factory.user()
    pet = factory.pet(owner)
    free = factory.doctor()
    busy = factory.doctor()
    factory.appointment(busy, owner, pet, at(10, 20))

    response = client.get(path, params={'date': BOOKING_DAY.isoformat(), 'time': '10:00', 'duration': 30})

    assert response.status_code == 200
    data = response.json()['data']
    assert [doctor['id'] for doctor in data['doctors']] == [free.id]
    assert data['doctors'][0]['slot'] == {'start': '10:00', 'end': '10:30', 'date': '2030-01-08'}
    assert data['requested_slot'] == {'date': '2030-01-08', 'time': '10:00', 'duration': '30 minutes'}
    assert data['total_available'] == 1


def test_available_doctors_validates_query(client) -> None:
    bad_time = client.get('/appointments/available-doctors', params={'date': BOOKING_DAY.isoformat(), 'time': '9am'})
    bad_duration = client.get('/appointments/available-doctors', params={
        'date': BOOKING_DAY.isoformat(),
        'time': '09:00',
        'duration': 5,
    })

    assert bad_time.status_code == 422
    assert 'time' in bad_time.json()['data']['errors']
    assert bad_duration.status_code == 422
    assert 'duration' in bad_duration.json()['data']['errors']


def test_doctor_available_slots(client, factory) -> None:
    doctor = factory.doctor(working_hours='09:00-10:00')
    factory.restricted_zone(doctor, at(9, 20), at(9, 40))

    response = client.get(f'/doctors/{doctor.id}/available-slots', params={'date': BOOKING_DAY.isoformat()})

    assert response.status_code == 200
    data = response.json()['data']
    assert data['doctor']['id'] == doctor.id
    assert data['available_slots'] == [
        {'start': '09:00', 'end': '09:20'},
        {'start': '09:40', 'end': '10:00'},
    ]


def test_doctor_available_slots_for_unknown_doctor(client) -> None:
    response = client.get('/doctors/9999/available-slots', params={'date': BOOKING_DAY.isoformat()})

    assert response.status_code == 404
    assert response.json()['message'] == 'Doctor not found'


def test_restricted_zones_require_a_doctor(client, factory) -> None:
    response = client.get('/doctors/me/restricted-zones', headers=auth_headers(factory.user()))

    assert response.status_code == 403
    assert response.json()['message'] == 'Only doctors can manage restricted zones.'


def test_restricted_zone_lifecycle(client, factory) -> None:
    doctor = factory.doctor()
    headers = auth_headers(doctor.user)
    factory.restricted_zone(doctor, NOW - timedelta(days=2), NOW - timedelta(days=1))

    created = client.post('/doctors/me/restricted-zones', headers=headers, json={
        'start_datetime': at(13, 0).isoformat(),
        'end_datetime': at(14, 0).isoformat(),
        'reason': ' Surgery prep ',
    })
    overlapping = client.post('/doctors/me/restricted-zones', headers=headers, json={
        'start_datetime': at(13, 30).isoformat(),
        'end_datetime': at(14, 30).isoformat(),
    })
    listed = client.get('/doctors/me/restricted-zones', headers=headers)

    assert created.status_code == 201
    zone = created.json()['data']
    assert zone['doctor_id'] == doctor.id
    assert zone['reason'] == 'Surgery prep'
    assert overlapping.status_code == 422
    assert overlapping.json()['message'] == 'This time is already blocked.'
    assert [item['id'] for item in listed.json()['data']] == [zone['id']]

    removed = client.delete(f"/doctors/me/restricted-zones/{zone['id']}", headers=headers)
    missing = client.delete(f"/doctors/me/restricted-zones/{zone['id']}", headers=headers)

    assert removed.status_code == 200
    assert missing.status_code == 404


def test_restricted_zone_hides_slots_from_patients(client, factory) -> None:
    doctor = factory.doctor(working_hours='09:00-10:00')
    client.post('/doctors/me/restricted-zones', headers=auth_headers(doctor.user), json={
        'start_datetime': at(9, 0).isoformat(),
        'end_datetime': at(10, 0).isoformat(),
    })

    response = client.get(f'/doctors/{doctor.id}/available-slots', params={'date': BOOKING_DAY.isoformat()})

    assert response.json()['message'] == 'No available slots for this date'
    assert response.json()['data']['available_slots'] == []


def test_restricted_zone_request_converts_offsets_to_local_time() -> None:
    start = datetime(2030, 1, 8, 10, 0, tzinfo=timezone.utc)
    end = datetime(2030, 1, 8, 11, 0, tzinfo=timezone.utc)

    request = RestrictedZoneRequest(start_datetime=start, end_datetime=end)

    assert request.start_datetime.tzinfo is None
    assert request.start_datetime == start.astimezone().replace(tzinfo=None)
    assert request.end_datetime - request.start_datetime == timedelta(hours=1)


def test_restricted_zone_with_offset_is_stored(client, factory) -> None:
    doctor = factory.doctor()

    response = client.post('/doctors/me/restricted-zones', headers=auth_headers(doctor.user), json={
        'start_datetime': '2030-01-08T13:00:00+00:00',
        'end_datetime': '2030-01-08T14:00:00+00:00',
    })

    assert response.status_code == 201
    assert response.json()['data']['start_datetime'] == (
        datetime(2030, 1, 8, 13, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None).isoformat()
    )
