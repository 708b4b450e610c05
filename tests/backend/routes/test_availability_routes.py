import logging
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.auth.jwt_handler import create_access_token
from backend.core.errors import AuthorizationError, ValidationError
from backend.database import get_db
from backend.main import app
from backend.routes.availability_routes import ensure_owner, get_availability_service
from backend.routes.availability_search_routes import search_availability
from backend.services.availability_service import AvailabilityService

PROVIDER_URL = '/api/v1/provider/availability'
PUBLIC_URL = '/api/v1/availability'


@pytest.fixture
def client(db_session, service):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_availability_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(provider) -> dict:
    return {'Authorization': f'Bearer {create_access_token(provider.id)}'}


def test_create_availability_returns_created_record(client, provider, build_payload) -> None:
    response = client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=auth_headers(provider))

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['data']['provider_id'] == provider.id
    assert body['data']['local_start_time'] == '09:00'


def test_create_availability_requires_token(client, build_payload) -> None:
    response = client.post(f'{PROVIDER_URL}/', json=build_payload())

    assert response.status_code == 401
    assert response.json() == {
        'success': False,
        'message': 'Access token is required',
        'error_code': 'AUTHENTICATION_FAILED',
    }


def test_create_availability_rejects_garbage_token(client, build_payload) -> None:
    response = client.post(f'{PROVIDER_URL}/', json=build_payload(), headers={'Authorization': 'Bearer nope'})

    assert response.status_code == 401


def test_create_availability_maps_errors_to_status_codes(client, provider, build_payload) -> None:
    headers = auth_headers(provider)
    client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=headers)

    conflict = client.post(
        f'{PROVIDER_URL}/', json=build_payload(start_time='10:00', end_time='18:00'), headers=headers
    )
    invalid = client.post(f'{PROVIDER_URL}/', json=build_payload(start_time='25:00'), headers=headers)

    assert conflict.status_code == 409
    assert conflict.json()['error_code'] == 'CONFLICT'
    assert invalid.status_code == 400
    assert invalid.json()['details']['start_time'] == ['Start time must be in HH:mm format']


def test_validate_endpoint_returns_422_with_field_errors(client, build_payload) -> None:
    response = client.post(f'{PROVIDER_URL}/validate', json=build_payload(timezone='Mars/Base'))

    assert response.status_code == 422
    assert response.json()['errors'] == {'timezone': ['Invalid or unsupported timezone']}

    valid = client.post(f'{PROVIDER_URL}/validate', json=build_payload())
    assert valid.status_code == 200
    assert valid.json()['data']['timezone'] == 'America/New_York'


def test_my_availability_and_statistics(client, provider, build_payload) -> None:
    headers = auth_headers(provider)
    client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=headers)

    mine = client.get(f'{PROVIDER_URL}/me', headers=headers)
    stats = client.get(f'{PROVIDER_URL}/me/statistics', headers=headers)
    public = client.get(f'{PROVIDER_URL}/provider/{provider.id}', params={'status': 'available'})

    assert mine.status_code == 200
    assert mine.json()['data']['availability_summary']['total_slots'] == 1
    assert stats.json()['data']['total_revenue'] == 150.0
    assert public.json()['data']['availability'][0]['date'] == '2024-12-15'


def test_update_and_delete_are_limited_to_the_owner(client, provider, make_provider, build_payload) -> None:
    slot_id = client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=auth_headers(provider)).json()['data']['id']
    intruder = make_provider(first_name='Eve')

    forbidden = client.put(f'{PROVIDER_URL}/{slot_id}', json={'notes': 'mine now'}, headers=auth_headers(intruder))
    updated = client.put(f'{PROVIDER_URL}/{slot_id}', json={'notes': 'Updated'}, headers=auth_headers(provider))
    deleted = client.delete(f'{PROVIDER_URL}/{slot_id}', headers=auth_headers(provider))

    assert forbidden.status_code == 403
    assert updated.json()['data']['notes'] == 'Updated'
    assert deleted.json()['data'] == {'deleted_count': 1}
    assert client.get(f'{PUBLIC_URL}/{slot_id}').status_code == 404


def test_public_booking_flow(client, provider, build_payload) -> None:
    slot_id = client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=auth_headers(provider)).json()['data']['id']

    check = client.get(f'{PUBLIC_URL}/{slot_id}/check')
    first = client.post(f'{PUBLIC_URL}/{slot_id}/book')
    second = client.post(f'{PUBLIC_URL}/{slot_id}/book')
    cancel = client.post(f'{PUBLIC_URL}/{slot_id}/cancel')

    assert check.json()['data']['can_be_booked'] is True
    assert first.json()['data']['status'] == 'booked'
    assert second.status_code == 409
    assert second.json()['message'] == 'Slot is already fully booked'
    assert cancel.json()['data']['status'] == 'available'


def test_search_endpoint_filters_by_query_parameters(client, provider, build_payload) -> None:
    client.post(f'{PROVIDER_URL}/', json=build_payload(), headers=auth_headers(provider))

    found = client.get(f'{PUBLIC_URL}/search', params={'date': '2024-12-15', 'specialization': 'cardio'})
    missing = client.get(f'{PUBLIC_URL}/search', params={'specialization': 'neurology'})
    bad_sort = client.get(f'{PUBLIC_URL}/search', params={'sort_by': 'rating'})

    assert found.status_code == 200
    assert found.json()['data']['total_results'] == 1
    assert found.json()['data']['results'][0]['available_slots'][0]['start_time'] == '09:00'
    assert missing.json()['data']['total_results'] == 0
    assert bad_sort.status_code == 422


def test_search_rejects_inverted_date_range(service) -> None:
    with pytest.raises(ValidationError) as exception_info:
        search_availability(
            search_date=None,
            start_date=date(2024, 12, 20),
            end_date=date(2024, 12, 10),
            specialization=None,
            location=None,
            appointment_type=None,
            location_type=None,
            insurance_accepted=None,
            max_price=None,
            timezone=None,
            available_only=True,
            page=1,
            limit=10,
            sort_by='date',
            sort_order='asc',
            service=service,
        )

    assert exception_info.value.details == {'end_date': ['End date must be on or after start date']}


def test_ensure_owner_rejects_other_providers(service, provider, make_provider, build_payload) -> None:
    slot_id = service.create_availability(provider.id, build_payload())['data']['id']
    other = make_provider(first_name='Other')

    ensure_owner(service, slot_id, provider)
    with pytest.raises(AuthorizationError):
        ensure_owner(service, slot_id, other)


def test_storage_failure_returns_500_and_logs_once(caplog) -> None:
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    db = sessionmaker(bind=engine)()
    app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(db)
    caplog.set_level(logging.ERROR)
    try:
        response = TestClient(app).get(f'{PUBLIC_URL}/anything')
    finally:
        app.dependency_overrides.clear()
        db.close()
        engine.dispose()

    assert response.status_code == 500
    assert response.json()['message'] == 'A database error occurred'
    assert 'no such table' not in response.text
    assert len([record for record in caplog.records if record.levelno >= logging.ERROR]) == 1
