from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_provider
from backend.core import config
from backend.core.errors import AuthorizationError
from backend.database import get_db
from backend.models.availability import AppointmentType, AvailabilityStatus
from backend.models.provider import Provider
from backend.services.availability_service import AvailabilityService

router = APIRouter(tags=['provider-availability'])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def ensure_owner(service: AvailabilityService, availability_id: str, provider: Provider) -> None:
    record = service.get_record(availability_id)
    if record.provider_id != provider.id:
        raise AuthorizationError('You can only modify your own availability.')


@router.post('/', status_code=status.HTTP_201_CREATED)
def create_availability(
    data: dict[str, Any] = Body(...),
    provider: Provider = Depends(get_current_provider),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.create_availability(provider.id, data)


@router.post('/validate')
def validate_availability_data(
    data: dict[str, Any] = Body(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    result = service.validate_availability_data(data)
    if not result['is_valid']:
        return JSONResponse(
            status_code=422,
            content={
                'success': False,
                'message': 'Validation failed',
                'errors': result['errors'],
            },
        )
    return {'success': True, 'message': 'Availability data is valid', 'data': result['data']}


@router.get('/me')
def get_my_availability(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    availability_status: AvailabilityStatus | None = Query(default=None, alias='status'),
    appointment_type: AppointmentType | None = Query(default=None),
    provider: Provider = Depends(get_current_provider),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_by_provider(
        provider.id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        status=availability_status.value if availability_status else None,
        appointment_type=appointment_type.value if appointment_type else None,
    )


@router.get('/me/statistics')
def get_my_availability_statistics(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    provider: Provider = Depends(get_current_provider),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_statistics(provider.id, start_date, end_date)


@router.get('/provider/{provider_id}')
def get_provider_availability(
    provider_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    availability_status: AvailabilityStatus | None = Query(default=None, alias='status'),
    appointment_type: AppointmentType | None = Query(default=None),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_by_provider(
        provider_id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        status=availability_status.value if availability_status else None,
        appointment_type=appointment_type.value if appointment_type else None,
    )


@router.get('/{provider_id}/statistics')
def get_provider_availability_statistics(
    provider_id: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_statistics(provider_id, start_date, end_date)


@router.get('/{availability_id}')
def get_availability(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_by_id(availability_id)


@router.put('/{availability_id}')
def update_availability(
    availability_id: str,
    data: dict[str, Any] = Body(...),
    provider: Provider = Depends(get_current_provider),
    service: AvailabilityService = Depends(get_availability_service),
):
    ensure_owner(service, availability_id, provider)
    return service.update_availability(availability_id, data)


@router.delete('/{availability_id}')
def delete_availability(
    availability_id: str,
    delete_recurring: bool = Query(default=False),
    provider: Provider = Depends(get_current_provider),
    service: AvailabilityService = Depends(get_availability_service),
):
    ensure_owner(service, availability_id, provider)
    return service.delete_availability(availability_id, delete_recurring)


@router.get('/{availability_id}/check')
def check_slot_availability(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.check_slot_availability(availability_id)


@router.post('/{availability_id}/book')
def book_slot(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.book_slot(availability_id)


@router.post('/{availability_id}/cancel')
def cancel_slot(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.cancel_slot(availability_id)
