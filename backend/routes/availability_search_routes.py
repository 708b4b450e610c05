from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query

from backend.core import config
from backend.core.errors import ValidationError
from backend.models.availability import AppointmentType, LocationType
from backend.routes.availability_routes import get_availability_service
from backend.services.availability_service import AvailabilityService
from backend.services.filters import SearchCriteria

router = APIRouter(tags=['availability-search'])


@router.get('/search')
def search_availability(
    search_date: date | None = Query(default=None, alias='date'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    specialization: str | None = Query(default=None, min_length=1, max_length=100),
    location: str | None = Query(default=None, min_length=1, max_length=200),
    appointment_type: AppointmentType | None = Query(default=None),
    location_type: LocationType | None = Query(default=None),
    insurance_accepted: bool | None = Query(default=None),
    max_price: float | None = Query(default=None, ge=0),
    timezone: str | None = Query(default=None, min_length=1),
    available_only: bool = Query(default=True),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    sort_by: Literal['date', 'start_time', 'price'] = Query(default='date'),
    sort_order: Literal['asc', 'desc'] = Query(default='asc'),
    service: AvailabilityService = Depends(get_availability_service),
):
    if start_date and end_date and end_date < start_date:
        raise ValidationError('Validation failed', {'end_date': ['End date must be on or after start date']})

    criteria = SearchCriteria(
        exact_date=search_date,
        start_date=start_date,
        end_date=end_date,
        specialization=specialization.strip() if specialization else None,
        location=location.strip() if location else None,
        appointment_type=appointment_type.value if appointment_type else None,
        location_type=location_type.value if location_type else None,
        insurance_accepted=insurance_accepted,
        max_price=max_price,
        timezone=timezone,
        available_only=available_only,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return service.search_availability(criteria)


@router.get('/{availability_id}')
def get_availability(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_by_id(availability_id)


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
