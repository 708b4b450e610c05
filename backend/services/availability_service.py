"""Provider availability: creation, recurrence expansion, booking and queries."""

import logging
import math
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.core.timezones import TimezoneConverter, default_converter
from backend.models.availability import AvailabilityStatus, ProviderAvailability
from backend.repositories.availability_repository import AvailabilityRepository
from backend.schemas.availability import AvailabilityCreateRequest, AvailabilityUpdateRequest
from backend.services.booking import booking_summary
from backend.services.filters import ProviderAvailabilityFilters, SearchCriteria
from backend.services.recurrence import occurrence_dates

logger = logging.getLogger(__name__)

NULLABLE_UPDATE_FIELDS = frozenset({'notes'})


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def collect_validation_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field = '.'.join(str(part) for part in error['loc']) or 'general'
        message = error['msg']
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        errors.setdefault(field, []).append(message)
    return errors


def _flatten_nested(values: dict) -> dict:
    """Map ``location``/``pricing`` sub-objects onto the flat column names."""
    values = dict(values)
    location = values.pop('location', None)
    if location is not None:
        values['location_type'] = location['type']
        values['location_address'] = location.get('address')
        values['location_room_number'] = location.get('room_number')

    pricing = values.pop('pricing', None)
    if pricing is not None:
        values['base_fee'] = pricing['base_fee']
        values['insurance_accepted'] = pricing.get('insurance_accepted', False)
        values['currency'] = pricing.get('currency', config.DEFAULT_CURRENCY)

    return values


class AvailabilityService:
    def __init__(
        self,
        db: Session,
        converter: TimezoneConverter | None = None,
        clock: Callable[[], date] = utc_today,
        repository: AvailabilityRepository | None = None,
    ) -> None:
        self.converter = converter or default_converter
        self.clock = clock
        self.repository = repository or AvailabilityRepository(db, self.converter)

    # Validation

    def validate_create_payload(self, data: dict[str, Any]) -> AvailabilityCreateRequest:
        try:
            return AvailabilityCreateRequest.model_validate(data, context={'today': self.clock()})
        except PydanticValidationError as exc:
            raise ValidationError('Validation failed', collect_validation_errors(exc)) from exc

    def validate_availability_data(self, data: dict[str, Any]) -> dict:
        try:
            payload = self.validate_create_payload(data)
        except ValidationError as exc:
            return {'is_valid': False, 'errors': exc.details}
        return {'is_valid': True, 'data': payload.model_dump(mode='json')}

    # Local time projection

    def to_local(self, record: ProviderAvailability) -> dict:
        start = self.converter.utc_to_local(record.utc_start_time, record.timezone)
        end = self.converter.utc_to_local(record.utc_end_time, record.timezone)
        return {'local_start_time': start.time, 'local_end_time': end.time, 'local_date': start.date}

    def serialize(self, record: ProviderAvailability) -> dict:
        local = self.to_local(record)
        return {
            'id': record.id,
            'provider_id': record.provider_id,
            'date': record.date.isoformat(),
            'start_time': record.start_time,
            'end_time': record.end_time,
            'timezone': record.timezone,
            'utc_start_time': record.utc_start_time,
            'utc_end_time': record.utc_end_time,
            'local_start_time': local['local_start_time'],
            'local_end_time': local['local_end_time'],
            'is_recurring': record.is_recurring,
            'recurrence_pattern': record.recurrence_pattern,
            'recurrence_end_date': record.recurrence_end_date.isoformat() if record.recurrence_end_date else None,
            'recurrence_group_id': record.recurrence_group_id,
            'slot_duration': record.slot_duration,
            'break_duration': record.break_duration,
            'status': record.status,
            'max_appointments_per_slot': record.max_appointments_per_slot,
            'current_appointments': record.current_appointments,
            'appointment_type': record.appointment_type,
            'location': record.location,
            'pricing': record.pricing,
            'special_requirements': list(record.special_requirements or []),
            'notes': record.notes,
        }

    # Creation

    def create_availability(self, provider_id: str, data: dict[str, Any]) -> dict:
        payload = self.validate_create_payload(data)
        values = _flatten_nested(payload.model_dump(mode='json'))
        values['date'] = payload.date
        values['recurrence_end_date'] = payload.recurrence_end_date
        values['provider_id'] = provider_id

        if self.repository.get_provider(provider_id) is None:
            raise NotFoundError('Provider not found')

        if payload.is_recurring:
            return self._create_recurring(values)

        values['recurrence_pattern'] = None
        values['recurrence_end_date'] = None
        record = self.repository.create(values)
        logger.info('Availability %s created for provider %s on %s', record.id, provider_id, record.date)

        return {
            'success': True,
            'message': 'Availability created successfully',
            'data': self.serialize(record),
        }

    def expand_recurrence(self, values: dict) -> list[dict]:
        """Concrete occurrences of a recurring template, one per visited date.

        Conflict filtering happens when the batch is stored, under the
        provider lock. A series longer than ``MAX_RECURRENCE_OCCURRENCES`` is
        rejected instead of being cut short.
        """
        cap = config.MAX_RECURRENCE_OCCURRENCES
        dates = occurrence_dates(
            values['date'],
            values['recurrence_end_date'],
            values['recurrence_pattern'],
            limit=cap + 1,
        )
        if len(dates) > cap:
            raise ValidationError(
                'Validation failed',
                {'recurrence_end_date': [f'Recurrence cannot produce more than {cap} occurrences']},
            )

        group_id = str(uuid.uuid4())
        occurrences: list[dict] = []
        for occurrence_date in dates:
            occurrence = dict(values)
            occurrence.update({
                'date': occurrence_date,
                'is_recurring': False,
                'recurrence_group_id': group_id,
            })
            occurrences.append(occurrence)

        return occurrences

    def _create_recurring(self, values: dict) -> dict:
        occurrences = self.expand_recurrence(values)
        created = self.repository.bulk_insert(occurrences)
        total_appointments = sum(record.max_appointments_per_slot for record in created)

        logger.info(
            'Recurring availability for provider %s: %s of %s occurrences created',
            values['provider_id'], len(created), len(occurrences),
        )

        return {
            'success': True,
            'message': 'Availability slots created successfully',
            'data': {
                'availability_id': created[0].id if created else None,
                'recurrence_group_id': created[0].recurrence_group_id if created else None,
                'slots_created': len(created),
                'slots_skipped': len(occurrences) - len(created),
                'date_range': {
                    'start': values['date'].isoformat(),
                    'end': values['recurrence_end_date'].isoformat(),
                },
                'total_appointments_available': total_appointments,
                'slots': [self.serialize(record) for record in created],
            },
        }

    # Reads

    def get_record(self, availability_id: str) -> ProviderAvailability:
        record = self.repository.find_by_id(availability_id)
        if record is None:
            raise NotFoundError('Availability not found')
        return record

    def get_availability_by_id(self, availability_id: str) -> dict:
        return {'success': True, 'data': self.serialize(self.get_record(availability_id))}

    def get_availability_by_provider(
        self,
        provider_id: str,
        page: int = 1,
        limit: int = config.DEFAULT_PAGE_SIZE,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
        appointment_type: str | None = None,
    ) -> dict:
        records = self.repository.find_by_provider(
            provider_id,
            ProviderAvailabilityFilters(
                start_date=start_date,
                end_date=end_date,
                status=status,
                appointment_type=appointment_type,
            ),
        )

        grouped = self.group_by_date(records)
        offset = (page - 1) * limit

        return {
            'success': True,
            'data': {
                'provider_id': provider_id,
                'availability_summary': self.calculate_summary(records),
                'availability': grouped[offset:offset + limit],
                'pagination': self._pagination(page, limit, len(grouped)),
            },
        }

    def get_availability_statistics(
        self,
        provider_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        return {
            'success': True,
            'data': self.repository.get_statistics(provider_id, start_date, end_date),
        }

    def group_by_date(self, records: list[ProviderAvailability]) -> list[dict]:
        grouped: dict[str, dict] = {}
        for record in records:
            date_key = record.date.isoformat()
            bucket = grouped.setdefault(date_key, {'date': date_key, 'slots': []})
            local = self.to_local(record)
            bucket['slots'].append({
                'slot_id': record.id,
                'start_time': record.start_time,
                'end_time': record.end_time,
                'local_start_time': local['local_start_time'],
                'local_end_time': local['local_end_time'],
                'timezone': record.timezone,
                'status': record.status,
                'current_appointments': record.current_appointments,
                'max_appointments_per_slot': record.max_appointments_per_slot,
                'appointment_type': record.appointment_type,
                'location': record.location,
                'pricing': record.pricing,
            })
        return list(grouped.values())

    @staticmethod
    def calculate_summary(records: list[ProviderAvailability]) -> dict:
        summary = {'total_slots': 0, 'available_slots': 0, 'booked_slots': 0, 'cancelled_slots': 0}
        for record in records:
            summary['total_slots'] += 1
            if record.is_available():
                summary['available_slots'] += 1
            elif record.status == AvailabilityStatus.BOOKED.value:
                summary['booked_slots'] += 1
            elif record.status == AvailabilityStatus.CANCELLED.value:
                summary['cancelled_slots'] += 1
        return summary

    @staticmethod
    def _pagination(page: int, limit: int, total: int) -> dict:
        return {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def search_availability(self, criteria: SearchCriteria) -> dict:
        records = self.repository.search(criteria)
        results = self.format_search_results(records)
        offset = (criteria.page - 1) * criteria.limit
        requested_date = criteria.exact_date or criteria.start_date

        return {
            'success': True,
            'data': {
                'search_criteria': {
                    'date': requested_date.isoformat() if requested_date else None,
                    'end_date': criteria.end_date.isoformat() if criteria.end_date else None,
                    'specialization': criteria.specialization,
                    'location': criteria.location,
                },
                'total_results': len(results),
                'total_slots': len(records),
                'results': results[offset:offset + criteria.limit],
                'pagination': self._pagination(criteria.page, criteria.limit, len(results)),
            },
        }

    def format_search_results(self, records: list[ProviderAvailability]) -> list[dict]:
        providers: dict[str, dict] = {}
        for record in records:
            entry = providers.get(record.provider_id)
            if entry is None:
                provider = record.provider
                entry = {
                    'provider': {
                        'id': record.provider_id,
                        'name': provider.full_name if provider else '',
                        'specialization': (provider.specialization if provider else None) or 'General',
                        'years_of_experience': (provider.years_of_experience if provider else None) or 0,
                        'rating': (provider.rating if provider else None) or 0,
                        'clinic_address': record.location_address or 'Address not specified',
                    },
                    'available_slots': [],
                }
                providers[record.provider_id] = entry

            local = self.to_local(record)
            entry['available_slots'].append({
                'slot_id': record.id,
                'date': record.date.isoformat(),
                'start_time': local['local_start_time'],
                'end_time': local['local_end_time'],
                'local_start_time': local['local_start_time'],
                'local_end_time': local['local_end_time'],
                'timezone': record.timezone,
                'appointment_type': record.appointment_type,
                'location': record.location,
                'pricing': record.pricing,
                'special_requirements': list(record.special_requirements or []),
            })

        return list(providers.values())

    # Mutation

    def update_availability(self, availability_id: str, data: dict[str, Any]) -> dict:
        try:
            payload = AvailabilityUpdateRequest.model_validate(data, context={'today': self.clock()})
        except PydanticValidationError as exc:
            raise ValidationError('Validation failed', collect_validation_errors(exc)) from exc

        submitted = payload.model_dump(mode='json', exclude_unset=True)
        patch = _flatten_nested({
            field: value for field, value in submitted.items()
            if value is not None or field in NULLABLE_UPDATE_FIELDS
        })
        if 'date' in patch:
            patch['date'] = payload.date
        if not patch:
            raise ValidationError('Validation failed', {'general': ['No fields to update']})

        record = self.repository.update_by_id(availability_id, patch)
        logger.info('Availability %s updated: %s', availability_id, sorted(patch))

        return {
            'success': True,
            'message': 'Availability updated successfully',
            'data': self.serialize(record),
        }

    def delete_availability(self, availability_id: str, delete_recurring: bool = False) -> dict:
        deleted = self.repository.delete_by_id(availability_id, delete_recurring)
        logger.info('Deleted %s availability record(s) starting from %s', deleted, availability_id)

        return {
            'success': True,
            'message': 'Recurring availability deleted successfully'
            if delete_recurring else 'Availability deleted successfully',
            'data': {'deleted_count': deleted},
        }

    # Booking

    def check_slot_availability(self, availability_id: str) -> dict:
        record = self.get_record(availability_id)
        return {
            'success': True,
            'data': {
                'availability_id': record.id,
                'is_available': record.is_available(),
                'can_be_booked': record.can_be_booked(self.clock()),
                'current_appointments': record.current_appointments,
                'max_appointments': record.max_appointments_per_slot,
                'status': record.status,
            },
        }

    def book_slot(self, availability_id: str) -> dict:
        record = self.repository.try_increment(availability_id, self.clock())
        if record is None:
            existing = self.get_record(availability_id)
            if existing.current_appointments >= existing.max_appointments_per_slot:
                raise ConflictError('Slot is already fully booked')
            raise ConflictError('Slot is not available for booking')

        logger.info(
            'Slot %s booked (%s/%s)',
            availability_id, record.current_appointments, record.max_appointments_per_slot,
        )
        return {
            'success': True,
            'message': 'Slot booked successfully',
            'data': booking_summary(record),
        }

    def cancel_slot(self, availability_id: str) -> dict:
        record = self.repository.try_decrement(availability_id)
        if record is None:
            self.get_record(availability_id)
            raise ConflictError('No appointments to cancel')

        logger.info(
            'Appointment on slot %s cancelled (%s/%s)',
            availability_id, record.current_appointments, record.max_appointments_per_slot,
        )
        return {
            'success': True,
            'message': 'Appointment cancelled successfully',
            'data': booking_summary(record),
        }
