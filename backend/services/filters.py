"""Filter objects for availability queries, translated to SQLAlchemy clauses."""

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import asc, desc

from backend.models.availability import AvailabilityStatus, ProviderAvailability

SORT_COLUMNS = {
    'date': (ProviderAvailability.date, ProviderAvailability.start_time),
    'start_time': (ProviderAvailability.start_time, ProviderAvailability.date),
    'price': (ProviderAvailability.base_fee, ProviderAvailability.date, ProviderAvailability.start_time),
}


@dataclass
class ProviderAvailabilityFilters:
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    appointment_type: str | None = None

    def clauses(self) -> list:
        clauses = []
        if self.start_date is not None:
            clauses.append(ProviderAvailability.date >= self.start_date)
        if self.end_date is not None:
            clauses.append(ProviderAvailability.date <= self.end_date)
        if self.status:
            clauses.append(ProviderAvailability.status == self.status)
        if self.appointment_type:
            clauses.append(ProviderAvailability.appointment_type == self.appointment_type)
        return clauses


@dataclass
class SearchCriteria:
    exact_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    specialization: str | None = None
    location: str | None = None
    appointment_type: str | None = None
    location_type: str | None = None
    insurance_accepted: bool | None = None
    max_price: float | None = None
    timezone: str | None = None
    available_only: bool = True
    page: int = 1
    limit: int = 50
    sort_by: str = 'date'
    sort_order: str = 'asc'

    def clauses(self) -> list:
        """Storage-level clauses. Specialization and location are matched after the join."""
        clauses = []

        if self.exact_date is not None:
            clauses.append(ProviderAvailability.date >= self.exact_date)
            clauses.append(ProviderAvailability.date < self.exact_date + timedelta(days=1))
        else:
            if self.start_date is not None:
                clauses.append(ProviderAvailability.date >= self.start_date)
            if self.end_date is not None:
                clauses.append(ProviderAvailability.date <= self.end_date)

        if self.appointment_type:
            clauses.append(ProviderAvailability.appointment_type == self.appointment_type)
        if self.location_type:
            clauses.append(ProviderAvailability.location_type == self.location_type)
        if self.insurance_accepted is not None:
            clauses.append(ProviderAvailability.insurance_accepted.is_(self.insurance_accepted))
        if self.max_price is not None:
            clauses.append(ProviderAvailability.base_fee <= self.max_price)
        if self.timezone:
            clauses.append(ProviderAvailability.timezone == self.timezone)
        if self.available_only:
            clauses.append(ProviderAvailability.status == AvailabilityStatus.AVAILABLE.value)
            clauses.append(
                ProviderAvailability.current_appointments < ProviderAvailability.max_appointments_per_slot
            )

        return clauses

    def ordering(self) -> list:
        columns = SORT_COLUMNS.get(self.sort_by, SORT_COLUMNS['date'])
        direction = desc if self.sort_order == 'desc' else asc
        return [direction(column) for column in columns]

    def matches_provider(self, record: ProviderAvailability) -> bool:
        """Case-insensitive substring match against the joined provider and location."""
        if self.specialization:
            specialization = (record.provider.specialization if record.provider else None) or ''
            if self.specialization.lower() not in specialization.lower():
                return False

        if self.location:
            needle = self.location.lower()
            haystacks = [record.location_address or '']
            if record.provider is not None:
                haystacks.extend([
                    record.provider.clinic_street or '',
                    record.provider.clinic_city or '',
                    record.provider.clinic_state or '',
                    record.provider.clinic_zip or '',
                ])
            if not any(needle in haystack.lower() for haystack in haystacks):
                return False

        return True
