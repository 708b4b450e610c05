"""Persistence for provider availability records.

All writes go through ``_guard`` so that storage failures are rolled back,
logged, and surfaced as a sanitized ``DatabaseError``.
"""

import logging
from contextlib import contextmanager
from datetime import date

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import ConflictError, DatabaseError, NotFoundError, SchedulingError, ValidationError
from backend.core.timezones import ConversionError, TimezoneConverter, default_converter
from backend.models.availability import AvailabilityStatus, ProviderAvailability
from backend.models.provider import Provider
from backend.services.booking import next_status
from backend.services.conflicts import has_conflict, ranges_overlap
from backend.services.filters import ProviderAvailabilityFilters, SearchCriteria

logger = logging.getLogger(__name__)

TIME_FIELDS = ('date', 'start_time', 'end_time', 'timezone')


class AvailabilityRepository:
    def __init__(self, db: Session, converter: TimezoneConverter | None = None) -> None:
        self.db = db
        self.converter = converter or default_converter

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SchedulingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to %s', action)
            raise DatabaseError(f'Failed to {action}: {exc}') from exc

    def populate_utc_times(self, record: ProviderAvailability) -> None:
        try:
            record.utc_start_time = self.converter.local_to_utc(record.start_time, record.date, record.timezone)
            record.utc_end_time = self.converter.local_to_utc(record.end_time, record.date, record.timezone)
        except ConversionError as exc:
            raise ValidationError(
                'Timezone conversion failed',
                {'timezone': [str(exc)]},
            ) from exc

    def _lock_provider(self, provider_id: str) -> Provider:
        # Serializes check-then-insert per provider on databases that support row locks.
        provider = (
            self.db.query(Provider)
            .filter(Provider.id == provider_id)
            .with_for_update()
            .first()
        )
        if provider is None:
            raise NotFoundError('Provider not found')
        return provider

    def get_provider(self, provider_id: str) -> Provider | None:
        with self._guard('find provider'):
            return self.db.query(Provider).filter(Provider.id == provider_id).first()

    def has_conflict(
        self,
        provider_id: str,
        slot_date: date,
        start_time: str,
        end_time: str,
        exclude_id: str | None = None,
    ) -> bool:
        with self._guard('check for conflicts'):
            return has_conflict(self.db, provider_id, slot_date, start_time, end_time, exclude_id)

    def create(self, data: dict) -> ProviderAvailability:
        with self._guard('create availability'):
            self._lock_provider(data['provider_id'])

            if has_conflict(self.db, data['provider_id'], data['date'], data['start_time'], data['end_time']):
                raise ConflictError('Time slot conflicts with existing availability')

            record = ProviderAvailability(**data)
            self.populate_utc_times(record)
            self.db.add(record)

            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise ConflictError('Time slot conflicts with existing availability') from exc

            self.db.refresh(record)
            return record

    def _admissible(self, row: dict, accepted: list[dict]) -> bool:
        """True when ``row`` overlaps neither a stored record nor an earlier row of the batch."""
        for other in accepted:
            if (
                other['provider_id'] == row['provider_id']
                and other['date'] == row['date']
                and ranges_overlap(row['start_time'], row['end_time'], other['start_time'], other['end_time'])
            ):
                return False
        return not has_conflict(self.db, row['provider_id'], row['date'], row['start_time'], row['end_time'])

    def bulk_insert(self, rows: list[dict]) -> list[ProviderAvailability]:
        """Insert occurrences in one transaction, skipping any that conflict.

        Conflicts are checked under the provider lock, in the same transaction
        as the insert. If the batch still trips the uniqueness constraint,
        retry row by row so every occurrence that can be stored is kept.
        """
        if not rows:
            return []

        with self._guard('insert availability batch'):
            for provider_id in sorted({row['provider_id'] for row in rows}):
                self._lock_provider(provider_id)

            accepted: list[dict] = []
            for row in rows:
                if self._admissible(row, accepted):
                    accepted.append(row)
                else:
                    logger.info(
                        'Skipping occurrence on %s %s-%s for provider %s: conflicts with existing availability',
                        row['date'], row['start_time'], row['end_time'], row['provider_id'],
                    )

            records = [ProviderAvailability(**row) for row in accepted]
            for record in records:
                self.populate_utc_times(record)

            self.db.add_all(records)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning('Availability batch hit a uniqueness conflict, retrying row by row')
                return self._insert_individually(accepted)

            for record in records:
                self.db.refresh(record)
            return records

    def _insert_individually(self, rows: list[dict]) -> list[ProviderAvailability]:
        created: list[ProviderAvailability] = []
        for row in rows:
            self._lock_provider(row['provider_id'])
            if not self._admissible(row, []):
                self.db.rollback()
                logger.info(
                    'Skipped occurrence on %s %s-%s for provider %s: conflicts with existing availability',
                    row['date'], row['start_time'], row['end_time'], row['provider_id'],
                )
                continue

            record = ProviderAvailability(**row)
            self.populate_utc_times(record)
            self.db.add(record)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    'Skipped occurrence on %s %s-%s for provider %s: already exists',
                    row['date'], row['start_time'], row['end_time'], row['provider_id'],
                )
                continue
            self.db.refresh(record)
            created.append(record)
        return created

    def find_by_id(self, availability_id: str) -> ProviderAvailability | None:
        with self._guard('find availability by id'):
            return (
                self.db.query(ProviderAvailability)
                .options(joinedload(ProviderAvailability.provider))
                .filter(ProviderAvailability.id == availability_id)
                .first()
            )

    def find_by_provider(
        self,
        provider_id: str,
        filters: ProviderAvailabilityFilters | None = None,
    ) -> list[ProviderAvailability]:
        filters = filters or ProviderAvailabilityFilters()
        with self._guard('find availability by provider'):
            return (
                self.db.query(ProviderAvailability)
                .filter(ProviderAvailability.provider_id == provider_id, *filters.clauses())
                .order_by(ProviderAvailability.date.asc(), ProviderAvailability.start_time.asc())
                .all()
            )

    def update_by_id(self, availability_id: str, patch: dict) -> ProviderAvailability:
        with self._guard('update availability'):
            record = self.db.query(ProviderAvailability).filter(ProviderAvailability.id == availability_id).first()
            if record is None:
                raise NotFoundError('Availability not found')

            touches_time = any(field in patch for field in TIME_FIELDS)
            if touches_time:
                self._lock_provider(record.provider_id)

            slot_date = patch.get('date', record.date)
            start_time = patch.get('start_time', record.start_time)
            end_time = patch.get('end_time', record.end_time)

            if end_time <= start_time:
                raise ValidationError(
                    'Validation failed',
                    {'end_time': ['End time must be after start time']},
                )

            if touches_time and has_conflict(
                self.db, record.provider_id, slot_date, start_time, end_time, exclude_id=record.id
            ):
                raise ConflictError('Time slot conflicts with existing availability')

            max_appointments = patch.get('max_appointments_per_slot', record.max_appointments_per_slot)
            if max_appointments < record.current_appointments:
                raise ConflictError('Capacity cannot be reduced below the current number of appointments')

            for field, value in patch.items():
                setattr(record, field, value)

            if touches_time:
                self.populate_utc_times(record)

            record.status = next_status(record.status, record.current_appointments, record.max_appointments_per_slot)

            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise ConflictError('Time slot conflicts with existing availability') from exc

            self.db.refresh(record)
            return record

    def delete_by_id(self, availability_id: str, delete_recurring: bool = False) -> int:
        """Delete a record, or every record of its recurrence series. Returns the number deleted."""
        with self._guard('delete availability'):
            record = self.db.query(ProviderAvailability).filter(ProviderAvailability.id == availability_id).first()
            if record is None:
                raise NotFoundError('Availability not found')

            if record.current_appointments > 0:
                raise ConflictError('Cannot delete availability with existing appointments')

            if delete_recurring and record.recurrence_group_id:
                deleted = (
                    self.db.query(ProviderAvailability)
                    .filter(
                        ProviderAvailability.provider_id == record.provider_id,
                        ProviderAvailability.recurrence_group_id == record.recurrence_group_id,
                        ProviderAvailability.current_appointments == 0,
                    )
                    .delete(synchronize_session=False)
                )
            else:
                self.db.delete(record)
                deleted = 1

            self.db.commit()
            return deleted

    def search(self, criteria: SearchCriteria) -> list[ProviderAvailability]:
        with self._guard('search availability'):
            records = (
                self.db.query(ProviderAvailability)
                .join(Provider, ProviderAvailability.provider_id == Provider.id)
                .options(joinedload(ProviderAvailability.provider))
                .filter(Provider.is_active.is_(True), *criteria.clauses())
                .order_by(*criteria.ordering())
                .all()
            )

        return [record for record in records if criteria.matches_provider(record)]

    def try_increment(self, availability_id: str, today: date) -> ProviderAvailability | None:
        """Atomically take one appointment if the slot is bookable. ``None`` when it is not."""
        with self._guard('book slot'):
            result = self.db.execute(
                update(ProviderAvailability)
                .where(
                    ProviderAvailability.id == availability_id,
                    ProviderAvailability.status == AvailabilityStatus.AVAILABLE.value,
                    ProviderAvailability.current_appointments < ProviderAvailability.max_appointments_per_slot,
                    ProviderAvailability.date >= today,
                )
                .values(current_appointments=ProviderAvailability.current_appointments + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                return None

            return self._rederive_status(availability_id)

    def try_decrement(self, availability_id: str) -> ProviderAvailability | None:
        """Atomically release one appointment. ``None`` when there is nothing to release."""
        with self._guard('cancel slot'):
            result = self.db.execute(
                update(ProviderAvailability)
                .where(
                    ProviderAvailability.id == availability_id,
                    ProviderAvailability.current_appointments > 0,
                )
                .values(current_appointments=ProviderAvailability.current_appointments - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                return None

            return self._rederive_status(availability_id)

    def _rederive_status(self, availability_id: str) -> ProviderAvailability:
        # The conditional UPDATE holds the row lock until commit.
        record = self.db.get(ProviderAvailability, availability_id, populate_existing=True)
        record.status = next_status(record.status, record.current_appointments, record.max_appointments_per_slot)
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_statistics(
        self,
        provider_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        filters = ProviderAvailabilityFilters(start_date=start_date, end_date=end_date)
        available = (
            (ProviderAvailability.status == AvailabilityStatus.AVAILABLE.value)
            & (ProviderAvailability.current_appointments < ProviderAvailability.max_appointments_per_slot)
        )
        booked = ProviderAvailability.status == AvailabilityStatus.BOOKED.value

        with self._guard('get availability statistics'):
            row = (
                self.db.query(
                    func.count(ProviderAvailability.id),
                    func.coalesce(func.sum(case((available, 1), else_=0)), 0),
                    func.coalesce(func.sum(case((booked, 1), else_=0)), 0),
                    func.coalesce(func.sum(ProviderAvailability.current_appointments), 0),
                    func.coalesce(func.sum(ProviderAvailability.base_fee), 0),
                )
                .filter(ProviderAvailability.provider_id == provider_id, *filters.clauses())
                .one()
            )

        return {
            'total_slots': int(row[0]),
            'available_slots': int(row[1]),
            'booked_slots': int(row[2]),
            'total_appointments': int(row[3]),
            'total_revenue': float(row[4]),
        }
