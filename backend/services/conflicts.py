from datetime import date

from sqlalchemy.orm import Session

from backend.core.timezones import time_to_minutes
from backend.models.availability import ProviderAvailability


def ranges_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open ``[start, end)`` ranges overlap iff neither ends before the other starts."""
    return (
        time_to_minutes(start_a) < time_to_minutes(end_b)
        and time_to_minutes(start_b) < time_to_minutes(end_a)
    )


def find_conflicts(
    db: Session,
    provider_id: str,
    slot_date: date,
    start_time: str,
    end_time: str,
    exclude_id: str | None = None,
) -> list[ProviderAvailability]:
    # Same predicate as ranges_overlap, evaluated in SQL. HH:mm strings are zero
    # padded, so string order matches minute order.
    query = db.query(ProviderAvailability).filter(
        ProviderAvailability.provider_id == provider_id,
        ProviderAvailability.date == slot_date,
        ProviderAvailability.start_time < end_time,
        ProviderAvailability.end_time > start_time,
    )

    if exclude_id is not None:
        query = query.filter(ProviderAvailability.id != exclude_id)

    return query.all()


def has_conflict(
    db: Session,
    provider_id: str,
    slot_date: date,
    start_time: str,
    end_time: str,
    exclude_id: str | None = None,
) -> bool:
    return bool(find_conflicts(db, provider_id, slot_date, start_time, end_time, exclude_id))
