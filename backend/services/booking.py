"""Capacity bookkeeping for availability records.

``next_status`` is the single place that derives the booking status from the
counters; the repository calls it after every increment or decrement.
"""

from backend.models.availability import AvailabilityStatus

ADMINISTRATIVE_STATUSES = frozenset({
    AvailabilityStatus.CANCELLED.value,
    AvailabilityStatus.BLOCKED.value,
    AvailabilityStatus.MAINTENANCE.value,
})


def next_status(current: str, current_appointments: int, max_appointments: int) -> str:
    """Status after a counter mutation.

    Administrative states are sticky; only explicit updates leave them.
    """
    if current in ADMINISTRATIVE_STATUSES:
        return current
    if current_appointments >= max_appointments:
        return AvailabilityStatus.BOOKED.value
    return AvailabilityStatus.AVAILABLE.value


def booking_summary(record) -> dict:
    return {
        'availability_id': record.id,
        'current_appointments': record.current_appointments,
        'max_appointments': record.max_appointments_per_slot,
        'status': record.status,
    }
