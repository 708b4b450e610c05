"""Local wall-clock <-> UTC conversion and minute-level slot arithmetic.

Availability windows are entered as ``HH:mm`` strings in the provider's
timezone and stored alongside their UTC instants. Offsets are resolved with
pytz so daylight saving time is honoured; when a zone cannot be resolved the
converter falls back to a static offset table (which ignores DST).
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Mapping, NamedTuple

import pytz

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([01][0-9]|2[0-3]):([0-5][0-9])$')
MINUTES_PER_DAY = 24 * 60

SUPPORTED_TIMEZONES = (
    'UTC',
    'America/New_York',
    'America/Chicago',
    'America/Denver',
    'America/Los_Angeles',
    'Europe/London',
    'Europe/Paris',
    'Asia/Tokyo',
    'Asia/Shanghai',
    'Asia/Kolkata',
    'Australia/Sydney',
)

# Standard-time offsets in minutes east of UTC.
STANDARD_OFFSETS = {
    'America/New_York': -300,
    'America/Chicago': -360,
    'America/Denver': -420,
    'America/Los_Angeles': -480,
    'Europe/London': 0,
    'Europe/Paris': 60,
    'Asia/Tokyo': 540,
    'Asia/Shanghai': 480,
    'Asia/Kolkata': 330,
    'Australia/Sydney': 600,
    'UTC': 0,
}


class ConversionError(ValueError):
    """Raised for malformed time strings or local times that cannot be converted."""


class TimeSlot(NamedTuple):
    start_time: str
    end_time: str


class LocalDateTime(NamedTuple):
    date: str
    time: str


class OffsetTable:
    """Static offsets used when a timezone cannot be resolved dynamically."""

    def __init__(self, offsets: Mapping[str, int] | None = None, default: int = 0) -> None:
        self._offsets = dict(STANDARD_OFFSETS if offsets is None else offsets)
        self.default = default

    def offset_for(self, timezone_name: str) -> int:
        return self._offsets.get(timezone_name, self.default)

    def extend(self, offsets: Mapping[str, int]) -> None:
        self._offsets.update(offsets)

    def __contains__(self, timezone_name: object) -> bool:
        return timezone_name in self._offsets


def is_valid_timezone(timezone_name: str | None) -> bool:
    return timezone_name in SUPPORTED_TIMEZONES


def time_to_minutes(time_str: str) -> int:
    match = TIME_PATTERN.match(time_str or '') if isinstance(time_str, str) else None
    if not match:
        raise ConversionError(f'Time must be in HH:mm format, got {time_str!r}')
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ConversionError(f'Minutes out of range for a single day: {minutes}')
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ConversionError(f'Date must be in YYYY-MM-DD format, got {value!r}') from exc


def generate_time_slots(
    start_time: str,
    end_time: str,
    slot_duration: int = 30,
    break_duration: int = 0,
) -> list[TimeSlot]:
    """Split ``[start_time, end_time)`` into ``slot_duration`` slots separated by breaks.

    A slot is only emitted when it fits entirely inside the window, so a
    trailing partial step is dropped.
    """
    if slot_duration <= 0:
        raise ConversionError('Slot duration must be positive')
    if break_duration < 0:
        raise ConversionError('Break duration cannot be negative')

    start_minutes = time_to_minutes(start_time)
    end_minutes = time_to_minutes(end_time)

    slots: list[TimeSlot] = []
    current = start_minutes
    while current + slot_duration <= end_minutes:
        slots.append(TimeSlot(minutes_to_time(current), minutes_to_time(current + slot_duration)))
        current += slot_duration + break_duration

    return slots


class TimezoneConverter:
    """Converts between provider-local wall-clock time and UTC instants."""

    def __init__(self, offset_table: OffsetTable | None = None) -> None:
        self.offset_table = offset_table or OffsetTable()

    def _resolve_zone(self, timezone_name: str):
        try:
            return pytz.timezone(timezone_name)
        except (pytz.UnknownTimeZoneError, AttributeError):
            logger.warning('Unable to resolve timezone %r, using static offset table', timezone_name)
            return None

    def get_timezone_offset(self, timezone_name: str, moment: datetime) -> int:
        """Offset in minutes east of UTC for ``timezone_name`` at the UTC instant ``moment``."""
        zone = self._resolve_zone(timezone_name)
        if zone is None:
            return self.offset_table.offset_for(timezone_name)

        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return int(moment.astimezone(zone).utcoffset().total_seconds() // 60)

    def local_to_utc(self, local_time: str, local_date: date | str, timezone_name: str) -> datetime:
        minutes = time_to_minutes(local_time)
        naive = datetime.combine(parse_date(local_date), datetime.min.time()) + timedelta(minutes=minutes)

        zone = self._resolve_zone(timezone_name)
        if zone is None:
            offset = self.offset_table.offset_for(timezone_name)
            return (naive - timedelta(minutes=offset)).replace(tzinfo=timezone.utc)

        try:
            localized = zone.localize(naive, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            # Repeated hour when clocks fall back: take the first occurrence.
            localized = zone.localize(naive, is_dst=True)
        except pytz.exceptions.NonExistentTimeError as exc:
            raise ConversionError(
                f'{local_time} does not exist on {naive.date().isoformat()} in {timezone_name} '
                'because of a daylight saving time change'
            ) from exc

        return localized.astimezone(timezone.utc)

    def utc_to_local(self, instant: datetime, timezone_name: str) -> LocalDateTime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)

        zone = self._resolve_zone(timezone_name)
        if zone is None:
            offset = self.offset_table.offset_for(timezone_name)
            local = (instant + timedelta(minutes=offset)).replace(tzinfo=None)
        else:
            local = instant.astimezone(zone)

        return LocalDateTime(local.date().isoformat(), local.strftime('%H:%M'))

    def is_dst(self, moment: datetime, timezone_name: str) -> bool:
        zone = self._resolve_zone(timezone_name)
        if zone is None:
            return False
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return bool(moment.astimezone(zone).dst())


default_converter = TimezoneConverter()


def local_to_utc(local_time: str, local_date: date | str, timezone_name: str) -> datetime:
    return default_converter.local_to_utc(local_time, local_date, timezone_name)


def utc_to_local(instant: datetime, timezone_name: str) -> LocalDateTime:
    return default_converter.utc_to_local(instant, timezone_name)
