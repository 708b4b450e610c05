from datetime import date, datetime, timezone

import pytest

from backend.core.timezones import (
    SUPPORTED_TIMEZONES,
    ConversionError,
    LocalDateTime,
    OffsetTable,
    TimeSlot,
    TimezoneConverter,
    generate_time_slots,
    is_valid_timezone,
    local_to_utc,
    minutes_to_time,
    time_to_minutes,
    utc_to_local,
)


def test_local_to_utc_applies_standard_time_offset() -> None:
    result = local_to_utc('09:00', '2024-12-15', 'America/New_York')

    assert result == datetime(2024, 12, 15, 14, 0, tzinfo=timezone.utc)


def test_local_to_utc_applies_daylight_saving_offset() -> None:
    result = local_to_utc('09:00', date(2025, 7, 1), 'America/New_York')

    assert result == datetime(2025, 7, 1, 13, 0, tzinfo=timezone.utc)


def test_local_to_utc_crosses_date_boundary() -> None:
    result = local_to_utc('08:00', '2024-12-15', 'Asia/Tokyo')

    assert result == datetime(2024, 12, 14, 23, 0, tzinfo=timezone.utc)


def test_local_to_utc_rejects_time_skipped_by_dst() -> None:
    with pytest.raises(ConversionError):
        local_to_utc('02:30', '2025-03-09', 'America/New_York')


def test_local_to_utc_uses_first_occurrence_of_repeated_hour() -> None:
    result = local_to_utc('01:30', '2025-11-02', 'America/New_York')

    assert result == datetime(2025, 11, 2, 5, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize('bad_time', ['9:00', '24:00', '12:60', 'noon', '', '09:00:00'])
def test_local_to_utc_rejects_malformed_time(bad_time: str) -> None:
    with pytest.raises(ConversionError):
        local_to_utc(bad_time, '2024-12-15', 'UTC')


def test_local_to_utc_rejects_malformed_date() -> None:
    with pytest.raises(ConversionError):
        local_to_utc('09:00', '15/12/2024', 'UTC')


def test_utc_to_local_treats_naive_values_as_utc() -> None:
    result = utc_to_local(datetime(2024, 12, 15, 14, 0), 'America/New_York')

    assert result == LocalDateTime('2024-12-15', '09:00')


@pytest.mark.parametrize('tz', SUPPORTED_TIMEZONES)
@pytest.mark.parametrize(
    ('local_date', 'local_time'),
    [('2024-12-15', '00:00'), ('2024-12-15', '09:30'), ('2024-12-15', '23:59'), ('2025-07-01', '12:15')],
)
def test_round_trip_returns_original_local_time(tz: str, local_date: str, local_time: str) -> None:
    instant = local_to_utc(local_time, local_date, tz)

    assert utc_to_local(instant, tz) == (local_date, local_time)


def test_unresolvable_timezone_falls_back_to_offset_table() -> None:
    converter = TimezoneConverter(OffsetTable({'Mars/Olympus_Mons': 120}))

    instant = converter.local_to_utc('09:00', '2024-12-15', 'Mars/Olympus_Mons')

    assert instant == datetime(2024, 12, 15, 7, 0, tzinfo=timezone.utc)
    assert converter.utc_to_local(instant, 'Mars/Olympus_Mons') == ('2024-12-15', '09:00')


def test_unknown_timezone_defaults_to_zero_offset() -> None:
    converter = TimezoneConverter()

    assert converter.get_timezone_offset('Nowhere/Special', datetime(2024, 12, 15)) == 0
    assert converter.local_to_utc('09:00', '2024-12-15', 'Nowhere/Special') == datetime(
        2024, 12, 15, 9, 0, tzinfo=timezone.utc
    )


def test_offset_table_can_be_extended() -> None:
    table = OffsetTable()
    table.extend({'Pacific/Honolulu': -600})

    assert 'Pacific/Honolulu' in table
    assert table.offset_for('Pacific/Honolulu') == -600
    assert table.offset_for('Unknown/Zone') == 0


def test_get_timezone_offset_and_dst_follow_the_calendar() -> None:
    converter = TimezoneConverter()

    assert converter.get_timezone_offset('America/New_York', datetime(2024, 12, 15, 12, 0)) == -300
    assert converter.get_timezone_offset('America/New_York', datetime(2025, 7, 1, 12, 0)) == -240
    assert converter.is_dst(datetime(2025, 7, 1, 12, 0), 'America/New_York') is True
    assert converter.is_dst(datetime(2024, 12, 15, 12, 0), 'America/New_York') is False


def test_is_valid_timezone_uses_supported_list() -> None:
    assert is_valid_timezone('America/New_York')
    assert is_valid_timezone('UTC')
    assert not is_valid_timezone('Europe/Berlin')
    assert not is_valid_timezone('Not/AZone')
    assert not is_valid_timezone(None)


def test_minutes_conversions() -> None:
    assert time_to_minutes('00:00') == 0
    assert time_to_minutes('13:45') == 825
    assert minutes_to_time(825) == '13:45'
    assert minutes_to_time(5) == '00:05'

    with pytest.raises(ConversionError):
        minutes_to_time(24 * 60)


def test_generate_time_slots_without_breaks() -> None:
    assert generate_time_slots('09:00', '10:00', 30, 0) == [
        TimeSlot('09:00', '09:30'),
        TimeSlot('09:30', '10:00'),
    ]


def test_generate_time_slots_with_breaks_drops_partial_final_step() -> None:
    slots = generate_time_slots('09:00', '17:00', 30, 15)

    assert len(slots) == 11
    assert slots[0] == TimeSlot('09:00', '09:30')
    assert slots[1] == TimeSlot('09:45', '10:15')
    assert slots[-1] == TimeSlot('16:30', '17:00')


@pytest.mark.parametrize(
    ('start', 'end', 'slot', 'brk'),
    [('09:00', '17:00', 30, 0), ('08:00', '12:10', 25, 5), ('13:00', '13:59', 15, 10), ('00:00', '23:59', 60, 0)],
)
def test_generate_time_slots_properties(start: str, end: str, slot: int, brk: int) -> None:
    slots = generate_time_slots(start, end, slot, brk)
    window = time_to_minutes(end) - time_to_minutes(start)

    assert len(slots) == (window + brk) // (slot + brk)
    for current, following in zip(slots, slots[1:]):
        assert time_to_minutes(following.start_time) - time_to_minutes(current.end_time) == brk
    for item in slots:
        assert time_to_minutes(item.end_time) - time_to_minutes(item.start_time) == slot
        assert time_to_minutes(item.end_time) <= time_to_minutes(end)


def test_generate_time_slots_returns_empty_when_window_too_short() -> None:
    assert generate_time_slots('09:00', '09:20', 30, 0) == []


def test_generate_time_slots_rejects_non_positive_duration() -> None:
    with pytest.raises(ConversionError):
        generate_time_slots('09:00', '10:00', 0, 0)
