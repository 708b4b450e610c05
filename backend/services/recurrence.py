"""Recurrence rules used to expand an availability template into occurrences.

Every occurrence reuses the template's single time window; the window is
never subdivided into ``slot_duration`` sub-slots during expansion.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from backend.models.availability import RecurrencePattern


@dataclass(frozen=True)
class Daily:
    def advance(self, cursor: date) -> date:
        return cursor + timedelta(days=1)


@dataclass(frozen=True)
class Weekly:
    def advance(self, cursor: date) -> date:
        return cursor + timedelta(days=7)


@dataclass(frozen=True)
class Monthly:
    """Same day-of-month each month, clamped to the month's last day.

    ``anchor_day`` is the template's original day so that a clamped month
    (e.g. Feb 28 for an anchor of 31) does not drag later months earlier.
    """

    anchor_day: int

    def advance(self, cursor: date) -> date:
        next_month = cursor + relativedelta(months=1)
        last_day = calendar.monthrange(next_month.year, next_month.month)[1]
        return next_month.replace(day=min(self.anchor_day, last_day))


RecurrenceRule = Daily | Weekly | Monthly


def rule_for(pattern: str | RecurrencePattern, start_date: date) -> RecurrenceRule:
    pattern = RecurrencePattern(pattern)
    if pattern is RecurrencePattern.DAILY:
        return Daily()
    if pattern is RecurrencePattern.WEEKLY:
        return Weekly()
    return Monthly(anchor_day=start_date.day)


def occurrence_dates(
    start_date: date,
    end_date: date,
    pattern: str | RecurrencePattern,
    limit: int | None = None,
) -> list[date]:
    """Dates visited from ``start_date`` until the cursor passes ``end_date`` (inclusive)."""
    rule = rule_for(pattern, start_date)
    dates: list[date] = []
    cursor = start_date

    while cursor <= end_date:
        if limit is not None and len(dates) >= limit:
            break
        dates.append(cursor)
        cursor = rule.advance(cursor)

    return dates
