"""
Working-day calendar (``hr_engines.working_days``).

Working days are calendar days that are neither a tenant rest day nor a
public holiday.  Pro-ration fractions are exact ``Fraction`` values so that
the sum over a fully-present month is exactly one.
"""

from __future__ import annotations

import calendar
from collections.abc import Collection, Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta
from fractions import Fraction

from hr_kernel.domain.attendance import DayClass


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive day range."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class WorkCalendar:
    """Rest weekdays (Monday=0) plus the tenant's holiday dates."""

    rest_days: frozenset[int]
    holidays: frozenset[date] = field(default_factory=frozenset)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() not in self.rest_days and day not in self.holidays

    def classify(self, day: date, is_off: bool = False) -> DayClass:
        """Calendar class that selects the OT multiplier for ``day``."""
        if day in self.holidays:
            return DayClass.PUBLIC_HOLIDAY
        if is_off or day.weekday() in self.rest_days:
            return DayClass.WEEKEND
        return DayClass.NORMAL

    def working_days_between(self, start: date, end: date) -> int:
        if end < start:
            return 0
        return sum(1 for d in iter_days(start, end) if self.is_working_day(d))

    def working_days_in_month(self, year: int, month: int) -> int:
        return self.working_days_between(*month_bounds(year, month))


def employed_window(
    year: int,
    month: int,
    hire_date: date,
    last_day: date | None = None,
) -> tuple[date, date] | None:
    """Portion of the month the employee is employed, or None."""
    first, last = month_bounds(year, month)
    start = max(first, hire_date)
    end = min(last, last_day) if last_day is not None else last
    if end < start:
        return None
    return start, end


def proration_fraction(
    cal: WorkCalendar,
    year: int,
    month: int,
    hire_date: date,
    last_day: date | None = None,
) -> Fraction:
    """``working_days_worked / working_days_in_month`` for the month.

    Returns ``Fraction(1)`` when employed the whole month, including months
    that contain no working day at all.
    """
    window = employed_window(year, month, hire_date, last_day)
    if window is None:
        return Fraction(0)
    first, last = month_bounds(year, month)
    if window == (first, last):
        return Fraction(1)
    total = cal.working_days_in_month(year, month)
    if total == 0:
        return Fraction(0)
    return Fraction(cal.working_days_between(*window), total)


def daily_proration_fractions(
    cal: WorkCalendar, year: int, month: int,
) -> dict[date, Fraction]:
    """Per-day share of a month's basic pay; working days only."""
    total = cal.working_days_in_month(year, month)
    if total == 0:
        return {}
    first, last = month_bounds(year, month)
    return {d: Fraction(1, total) for d in iter_days(first, last) if cal.is_working_day(d)}


def holidays_in(days: Collection[date], year: int, month: int) -> frozenset[date]:
    return frozenset(d for d in days if d.year == year and d.month == month)
