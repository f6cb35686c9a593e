"""Date manipulation utilities"""

import calendar
from datetime import date


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamped_date(year: int, month: int, day: int) -> date:
    """Build a date, clamping ``day`` to the last day of the month (31 -> 28 in February)"""
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(from_date: date, months: int, anchor_day: int | None = None) -> date:
    """
    Step ``months`` calendar months (negative steps back).

    ``anchor_day`` keeps a schedule pinned to its original day of month, so
    Jan 31 -> Feb 28 -> Mar 31 instead of drifting to the 28th.
    """
    month_index = from_date.year * 12 + (from_date.month - 1) + months
    year, month = divmod(month_index, 12)
    return clamped_date(year, month + 1, anchor_day or from_date.day)


def most_recent_day_of_month(day: int, as_of: date) -> date:
    """Latest date on or before ``as_of`` whose day of month is ``day`` (clamped)"""
    candidate = clamped_date(as_of.year, as_of.month, day)
    if candidate > as_of:
        candidate = add_months(candidate, -1, anchor_day=day)
    return candidate


def month_start(day: date) -> date:
    """First day of the month containing ``day``"""
    return day.replace(day=1)
