# ==============================================================================
# app/engine/periods.py
# ------------------------------------------------------------------------------
# Calendar helpers: month arithmetic, Monday-based weeks, pay windows and the
# partial-period ("month still running") normalization factor.
# ==============================================================================

import calendar
from collections import namedtuple
from datetime import date, timedelta


def month_start(day):
    return day.replace(day=1)

def add_months(day, delta):
    """First day of the month `delta` months away from `day`'s month."""
    index = day.year * 12 + (day.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)

def days_in_month(day):
    return calendar.monthrange(day.year, day.month)[1]

def month_end(day):
    return date(day.year, day.month, days_in_month(day))

def week_start(day):
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())

def parse_month(value):
    """Accepts 'YYYY-MM' or any ISO date and returns the first day of that month."""
    value = str(value).strip()
    if len(value) == 7:
        value += '-01'
    return month_start(date.fromisoformat(value))

def parse_date(value):
    return date.fromisoformat(str(value).strip()[:10])


def elapsed_units(period_start, today):
    """
    Returns (elapsed_days, total_days) for the month starting at `period_start`
    when `today` falls inside it, or None when the month is not the running one.
    Elapsed days are clamped to [1, total_days].
    """
    if (today.year, today.month) != (period_start.year, period_start.month):
        return None
    total = days_in_month(period_start)
    return min(total, max(1, today.day)), total

def partial_factor(period_start, today):
    """
    Scale that extrapolates a running month to a full one (total / elapsed).
    1.0 for closed months and on the month's last day.
    """
    units = elapsed_units(period_start, today)
    if units is None:
        return 1.0
    elapsed, total = units
    return total / elapsed


class PayWindow(namedtuple('PayWindow', ['start', 'end', 'kind'])):
    """Inclusive date range a pay breakdown is reported for (`kind` is 'week' or 'month')."""
    __slots__ = ()

    @classmethod
    def for_week(cls, day):
        start = week_start(day)
        return cls(start, start + timedelta(days=6), 'week')

    @classmethod
    def for_month(cls, day):
        return cls(month_start(day), month_end(day), 'month')

    def weeks(self):
        """(first Monday, last Monday) of the weeks overlapping the window."""
        return week_start(self.start), week_start(self.end)
