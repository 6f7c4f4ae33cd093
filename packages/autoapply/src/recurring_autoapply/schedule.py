"""Month-interval date arithmetic for recurring schedules."""

import calendar
from datetime import date, datetime

MIN_INTERVAL_MONTHS = 1
MAX_INTERVAL_MONTHS = 24

_INTERVAL_LABELS = {
    1: "Monthly",
    2: "Every 2 months",
    3: "Quarterly",
    4: "Every 4 months",
    6: "Semi-annually",
    12: "Annually",
}


def validate_interval(interval_months: int) -> tuple[bool, str | None]:
    """Check an interval, returning ``(is_valid, message)``."""
    if isinstance(interval_months, bool) or not isinstance(interval_months, int):
        return False, "Interval months must be a whole number"
    if interval_months < MIN_INTERVAL_MONTHS:
        return False, f"Interval months must be at least {MIN_INTERVAL_MONTHS}"
    if interval_months > MAX_INTERVAL_MONTHS:
        return False, f"Interval months cannot exceed {MAX_INTERVAL_MONTHS}"
    return True, None


def _add_months(current: date, months: int, day: int) -> date:
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return current.replace(year=year, month=month, day=min(day, last_day))


def next_occurrence(current: date, interval_months: int) -> date:
    """Return the date ``interval_months`` after ``current``.

    The day of month is clamped to the target month, so Jan 31 plus one
    month is the last day of February. A datetime keeps its time of day.
    """
    is_valid, message = validate_interval(interval_months)
    if not is_valid:
        raise ValueError(message)
    return _add_months(current, interval_months, current.day)


def future_occurrences(start: date, interval_months: int, count: int = 5) -> list[date]:
    """Preview the next ``count`` occurrences after ``start``.

    Every occurrence is anchored to the start's day of month, so a short
    month does not pull later occurrences earlier.
    """
    is_valid, message = validate_interval(interval_months)
    if not is_valid:
        raise ValueError(message)
    return [
        _add_months(start, interval_months * step, start.day)
        for step in range(1, count + 1)
    ]


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def is_due(next_date: date, as_of: date) -> bool:
    """True when ``next_date`` falls on or before ``as_of`` (day granularity)."""
    return _as_date(next_date) <= _as_date(as_of)


def interval_display_text(interval_months: int) -> str:
    return _INTERVAL_LABELS.get(interval_months, f"Every {interval_months} months")


def describe_next_occurrence(next_date: date, today: date) -> str:
    """Human-readable distance between ``today`` and ``next_date``."""
    days_until = (_as_date(next_date) - _as_date(today)).days

    if days_until < 0:
        days_past = -days_until
        return "Due yesterday" if days_past == 1 else f"Due {days_past} days ago"
    if days_until == 0:
        return "Due today"
    if days_until == 1:
        return "Due tomorrow"
    if days_until <= 6:
        return f"Due in {days_until} days"
    if days_until <= 30:
        weeks = days_until // 7
        return "Due in 1 week" if weeks == 1 else f"Due in {weeks} weeks"
    months = days_until // 30
    return "Due in 1 month" if months == 1 else f"Due in {months} months"
