"""Duration arithmetic for recurring and duration-based tasks.

Durations are calendar-relative when added to a date (`add_to_date`) but
approximate when measured or compared: a year counts as 365 days and a month as
30 days in `to_minutes`, `from_minutes` and `calculate_duration`. Stored
durations were produced with these exact factors, so the approximation is kept
even though it drifts from true calendar spans over long ranges.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import List, Optional

from recurtask.errors import InvalidRangeError, NegativeDurationError, ValidationError
from recurtask.models.constants import (
    MAX_DURATION_DAYS,
    MAX_DURATION_HOURS,
    MAX_DURATION_MINUTES,
    MAX_DURATION_MONTHS,
    MAX_DURATION_YEARS,
    MINUTES_PER_DAY,
    MINUTES_PER_HOUR,
    MINUTES_PER_MONTH,
    MINUTES_PER_YEAR,
)
from recurtask.models.duration import Duration


_FIELDS = ("years", "months", "days", "hours", "minutes")

_BOUNDS = {
    "years": MAX_DURATION_YEARS,
    "months": MAX_DURATION_MONTHS,
    "days": MAX_DURATION_DAYS,
    "hours": MAX_DURATION_HOURS,
    "minutes": MAX_DURATION_MINUTES,
}


def _rollover(dt: datetime, year: int, month: int) -> datetime:
    """Move dt to (year, month), letting an out-of-range day spill into the next month.

    Mirrors plain calendar-field assignment: Jan 31 -> "Feb 31" -> Mar 3 (Mar 2 in
    a leap year), Feb 29 -> "Feb 29" of a common year -> Mar 1.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    if dt.day <= last_day:
        return dt.replace(year=year, month=month)
    overflow = dt.day - last_day
    return dt.replace(year=year, month=month, day=last_day) + timedelta(days=overflow)


def add_to_date(date: datetime, duration: Optional[Duration]) -> datetime:
    """Apply years, months, days, hours, then minutes to a date.

    Args:
        date: Base datetime
        duration: Duration to add (None or zero returns the date unchanged)

    Returns:
        New datetime
    """
    if duration is None:
        return date

    result = date
    if duration.years:
        result = _rollover(result, result.year + duration.years, result.month)
    if duration.months:
        result = _rollover(result, result.year, result.month + duration.months)
    if duration.days:
        result = result + timedelta(days=duration.days)
    if duration.hours:
        result = result + timedelta(hours=duration.hours)
    if duration.minutes:
        result = result + timedelta(minutes=duration.minutes)
    return result


def to_minutes(duration: Optional[Duration]) -> int:
    if duration is None:
        return 0
    return (
        duration.years * MINUTES_PER_YEAR
        + duration.months * MINUTES_PER_MONTH
        + duration.days * MINUTES_PER_DAY
        + duration.hours * MINUTES_PER_HOUR
        + duration.minutes
    )


def from_minutes(total_minutes: int) -> Duration:
    if not total_minutes or total_minutes <= 0:
        return Duration()

    remaining = int(total_minutes)
    years, remaining = divmod(remaining, MINUTES_PER_YEAR)
    months, remaining = divmod(remaining, MINUTES_PER_MONTH)
    days, remaining = divmod(remaining, MINUTES_PER_DAY)
    hours, minutes = divmod(remaining, MINUTES_PER_HOUR)
    return Duration(years=years, months=months, days=days, hours=hours, minutes=minutes)


def calculate_duration(start: datetime, end: datetime) -> Duration:
    """Measure the (approximate) duration between two datetimes.

    Elapsed time is floored to whole minutes, then decomposed with 365-day
    years and 30-day months.

    Raises:
        InvalidRangeError: If end is not after start
    """
    if end <= start:
        raise InvalidRangeError(f"End {end.isoformat()} must be after start {start.isoformat()}")
    total_minutes = int((end - start).total_seconds() // 60)
    return from_minutes(total_minutes)


def add_durations(first: Optional[Duration], second: Optional[Duration]) -> Duration:
    """Component-wise sum with carry (60 min, 24 h, 30 d, 12 mo)."""
    years = (first.years if first else 0) + (second.years if second else 0)
    months = (first.months if first else 0) + (second.months if second else 0)
    days = (first.days if first else 0) + (second.days if second else 0)
    hours = (first.hours if first else 0) + (second.hours if second else 0)
    minutes = (first.minutes if first else 0) + (second.minutes if second else 0)

    carry, minutes = divmod(minutes, 60)
    hours += carry
    carry, hours = divmod(hours, 24)
    days += carry
    carry, days = divmod(days, 30)
    months += carry
    carry, months = divmod(months, 12)
    years += carry
    return Duration(years=years, months=months, days=days, hours=hours, minutes=minutes)


def subtract_durations(minuend: Optional[Duration], subtrahend: Optional[Duration]) -> Duration:
    """Subtract via total minutes.

    Raises:
        NegativeDurationError: If the minuend is the smaller duration
    """
    left = to_minutes(minuend)
    right = to_minutes(subtrahend)
    if left < right:
        raise NegativeDurationError("Cannot subtract: first duration is smaller than second")
    return from_minutes(left - right)


def compare_durations(first: Optional[Duration], second: Optional[Duration]) -> int:
    """Return -1, 0 or 1 comparing approximate lengths."""
    left = to_minutes(first)
    right = to_minutes(second)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def is_zero(duration: Optional[Duration]) -> bool:
    return duration is None or duration.is_zero()


def validate_duration(duration: Optional[Duration], *, required: bool = True) -> Duration:
    """Check user-supplied duration bounds.

    Args:
        duration: Duration to check
        required: Whether a positive duration is mandatory (recurring tasks,
            or tasks that supply a duration instead of a due date)

    Returns:
        The duration, unchanged

    Raises:
        ValidationError: Listing every violated bound
    """
    if duration is None:
        if required:
            raise ValidationError("Duration is required")
        return duration

    errors: List[str] = []
    for field in _FIELDS:
        value = getattr(duration, field)
        if value > _BOUNDS[field]:
            errors.append(f"{field.capitalize()} cannot exceed {_BOUNDS[field]}")
    if required and duration.is_zero():
        errors.append("Duration must have at least one positive value")
    if errors:
        raise ValidationError("; ".join(errors), errors=errors)
    return duration


def format_duration(
    duration: Optional[Duration],
    *,
    compact: bool = False,
    include_zero: bool = False,
    max_units: int = 3,
) -> str:
    """Human-readable duration, e.g. "1 day, 2 hours, 30 minutes" or "1d 2h 30m"."""
    if duration is None:
        return "0 minutes"

    parts: List[str] = []
    for field in _FIELDS:
        value = getattr(duration, field)
        if value > 0 or (include_zero and not parts):
            if compact:
                parts.append(f"{value}{field[0]}")
            else:
                label = field[:-1] if value == 1 else field
                parts.append(f"{value} {label}")
            if len(parts) >= max_units:
                break

    if not parts:
        return "0 minutes" if include_zero else ""
    return " ".join(parts) if compact else ", ".join(parts)
