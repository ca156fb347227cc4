"""Convert RecurrencePattern to/from canonical iCalendar rule strings.

The canonical form is two RFC 5545 content lines:

    DTSTART;TZID=Europe/Paris:20240101T090000
    RRULE:FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR;COUNT=10

DTSTART carries the series start as wall time in the pattern's timezone (or
`...Z` for UTC) so BYDAY/BYMONTHDAY are evaluated on the user's calendar. UNTIL
is always written in UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone as dt_timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError as PydanticValidationError

from recurtask.errors import MalformedRuleError, ValidationError
from recurtask.models.constants import DEFAULT_TIMEZONE
from recurtask.models.recurrence import RecurrenceFrequency, RecurrencePattern


# Sunday=0 ... Saturday=6 (domain convention) <-> iCalendar weekday codes
_WD_CODES: List[str] = ["SU", "MO", "TU", "WE", "TH", "FR", "SA"]
_WD_INDEX: Dict[str, int] = {code: i for i, code in enumerate(_WD_CODES)}

_FREQ_CODES: Dict[RecurrenceFrequency, str] = {
    RecurrenceFrequency.DAILY: "DAILY",
    RecurrenceFrequency.WEEKLY: "WEEKLY",
    RecurrenceFrequency.MONTHLY: "MONTHLY",
    RecurrenceFrequency.YEARLY: "YEARLY",
}
_FREQ_FROM_CODE: Dict[str, RecurrenceFrequency] = {v: k for k, v in _FREQ_CODES.items()}

_UTC_NAMES = {"UTC", "Etc/UTC", "Z", "GMT"}
_ICAL_DATETIME = "%Y%m%dT%H%M%S"
# Optional sign/ordinal prefix (e.g. "-1FR", "2MO") is accepted and dropped.
_BYDAY_TOKEN = re.compile(r"^[+-]?\d{0,2}(SU|MO|TU|WE|TH|FR|SA)$")


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(dt_timezone.utc).replace(tzinfo=None)


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Invalid timezone: {name}") from e


def validate_pattern(pattern: RecurrencePattern, start_date: datetime) -> None:
    """Validate a pattern against its series start, failing on the first violation.

    Order: frequency/interval, frequency-specific selectors, end-condition
    exclusivity, end date after start. Timezone last.

    Raises:
        ValidationError: Describing the first violated rule
    """
    if pattern.frequency not in _FREQ_CODES:
        raise ValidationError(f"Unsupported recurrence frequency: {pattern.frequency}")
    if pattern.interval is None or int(pattern.interval) < 1:
        raise ValidationError("Interval must be at least 1")

    if pattern.frequency == RecurrenceFrequency.WEEKLY and not pattern.days_of_week:
        raise ValidationError("Weekly recurrence must specify days of week")
    if pattern.frequency == RecurrenceFrequency.MONTHLY and not pattern.day_of_month:
        raise ValidationError("Monthly recurrence must specify day of month")

    if pattern.end_date is not None and pattern.end_occurrences is not None:
        raise ValidationError("Cannot specify both end date and end occurrences")

    if pattern.end_date is not None and _as_utc_naive(pattern.end_date) <= _as_utc_naive(start_date):
        raise ValidationError("End date must be after start date")

    _zone(pattern.timezone or DEFAULT_TIMEZONE)


def _dtstart_line(start_date: datetime, tz_name: str) -> str:
    start_utc = _as_utc_naive(start_date)
    if tz_name in _UTC_NAMES:
        return f"DTSTART:{start_utc.strftime(_ICAL_DATETIME)}Z"
    local = start_utc.replace(tzinfo=dt_timezone.utc).astimezone(_zone(tz_name))
    return f"DTSTART;TZID={tz_name}:{local.strftime(_ICAL_DATETIME)}"


def pattern_to_rule(pattern: RecurrencePattern, start_date: datetime) -> str:
    """Encode a validated pattern as a canonical DTSTART + RRULE string.

    Args:
        pattern: Structured recurrence pattern
        start_date: Series start (naive datetimes are UTC)

    Returns:
        Canonical rule string

    Raises:
        ValidationError: If the pattern is invalid for this start date
    """
    validate_pattern(pattern, start_date)

    parts: List[str] = [f"FREQ={_FREQ_CODES[RecurrenceFrequency(pattern.frequency)]}"]
    parts.append(f"INTERVAL={int(pattern.interval)}")
    if pattern.frequency == RecurrenceFrequency.WEEKLY:
        parts.append("BYDAY=" + ",".join(_WD_CODES[d] for d in sorted(set(pattern.days_of_week))))
    if pattern.frequency == RecurrenceFrequency.MONTHLY:
        parts.append(f"BYMONTHDAY={int(pattern.day_of_month)}")
    if pattern.end_date is not None:
        parts.append(f"UNTIL={_as_utc_naive(pattern.end_date).strftime(_ICAL_DATETIME)}Z")
    elif pattern.end_occurrences is not None:
        parts.append(f"COUNT={int(pattern.end_occurrences)}")

    tz_name = pattern.timezone or DEFAULT_TIMEZONE
    return _dtstart_line(start_date, tz_name) + "\nRRULE:" + ";".join(parts)


def _split_rule(rule: str) -> tuple[Optional[str], str]:
    """Return (dtstart_line, rrule_body) from a rule string."""
    dtstart_line = None
    body = None
    for raw in rule.replace("\r\n", "\n").split("\n"):
        line = raw.strip()
        if not line:
            continue
        upper = line.upper()
        if upper.startswith("DTSTART"):
            dtstart_line = line
        elif upper.startswith("RRULE:"):
            body = line[len("RRULE:"):]
        elif "FREQ=" in upper and body is None:
            body = line
    if body is None:
        raise MalformedRuleError(f"No RRULE found in {rule!r}")
    return dtstart_line, body


def _parse_ical_datetime(value: str) -> datetime:
    value = value.strip()
    utc = value.endswith("Z")
    if utc:
        value = value[:-1]
    try:
        if "T" in value:
            return datetime.strptime(value, _ICAL_DATETIME)
        return datetime.strptime(value, "%Y%m%d")
    except ValueError as e:
        raise MalformedRuleError(f"Invalid iCalendar date-time: {value!r}") from e


def rule_to_pattern(rule: str) -> RecurrencePattern:
    """Decode a rule string back into a structured pattern.

    Used for migrating legacy stored rules. Lossy: rules authored outside the
    structured schema keep only what the schema can express, and unsupported
    frequencies (HOURLY, MINUTELY, ...) degrade to `custom`.

    Raises:
        MalformedRuleError: If the string is not an RRULE at all
    """
    dtstart_line, body = _split_rule(rule)

    fields: Dict[str, str] = {}
    for part in body.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise MalformedRuleError(f"Invalid RRULE part {part!r} in {rule!r}")
        key, value = part.split("=", 1)
        fields[key.strip().upper()] = value.strip()

    if "FREQ" not in fields:
        raise MalformedRuleError(f"RRULE has no FREQ: {rule!r}")

    frequency = _FREQ_FROM_CODE.get(fields["FREQ"].upper(), RecurrenceFrequency.CUSTOM)
    try:
        interval = int(fields.get("INTERVAL", "1"))
    except ValueError as e:
        raise MalformedRuleError(f"Invalid INTERVAL in {rule!r}") from e

    data: dict = {"frequency": frequency, "interval": interval}

    if frequency == RecurrenceFrequency.WEEKLY and fields.get("BYDAY"):
        days: List[int] = []
        for token in fields["BYDAY"].upper().split(","):
            m = _BYDAY_TOKEN.match(token.strip())
            if m:
                days.append(_WD_INDEX[m.group(1)])
        if days:
            data["days_of_week"] = sorted(set(days))

    if frequency == RecurrenceFrequency.MONTHLY and fields.get("BYMONTHDAY"):
        first = fields["BYMONTHDAY"].split(",")[0]
        try:
            day = int(first)
        except ValueError as e:
            raise MalformedRuleError(f"Invalid BYMONTHDAY in {rule!r}") from e
        if 1 <= day <= 31:
            data["day_of_month"] = day

    if "UNTIL" in fields:
        data["end_date"] = _parse_ical_datetime(fields["UNTIL"])
    elif "COUNT" in fields:
        try:
            data["end_occurrences"] = int(fields["COUNT"])
        except ValueError as e:
            raise MalformedRuleError(f"Invalid COUNT in {rule!r}") from e

    if dtstart_line:
        m = re.search(r"TZID=([^:;]+)", dtstart_line, re.I)
        data["timezone"] = m.group(1) if m else "UTC"

    try:
        return RecurrencePattern(**data)
    except PydanticValidationError as e:
        raise MalformedRuleError(f"Rule cannot be expressed as a pattern: {rule!r}") from e
