"""Occurrence calculation over canonical rule strings.

Only rules produced by `rrule_codec.pattern_to_rule` are expected here, so a
parse failure is a data/programming error rather than bad user input.
Datetimes cross this boundary as naive UTC; aware inputs are converted.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional, Union

from dateutil.rrule import rrule, rruleset, rrulestr

from recurtask.errors import InvalidRangeError, MalformedRuleError
from recurtask.models.constants import MAX_OCCURRENCES_PER_QUERY

logger = logging.getLogger(__name__)

_DTSTART_RE = re.compile(r"^DTSTART(?P<params>[^:]*):(?P<value>\S+)$", re.I | re.M)


@lru_cache(maxsize=256)
def _parse(rule: str) -> tuple[Union[rrule, rruleset], bool]:
    """Parse a rule once; returns (rule object, is_floating)."""
    # Without DTSTART dateutil anchors on "now", which is never what a stored rule means.
    if not rule or _DTSTART_RE.search(rule) is None:
        logger.error(f"Canonical rule has no DTSTART: {rule!r}")
        raise MalformedRuleError(f"Rule has no DTSTART: {rule!r}")
    try:
        parsed = rrulestr(rule)
        first = next(iter(parsed), None)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.error(f"Failed to parse canonical rule {rule!r}: {type(e).__name__}: {str(e)}")
        raise MalformedRuleError(f"Cannot parse rule {rule!r}: {e}") from e
    floating = first is None or first.tzinfo is None
    return parsed, floating


def _to_rule_time(dt: datetime, floating: bool) -> datetime:
    if floating:
        return dt if dt.tzinfo is None else dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def next_occurrence(rule: str, after: datetime, *, inclusive: bool = False) -> Optional[datetime]:
    """First occurrence strictly after `after` (at or after when inclusive).

    Returns:
        Naive UTC datetime, or None when the series is exhausted (UNTIL/COUNT reached)

    Raises:
        MalformedRuleError: If the rule cannot be parsed
    """
    parsed, floating = _parse(rule)
    occ = parsed.after(_to_rule_time(after, floating), inc=inclusive)
    return _to_utc_naive(occ) if occ is not None else None


def occurrences_between(rule: str, start: datetime, end: datetime) -> List[datetime]:
    """All occurrences in [start, end], ordered; empty if none fall in range.

    Raises:
        InvalidRangeError: If end is before start
        MalformedRuleError: If the rule cannot be parsed
    """
    if end < start:
        raise InvalidRangeError(f"End {end.isoformat()} is before start {start.isoformat()}")
    parsed, floating = _parse(rule)
    found = parsed.between(_to_rule_time(start, floating), _to_rule_time(end, floating), inc=True)
    if len(found) > MAX_OCCURRENCES_PER_QUERY:
        logger.warning(
            f"Occurrence query truncated to {MAX_OCCURRENCES_PER_QUERY} of {len(found)} results"
        )
        found = found[:MAX_OCCURRENCES_PER_QUERY]
    return [_to_utc_naive(occ) for occ in found]


def upcoming_occurrences(rule: str, after: datetime, count: int) -> List[datetime]:
    """Next `count` occurrences strictly after `after` (fewer if the series ends)."""
    out: List[datetime] = []
    cursor = after
    while len(out) < count:
        nxt = next_occurrence(rule, cursor)
        if nxt is None:
            break
        out.append(nxt)
        cursor = nxt
    return out
