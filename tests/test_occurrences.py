"""Tests for occurrence calculation over canonical rules."""

import pytest
from datetime import datetime, timezone

from recurtask.errors import InvalidRangeError, MalformedRuleError
from recurtask.models.recurrence import RecurrencePattern, RecurrenceFrequency
from recurtask.recurrence.occurrences import (
    next_occurrence,
    occurrences_between,
    upcoming_occurrences,
)
from recurtask.recurrence.rrule_codec import pattern_to_rule


MONDAY = datetime(2024, 1, 1, 0, 0)


@pytest.fixture
def mwf_rule():
    """Weekly on Monday, Wednesday and Friday starting Monday 2024-01-01."""
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, interval=1, days_of_week=[1, 3, 5])
    return pattern_to_rule(pattern, MONDAY)


@pytest.fixture
def three_days_rule():
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=1, end_occurrences=3)
    return pattern_to_rule(pattern, MONDAY)


class TestNextOccurrence:
    """First occurrence after a given instant."""

    def test_weekly_next_after_start(self, mwf_rule):
        assert next_occurrence(mwf_rule, MONDAY) == datetime(2024, 1, 3)

    def test_inclusive_returns_start(self, mwf_rule):
        assert next_occurrence(mwf_rule, MONDAY, inclusive=True) == MONDAY

    def test_skips_to_next_week(self, mwf_rule):
        assert next_occurrence(mwf_rule, datetime(2024, 1, 5)) == datetime(2024, 1, 8)

    def test_same_answer_every_time(self, mwf_rule):
        after = datetime(2024, 1, 2, 13, 0)
        assert next_occurrence(mwf_rule, after) == next_occurrence(mwf_rule, after)

    def test_count_exhausted(self, three_days_rule):
        assert next_occurrence(three_days_rule, datetime(2024, 1, 2)) == datetime(2024, 1, 3)
        assert next_occurrence(three_days_rule, datetime(2024, 1, 3)) is None

    def test_until_exhausted(self):
        pattern = RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=1, end_date=datetime(2024, 1, 2))
        rule = pattern_to_rule(pattern, MONDAY)
        assert next_occurrence(rule, MONDAY) == datetime(2024, 1, 2)
        assert next_occurrence(rule, datetime(2024, 1, 2)) is None

    def test_aware_input_is_accepted(self, mwf_rule):
        after = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert next_occurrence(mwf_rule, after) == datetime(2024, 1, 3)

    def test_named_timezone_keeps_wall_time_across_dst(self):
        """09:00 in Paris is 08:00 UTC in winter and 07:00 UTC in summer."""
        pattern = RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=1, timezone="Europe/Paris")
        rule = pattern_to_rule(pattern, datetime(2024, 1, 1, 8, 0))
        assert next_occurrence(rule, datetime(2024, 1, 1, 8, 0)) == datetime(2024, 1, 2, 8, 0)
        assert next_occurrence(rule, datetime(2024, 7, 1, 0, 0)) == datetime(2024, 7, 1, 7, 0)

    def test_rule_without_dtstart(self):
        with pytest.raises(MalformedRuleError):
            next_occurrence("RRULE:FREQ=DAILY;INTERVAL=1", MONDAY)

    def test_unparseable_rule(self):
        with pytest.raises(MalformedRuleError):
            next_occurrence("DTSTART:20240101T000000Z\nRRULE:FREQ=SOMETIMES", MONDAY)


class TestOccurrencesBetween:
    """Occurrences inside a closed range."""

    def test_inclusive_bounds(self, mwf_rule):
        found = occurrences_between(mwf_rule, MONDAY, datetime(2024, 1, 8))
        assert found == [
            datetime(2024, 1, 1),
            datetime(2024, 1, 3),
            datetime(2024, 1, 5),
            datetime(2024, 1, 8),
        ]

    def test_empty_range(self, three_days_rule):
        assert occurrences_between(three_days_rule, datetime(2024, 2, 1), datetime(2024, 3, 1)) == []

    def test_end_before_start(self, mwf_rule):
        with pytest.raises(InvalidRangeError):
            occurrences_between(mwf_rule, datetime(2024, 2, 1), datetime(2024, 1, 1))

    def test_results_are_capped(self):
        pattern = RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=1)
        rule = pattern_to_rule(pattern, MONDAY)
        found = occurrences_between(rule, MONDAY, datetime(2030, 1, 1))
        assert len(found) == 500
        assert found[0] == MONDAY


class TestUpcomingOccurrences:

    def test_next_three(self, mwf_rule):
        assert upcoming_occurrences(mwf_rule, MONDAY, 3) == [
            datetime(2024, 1, 3),
            datetime(2024, 1, 5),
            datetime(2024, 1, 8),
        ]

    def test_stops_when_series_ends(self, three_days_rule):
        assert upcoming_occurrences(three_days_rule, MONDAY, 5) == [datetime(2024, 1, 2), datetime(2024, 1, 3)]
