"""Exception types raised by the recurring task engine."""

from typing import List, Optional


class RecurrenceError(Exception):
    """Base class for recurring task engine errors."""


class ValidationError(RecurrenceError, ValueError):
    """Malformed pattern or duration input (user-correctable, surfaced as a 400)."""

    def __init__(self, message: str, *, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class InvalidScopeError(RecurrenceError, ValueError):
    """Scope value is not one of this_instance / this_and_future / all_instances."""


class InvalidRangeError(RecurrenceError, ValueError):
    """End of a date range is not after its start."""


class NegativeDurationError(RecurrenceError, ValueError):
    """Subtraction would produce a negative duration."""


class MalformedRuleError(RecurrenceError):
    """A canonical rule string could not be parsed.

    Only the codec produces canonical rules, so this always points at a
    codec/calculator mismatch or corrupted stored data.
    """


class StaleVersionError(RecurrenceError):
    """A write observed an older series version than the one stored."""

    def __init__(self, message: str, *, expected: Optional[int] = None, actual: Optional[int] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class TaskNotFoundError(RecurrenceError, LookupError):
    """Task (or its series root) does not exist for this user."""
