"""Structured duration model for recurtask."""

from pydantic import BaseModel, Field


class Duration(BaseModel):
    """Relative duration between a task's start date and its due date.

    Components are only required to be non-negative here. Upper bounds
    (years <= 99, months <= 11, ...) apply to user input and are checked by
    `validate_duration`; computed values such as `from_minutes(525_000)` may
    legitimately exceed them.
    """

    years: int = Field(0, ge=0)
    months: int = Field(0, ge=0)
    days: int = Field(0, ge=0)
    hours: int = Field(0, ge=0)
    minutes: int = Field(0, ge=0)

    model_config = {"frozen": True}

    def is_zero(self) -> bool:
        return not (self.years or self.months or self.days or self.hours or self.minutes)
