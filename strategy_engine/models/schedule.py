"""
Recurrence expansion for strategy-generated events.

This module turns an abstract schedule description (one-time, monthly,
quarterly, annually or a custom recurrence) into concrete, ascending dates
and converts those dates into month offsets relative to a reference date.
"""

import calendar
from datetime import date, timedelta
from typing import Iterator, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

DEFAULT_HORIZON_YEARS = 30

ScheduleFrequency = Literal["one_time", "monthly", "quarterly", "annually", "custom"]
RecurrenceUnit = Literal["days", "weeks", "months", "years"]

_FREQUENCY_MONTHS = {"monthly": 1, "quarterly": 3, "annually": 12}


class Recurrence(BaseModel):
    """Custom recurrence rule: every `interval` `unit`s until `until`."""

    interval: int = Field(..., ge=1, description="Number of units between dates")
    unit: RecurrenceUnit = Field(..., description="Unit of the interval")
    until: Optional[date] = Field(
        default=None, description="Last possible date (inclusive)"
    )


class CustomSchedule(BaseModel):
    """Custom schedule: either an explicit date set or a recurrence rule."""

    dates: List[date] = Field(default_factory=list, description="Explicit dates")
    recurrence: Optional[Recurrence] = Field(
        default=None, description="Recurrence rule used when no dates are given"
    )

    @model_validator(mode="after")
    def validate_dates_or_recurrence(self):
        if not self.dates and self.recurrence is None:
            raise ValueError("Custom schedule needs explicit dates or a recurrence")
        return self


class ScheduleConfig(BaseModel):
    """Schedule metadata attached to a strategy event template."""

    frequency: ScheduleFrequency = Field(..., description="How often the event repeats")
    start_date: date = Field(..., description="First occurrence")
    end_date: Optional[date] = Field(
        default=None, description="Last possible occurrence (inclusive)"
    )
    custom_schedule: Optional[CustomSchedule] = Field(
        default=None, description="Required when frequency is 'custom'"
    )

    @model_validator(mode="after")
    def validate_schedule(self):
        if self.frequency == "custom" and self.custom_schedule is None:
            raise ValueError("custom_schedule is required for custom frequency")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


def add_months(anchor: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the month length.

    Args:
        anchor: Date to shift
        months: Number of months (may be negative)

    Returns:
        The shifted date, e.g. Jan 31 + 1 month -> Feb 28 (or 29)
    """
    month_index = anchor.year * 12 + (anchor.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_offset(from_date: date, to_date: date) -> int:
    """Whole-month distance between two dates, ignoring the day of month.

    Negative when `to_date` precedes `from_date`.
    """
    return (to_date.year - from_date.year) * 12 + (to_date.month - from_date.month)


def default_end_date(start_date: date, horizon_years: int = DEFAULT_HORIZON_YEARS) -> date:
    """End of the default horizon: December 31st, `horizon_years` after start."""
    return date(start_date.year + horizon_years, 12, 31)


def _step(anchor: date, index: int, interval: int, unit: str) -> date:
    if unit == "days":
        return anchor + timedelta(days=index * interval)
    if unit == "weeks":
        return anchor + timedelta(weeks=index * interval)
    if unit == "months":
        return add_months(anchor, index * interval)
    if unit == "years":
        return add_months(anchor, index * interval * 12)
    raise ValueError(f"Unsupported recurrence unit: {unit}")


def _recurring_dates(start: date, end: date, interval: int, unit: str) -> Iterator[date]:
    # Each date is derived from the anchor so month-end clamping never drifts
    index = 0
    current = start
    while current <= end:
        yield current
        index += 1
        current = _step(start, index, interval, unit)


class ScheduleExpansion:
    """
    Restartable, lazily produced sequence of scheduled dates.

    Every call to ``iter()`` starts again from the first date, and dates are
    always produced in ascending order.

    Example:
        ```python
        config = ScheduleConfig(
            frequency="quarterly",
            start_date=date(2025, 1, 1),
            end_date=date(2026, 1, 1),
        )
        list(ScheduleExpansion(config))  # 5 dates, Jan 2025 .. Jan 2026
        ```
    """

    def __init__(self, config: ScheduleConfig, horizon_years: int = DEFAULT_HORIZON_YEARS):
        self.config = config
        self.horizon_years = horizon_years

    @property
    def end_date(self) -> date:
        """Effective end date for recurring frequencies."""
        if self.config.end_date is not None:
            return self.config.end_date
        return default_end_date(self.config.start_date, self.horizon_years)

    def __iter__(self) -> Iterator[date]:
        config = self.config

        if config.frequency == "one_time":
            return iter([config.start_date])

        if config.frequency in _FREQUENCY_MONTHS:
            return _recurring_dates(
                config.start_date, self.end_date, _FREQUENCY_MONTHS[config.frequency], "months"
            )

        custom = config.custom_schedule
        if custom is not None and custom.dates:
            return iter(sorted(custom.dates))

        recurrence = custom.recurrence if custom is not None else None
        if recurrence is None:
            raise ValueError("custom_schedule is required for custom frequency")
        until = recurrence.until or self.end_date
        return _recurring_dates(config.start_date, until, recurrence.interval, recurrence.unit)


def expand_schedule(
    config: ScheduleConfig, horizon_years: int = DEFAULT_HORIZON_YEARS
) -> List[date]:
    """Expand a schedule into a list of ascending dates."""
    return list(ScheduleExpansion(config, horizon_years))
