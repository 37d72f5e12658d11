# calstep/core/triggers/units.py
"""
Calendar arithmetic per interval unit.

Each unit maps to a UnitStrategy holding its fixed length in seconds (the
exact length for second/minute/hour, a nominal estimate for day/week, none
for month/year) and how to add a signed number of units to an instant.
"""

from __future__ import annotations
import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from calstep.core.types.instructions import IntervalUnit


def add_months(value: datetime, months: int) -> datetime:
    """
    Shift value by a number of calendar months.

    Days that do not exist in the target month are clamped to its last
    day, so Jan 31 + 1 month is Feb 28 (or Feb 29 in leap years).
    """
    base = (value.year * 12) + (value.month - 1) + months
    year, month = base // 12, (base % 12) + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    """Shift value by whole years; Feb 29 lands on Feb 28 in common years."""
    return add_months(value, years * 12)


def _fixed(seconds: int) -> Callable[[datetime, int], datetime]:
    def add(value: datetime, count: int) -> datetime:
        return value + timedelta(seconds=seconds * count)

    return add


@dataclass(frozen=True)
class UnitStrategy:
    """How one interval unit measures and moves through time."""

    unit: IntervalUnit
    seconds: Optional[int]
    add: Callable[[datetime, int], datetime]
    # True when `seconds` only estimates a unit of varying calendar length
    estimated: bool = False

    @property
    def supports_bulk_jump(self) -> bool:
        return self.seconds is not None and self.estimated


UNIT_STRATEGIES: dict[IntervalUnit, UnitStrategy] = {
    IntervalUnit.SECOND: UnitStrategy(IntervalUnit.SECOND, 1, _fixed(1)),
    IntervalUnit.MINUTE: UnitStrategy(IntervalUnit.MINUTE, 60, _fixed(60)),
    IntervalUnit.HOUR: UnitStrategy(IntervalUnit.HOUR, 3600, _fixed(3600)),
    IntervalUnit.DAY: UnitStrategy(
        IntervalUnit.DAY,
        86400,
        lambda value, count: value + timedelta(days=count),
        estimated=True,
    ),
    IntervalUnit.WEEK: UnitStrategy(
        IntervalUnit.WEEK,
        7 * 86400,
        lambda value, count: value + timedelta(weeks=count),
        estimated=True,
    ),
    IntervalUnit.MONTH: UnitStrategy(IntervalUnit.MONTH, None, add_months),
    IntervalUnit.YEAR: UnitStrategy(IntervalUnit.YEAR, None, add_years),
}


def strategy_for(unit: IntervalUnit) -> UnitStrategy:
    return UNIT_STRATEGIES[unit]
