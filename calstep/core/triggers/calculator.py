# calstep/core/triggers/calculator.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from calstep.core.defaults import (
    BULK_JUMP_DAMPENING,
    BULK_JUMP_DAMPENING_DEFAULT,
    BULK_JUMP_MIN_COUNT,
    FIRE_TIME_EPSILON,
    YEAR_TO_GIVE_UP_SCHEDULING_AT,
)
from calstep.core.logging import get_logger
from calstep.core.triggers.units import UnitStrategy, strategy_for
from calstep.core.types.instructions import IntervalUnit
from calstep.core.utils.clock import Clock, to_utc, utc_now

logger = get_logger('calculator')


@dataclass(frozen=True)
class FireGrid:
    """
    The lattice of instants a calendar interval trigger may fire at.

    Fields:
        - start_time: Grid origin (UTC-aware)
        - end_time: Exclusive upper bound for fire times, None = unbounded
        - repeat_interval: Number of units between grid points (>= 1)
        - unit: Interval unit the grid steps in
    """

    start_time: datetime
    end_time: Optional[datetime]
    repeat_interval: int
    unit: IntervalUnit


def calculate_fire_time_after(
    grid: FireGrid,
    after_time: Optional[datetime],
    *,
    ignore_end_time: bool = False,
    give_up_year: int = YEAR_TO_GIVE_UP_SCHEDULING_AT,
    clock: Clock = utc_now,
) -> Optional[datetime]:
    """
    Calculate the first grid point strictly after a reference instant.

    Args:
        grid: Grid to search
        after_time: Reference instant (UTC-aware); None means now
        ignore_end_time: Search past the grid's end time
        give_up_year: Stepping stops once the working instant reaches this year
        clock: Source of "now" when after_time is None

    Returns:
        Next fire time as UTC-aware datetime, or None if the grid is exhausted

    Raises:
        ValueError: If after_time is naive or the grid has no positive interval
    """
    if grid.repeat_interval < 1:
        raise ValueError(f'repeat_interval must be >= 1, got {grid.repeat_interval}')

    reference = (clock() if after_time is None else to_utc(after_time)) + FIRE_TIME_EPSILON

    if not ignore_end_time and grid.end_time is not None and grid.end_time <= reference:
        return None

    if reference < grid.start_time:
        return grid.start_time

    strategy = strategy_for(grid.unit)
    if strategy.unit.is_fixed_duration:
        fire_time: Optional[datetime] = _jump_fixed(grid, strategy, reference)
    else:
        fire_time = _step_calendar(grid, strategy, reference, give_up_year)

    if fire_time is None:
        return None

    if not ignore_end_time and grid.end_time is not None and grid.end_time <= fire_time:
        return None

    return fire_time


def _add(strategy: UnitStrategy, value: datetime, amount: int) -> Optional[datetime]:
    # Stepping past the datetime range is exhaustion, not a failure
    try:
        return strategy.add(value, amount)
    except (OverflowError, ValueError):
        logger.debug(
            f'Stepping {amount} {strategy.unit.value}(s) from {value.isoformat()} '
            f'leaves the datetime range'
        )
        return None


def _period(grid: FireGrid, strategy: UnitStrategy) -> Optional[timedelta]:
    assert strategy.seconds is not None
    try:
        return timedelta(seconds=grid.repeat_interval * strategy.seconds)
    except OverflowError:
        return None


def _jump_fixed(
    grid: FireGrid, strategy: UnitStrategy, reference: datetime
) -> Optional[datetime]:
    """Exact grid point for units with a fixed length: one division, no iteration."""
    period = _period(grid, strategy)
    if period is None:
        # A single interval outlasts the datetime range; only the origin is reachable
        return None

    jump_count, remainder = divmod(reference - grid.start_time, period)
    if remainder:
        jump_count += 1
    return _add(strategy, grid.start_time, grid.repeat_interval * jump_count)


def _dampen(jump_count: int) -> int:
    """Shrink a large jump estimate so the bulk advance never overshoots."""
    for bound, ratio in BULK_JUMP_DAMPENING:
        if jump_count < bound:
            return int(jump_count * ratio)
    return int(jump_count * BULK_JUMP_DAMPENING_DEFAULT)


def _step_calendar(
    grid: FireGrid,
    strategy: UnitStrategy,
    reference: datetime,
    give_up_year: int,
) -> Optional[datetime]:
    """
    Grid point for units whose length varies on the calendar.

    Day and week grids first leap most of the way using the nominal unit
    length, then single-step. Month and year grids single-step from the
    origin; each step starts from the previous (possibly day-clamped) point.
    """
    working: Optional[datetime] = grid.start_time

    if strategy.supports_bulk_jump:
        period = _period(grid, strategy)
        jump_count = (reference - grid.start_time) // period if period is not None else 0
        if jump_count > BULK_JUMP_MIN_COUNT:
            working = _add(strategy, grid.start_time, grid.repeat_interval * _dampen(jump_count))

    while working is not None and working < reference and working.year < give_up_year:
        working = _add(strategy, working, grid.repeat_interval)

    if working is None or working < reference:
        logger.debug(
            f'Gave up searching {grid.unit.value} grid from {grid.start_time.isoformat()} '
            f'(give-up year {give_up_year})'
        )
        return None

    return working


def calculate_final_fire_time(
    grid: FireGrid,
    *,
    give_up_year: int = YEAR_TO_GIVE_UP_SCHEDULING_AT,
) -> Optional[datetime]:
    """
    Last grid point at or before the grid's end time.

    Returns:
        Final fire time, or None when the grid has no end time
    """
    if grid.end_time is None:
        return None

    fire_time = calculate_fire_time_after(
        grid,
        grid.end_time - FIRE_TIME_EPSILON,
        ignore_end_time=True,
        give_up_year=give_up_year,
    )
    if fire_time is None:
        return None

    # The grid lands exactly on the end time
    if fire_time == grid.end_time:
        return fire_time

    previous = _add(strategy_for(grid.unit), fire_time, -grid.repeat_interval)
    # Never earlier than the origin, which is always a grid point
    if previous is None or previous < grid.start_time:
        return grid.start_time
    return previous
