"""Shared default constants for the calstep library."""

from datetime import timedelta

# Fire-time searches stop once the working instant reaches this year.
# Bounds every stepping loop so pathological calendars cannot spin forever.
YEAR_TO_GIVE_UP_SCHEDULING_AT: int = 2299

# Searches always look for an instant strictly after the reference, so the
# reference is pushed forward by this amount before the grid is consulted.
FIRE_TIME_EPSILON: timedelta = timedelta(seconds=1)

# Bulk-jump estimates above this count are dampened before being applied
# to day/week grids.
BULK_JUMP_MIN_COUNT: int = 20

# (upper bound exclusive, ratio) pairs for dampening the bulk jump estimate.
# The last ratio applies to every estimate above the final bound.
BULK_JUMP_DAMPENING: tuple[tuple[int, float], ...] = (
    (50, 0.80),
    (500, 0.90),
)
BULK_JUMP_DAMPENING_DEFAULT: float = 0.95

# How late a calendar-skipped fire time may be before recalendaring treats
# it as misfired and skips past it.
DEFAULT_MISFIRE_THRESHOLD: timedelta = timedelta(seconds=60)

DEFAULT_GROUP: str = 'DEFAULT'
