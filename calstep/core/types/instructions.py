# core/types/instructions.py
"""
Closed enumerations shared by triggers and the scheduler that drives them.
This module should not import from other application modules.
"""

from enum import Enum, IntEnum


class IntervalUnit(str, Enum):
    """Granularity at which a trigger's repeat interval is interpreted."""

    SECOND = 'second'
    MINUTE = 'minute'
    HOUR = 'hour'
    DAY = 'day'
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'

    @property
    def is_fixed_duration(self) -> bool:
        """Whether every interval of this unit lasts the same number of seconds."""
        return self in FIXED_DURATION_UNITS


FIXED_DURATION_UNITS: frozenset[IntervalUnit] = frozenset({
    IntervalUnit.SECOND,
    IntervalUnit.MINUTE,
    IntervalUnit.HOUR,
})


class MisfireInstruction(IntEnum):
    """What a calendar interval trigger does after missing a fire time."""

    SMART_POLICY = 0  # Resolved to FIRE_ONCE_NOW.
    FIRE_ONCE_NOW = 1  # Fire immediately, then resume the original grid.
    DO_NOTHING = 2  # Skip to the next grid point after now.


class SchedulerInstruction(Enum):
    """Instruction handed back to the scheduler once a job execution finishes."""

    NO_INSTRUCTION = 'no_instruction'
    RE_EXECUTE_JOB = 're_execute_job'
    SET_TRIGGER_COMPLETE = 'set_trigger_complete'
    DELETE_TRIGGER = 'delete_trigger'
    SET_ALL_JOB_TRIGGERS_COMPLETE = 'set_all_job_triggers_complete'
