# calstep/core/triggers/__init__.py
"""
Calendar interval triggers.

Main components:
- CalendarIntervalTrigger: Trigger state and the operations a scheduler calls
- calculate_fire_time_after: Pure next-fire-time calculation over a FireGrid
- skip_excluded: Calendar filtering of candidate fire times
- resolve_misfire: Misfire instruction handling

Example usage:
    from calstep.core.triggers import CalendarIntervalTrigger

    trigger = CalendarIntervalTrigger(
        'nightly', job_name='report', start_time=start, repeat_interval_unit='day'
    )
    trigger.validate()
    trigger.compute_first_fire_time(holidays)
"""

from calstep.core.triggers.base import Schedulable, decide_execution_instruction
from calstep.core.triggers.calculator import (
    FireGrid,
    calculate_final_fire_time,
    calculate_fire_time_after,
)
from calstep.core.triggers.calendar_filter import (
    Calendar,
    skip_excluded,
    skip_excluded_and_misfired,
)
from calstep.core.triggers.interval import CalendarIntervalTrigger
from calstep.core.triggers.misfire import effective_instruction, resolve_misfire

__all__ = [
    'Calendar',
    'CalendarIntervalTrigger',
    'FireGrid',
    'Schedulable',
    'calculate_final_fire_time',
    'calculate_fire_time_after',
    'decide_execution_instruction',
    'effective_instruction',
    'resolve_misfire',
    'skip_excluded',
    'skip_excluded_and_misfired',
]
