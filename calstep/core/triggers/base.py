# calstep/core/triggers/base.py
"""
Capabilities every trigger kind offers to the scheduler that owns it.

Trigger kinds implement Schedulable structurally; they share behaviour
through the plain functions in this module rather than a base class.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol, runtime_checkable
from calstep.core.models.trigger import JobExecutionResult
from calstep.core.triggers.calendar_filter import Calendar
from calstep.core.types.instructions import SchedulerInstruction


@runtime_checkable
class Schedulable(Protocol):
    """Operations a scheduler invokes on a trigger it holds.

    Implementations are plain mutable records: the owning scheduler must
    serialize every call on one trigger.
    """

    @property
    def next_fire_time(self) -> Optional[datetime]: ...

    @property
    def previous_fire_time(self) -> Optional[datetime]: ...

    @property
    def final_fire_time(self) -> Optional[datetime]: ...

    def compute_first_fire_time(
        self, calendar: Optional[Calendar] = None
    ) -> Optional[datetime]: ...

    def fire_time_after(
        self, after_time: Optional[datetime] = None
    ) -> Optional[datetime]: ...

    def triggered(self, calendar: Optional[Calendar] = None) -> None: ...

    def update_after_misfire(self, calendar: Optional[Calendar] = None) -> None: ...

    def update_with_new_calendar(
        self,
        calendar: Optional[Calendar],
        misfire_threshold: Optional[timedelta] = None,
    ) -> None: ...

    def may_fire_again(self) -> bool: ...

    def validate(self) -> None: ...

    def execution_complete(
        self, context: Any, result: Optional[JobExecutionResult]
    ) -> SchedulerInstruction: ...


def decide_execution_instruction(
    result: Optional[JobExecutionResult],
    may_fire_again: bool,
) -> SchedulerInstruction:
    """
    Pick what the scheduler does with a trigger after its job ran.

    Priority: refire > unschedule this trigger > unschedule all of the
    job's triggers > delete an exhausted trigger > nothing.
    """
    if result is not None:
        if result.refire_immediately:
            return SchedulerInstruction.RE_EXECUTE_JOB
        if result.unschedule_firing_trigger:
            return SchedulerInstruction.SET_TRIGGER_COMPLETE
        if result.unschedule_all_triggers:
            return SchedulerInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE

    if not may_fire_again:
        return SchedulerInstruction.DELETE_TRIGGER

    return SchedulerInstruction.NO_INSTRUCTION
