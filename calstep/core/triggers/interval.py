# calstep/core/triggers/interval.py
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from calstep.core.defaults import DEFAULT_GROUP
from calstep.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    configuration_error,
    raise_collected,
)
from calstep.core.logging import get_logger
from calstep.core.models.trigger import (
    CalendarIntervalConfig,
    JobExecutionResult,
    SchedulingConfig,
    coerce_interval_unit,
    coerce_misfire_instruction,
)
from calstep.core.triggers.base import decide_execution_instruction
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
from calstep.core.triggers.misfire import resolve_misfire
from calstep.core.types.instructions import (
    IntervalUnit,
    MisfireInstruction,
    SchedulerInstruction,
)
from calstep.core.utils.clock import Clock, is_aware, utc_now

logger = get_logger('trigger')


def _require_aware(label: str, value: datetime) -> datetime:
    if not is_aware(value):
        raise configuration_error(
            f'{label} must be timezone-aware',
            code=ErrorCode.TRIGGER_NAIVE_DATETIME,
            notes=[f'{label}={value!r} has no tzinfo'],
            help_text='pass an aware datetime, e.g. datetime(..., tzinfo=timezone.utc)',
        )
    return value.astimezone(timezone.utc)


def _end_before_start(start_time: datetime, end_time: datetime) -> ConfigurationError:
    return configuration_error(
        'end time cannot be before start time',
        code=ErrorCode.TRIGGER_END_BEFORE_START,
        notes=[f'start_time={start_time.isoformat()}, end_time={end_time.isoformat()}'],
        help_text='move end_time to or after start_time, or leave it unset',
    )


class CalendarIntervalTrigger:
    """
    Fires every N calendar units (seconds through years) from a start time.

    Fire times are always re-derived from the start time, so they never
    drift. With a MONTH unit, a start day missing from a shorter month
    is clamped, and later fire times keep the clamped day: starting on
    Jan 31 gives Jan 31, Feb 28, Mar 28, ...

    All instants are UTC-aware. The trigger holds mutable scheduling state
    and performs no synchronization of its own; the scheduler owning it
    must serialize calls.
    """

    def __init__(
        self,
        name: str,
        *,
        group: str = DEFAULT_GROUP,
        job_name: Optional[str] = None,
        job_group: str = DEFAULT_GROUP,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        repeat_interval: int = 1,
        repeat_interval_unit: Union[IntervalUnit, str] = IntervalUnit.DAY,
        misfire_instruction: Union[MisfireInstruction, int, str] = (
            MisfireInstruction.SMART_POLICY
        ),
        config: Optional[SchedulingConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.group = group
        self.job_name = job_name
        self.job_group = job_group
        self.config = config or SchedulingConfig()
        self._clock = clock

        self._start_time: Optional[datetime] = None
        self._end_time: Optional[datetime] = None
        self._repeat_interval = 0
        self._next_fire_time: Optional[datetime] = None
        self._previous_fire_time: Optional[datetime] = None
        self._times_triggered = 0
        self._complete = False

        if start_time is not None:
            self.start_time = start_time
        self.end_time = end_time
        self.repeat_interval = repeat_interval
        self.repeat_interval_unit = repeat_interval_unit
        self.misfire_instruction = misfire_instruction

    @classmethod
    def from_config(
        cls,
        definition: CalendarIntervalConfig,
        *,
        config: Optional[SchedulingConfig] = None,
        clock: Clock = utc_now,
    ) -> CalendarIntervalTrigger:
        """Build a trigger from a validated declarative definition."""
        return cls(
            definition.name,
            group=definition.group,
            job_name=definition.job_name,
            job_group=definition.job_group,
            start_time=definition.start_time,
            end_time=definition.end_time,
            repeat_interval=definition.repeat_interval,
            repeat_interval_unit=definition.repeat_interval_unit,
            misfire_instruction=definition.misfire_instruction,
            config=config,
            clock=clock,
        )

    def __repr__(self) -> str:
        return (
            f'CalendarIntervalTrigger({self.full_name!r}, '
            f'every {self._repeat_interval} {self._repeat_interval_unit.value}(s), '
            f'next={self._next_fire_time})'
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def full_name(self) -> str:
        return f'{self.group}.{self.name}'

    @property
    def start_time(self) -> datetime:
        """Schedule origin; becomes now the first time it is read unset."""
        if self._start_time is None:
            self._start_time = self._clock()
        return self._start_time

    @start_time.setter
    def start_time(self, value: datetime) -> None:
        value = _require_aware('start_time', value)
        if self._end_time is not None and self._end_time < value:
            raise _end_before_start(value, self._end_time)
        self._start_time = value

    @property
    def end_time(self) -> Optional[datetime]:
        return self._end_time

    @end_time.setter
    def end_time(self, value: Optional[datetime]) -> None:
        if value is not None:
            value = _require_aware('end_time', value)
            if self.start_time > value:
                raise _end_before_start(self.start_time, value)
        self._end_time = value

    @property
    def repeat_interval(self) -> int:
        return self._repeat_interval

    @repeat_interval.setter
    def repeat_interval(self, value: int) -> None:
        if value < 0:
            raise configuration_error(
                'repeat interval must be >= 1',
                code=ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL,
                notes=[f'got repeat_interval={value}'],
                help_text='use a positive number of interval units',
            )
        self._repeat_interval = value

    @property
    def repeat_interval_unit(self) -> IntervalUnit:
        return self._repeat_interval_unit

    @repeat_interval_unit.setter
    def repeat_interval_unit(self, value: Union[IntervalUnit, str]) -> None:
        self._repeat_interval_unit = coerce_interval_unit(value)

    @property
    def misfire_instruction(self) -> MisfireInstruction:
        return self._misfire_instruction

    @misfire_instruction.setter
    def misfire_instruction(self, value: Union[MisfireInstruction, int, str]) -> None:
        self._misfire_instruction = coerce_misfire_instruction(value)

    @property
    def has_millisecond_precision(self) -> bool:
        return True

    # =========================================================================
    # Scheduling state (set by the scheduler only)
    # =========================================================================

    @property
    def next_fire_time(self) -> Optional[datetime]:
        return self._next_fire_time

    @next_fire_time.setter
    def next_fire_time(self, value: Optional[datetime]) -> None:
        self._next_fire_time = None if value is None else _require_aware('next_fire_time', value)

    @property
    def previous_fire_time(self) -> Optional[datetime]:
        return self._previous_fire_time

    @previous_fire_time.setter
    def previous_fire_time(self, value: Optional[datetime]) -> None:
        self._previous_fire_time = (
            None if value is None else _require_aware('previous_fire_time', value)
        )

    @property
    def times_triggered(self) -> int:
        return self._times_triggered

    @times_triggered.setter
    def times_triggered(self, value: int) -> None:
        if value < 0:
            raise configuration_error(
                'times triggered cannot be negative',
                code=ErrorCode.TRIGGER_INVALID_TIMES_TRIGGERED,
                notes=[f'got times_triggered={value}'],
                help_text='the fire count starts at 0 and only grows',
            )
        self._times_triggered = value

    @property
    def complete(self) -> bool:
        return self._complete

    def mark_complete(self) -> None:
        """Stop the trigger for good; it never fires again."""
        self._complete = True
        self._next_fire_time = None
        logger.debug(f'Trigger {self.full_name} marked complete')

    # =========================================================================
    # Fire time computation
    # =========================================================================

    @property
    def grid(self) -> FireGrid:
        return FireGrid(
            start_time=self.start_time,
            end_time=self._end_time,
            repeat_interval=self._repeat_interval,
            unit=self._repeat_interval_unit,
        )

    def fire_time_after(self, after_time: Optional[datetime] = None) -> Optional[datetime]:
        """
        Next fire time strictly after after_time (now when None).

        Returns None once the trigger is complete or the end time is reached.
        """
        return self._fire_time_after(after_time)

    def _fire_time_after(
        self, after_time: Optional[datetime], ignore_end_time: bool = False
    ) -> Optional[datetime]:
        if self._complete:
            return None
        return calculate_fire_time_after(
            self.grid,
            after_time,
            ignore_end_time=ignore_end_time,
            give_up_year=self.config.give_up_year,
            clock=self._clock,
        )

    @property
    def final_fire_time(self) -> Optional[datetime]:
        """Last fire time at or before end_time; None when unbounded or complete."""
        if self._complete or self._end_time is None:
            return None
        return calculate_final_fire_time(self.grid, give_up_year=self.config.give_up_year)

    def may_fire_again(self) -> bool:
        return self._next_fire_time is not None

    def compute_first_fire_time(self, calendar: Optional[Calendar] = None) -> Optional[datetime]:
        """
        Place the trigger on its first included fire time.

        Called once when the trigger is added to a scheduler.

        Returns:
            First fire time, or None if the calendar excludes every fire time
            before the give-up year
        """
        if self._complete:
            return None

        self._next_fire_time = skip_excluded(
            self.start_time,
            calendar,
            self.fire_time_after,
            give_up_year=self.config.give_up_year,
        )
        return self._next_fire_time

    def triggered(self, calendar: Optional[Calendar] = None) -> None:
        """Advance past a fire time the scheduler just fired."""
        self._times_triggered += 1
        self._previous_fire_time = self._next_fire_time
        self._next_fire_time = skip_excluded(
            self.fire_time_after(self._next_fire_time),
            calendar,
            self.fire_time_after,
            give_up_year=self.config.give_up_year,
        )

    def update_after_misfire(self, calendar: Optional[Calendar] = None) -> None:
        """Reschedule after the scheduler missed a fire time, per misfire_instruction."""
        if self._complete:
            return
        self._next_fire_time = resolve_misfire(
            self._misfire_instruction,
            now=self._clock(),
            calendar=calendar,
            advance=self.fire_time_after,
            give_up_year=self.config.give_up_year,
        )

    def update_with_new_calendar(
        self,
        calendar: Optional[Calendar],
        misfire_threshold: Optional[timedelta] = None,
    ) -> None:
        """
        Recompute the next fire time after the governing calendar changed.

        Args:
            calendar: Replacement calendar, None = always included
            misfire_threshold: Calendar-skipped fire times at least this far in
                the past are skipped as misfired (default from config)
        """
        self._next_fire_time = self.fire_time_after(self._previous_fire_time)
        if self._next_fire_time is None or calendar is None:
            return

        self._next_fire_time = skip_excluded_and_misfired(
            self._next_fire_time,
            calendar,
            self.fire_time_after,
            now=self._clock(),
            misfire_threshold=(
                self.config.misfire_threshold
                if misfire_threshold is None
                else misfire_threshold
            ),
            give_up_year=self.config.give_up_year,
        )
        logger.debug(
            f'Trigger {self.full_name} recalendared, next fire time {self._next_fire_time}'
        )

    # =========================================================================
    # Validation and execution outcome
    # =========================================================================

    def validate(self) -> None:
        """
        Check the trigger may be scheduled.

        Raises:
            ConfigurationError: For a single problem
            MultipleValidationErrors: When several problems are found
        """
        report = ValidationReport('trigger validation')

        if not self.name:
            report.add(
                configuration_error(
                    "trigger's name cannot be empty",
                    code=ErrorCode.TRIGGER_MISSING_IDENTITY,
                    help_text='give the trigger a name unique within its group',
                )
            )
        if not self.job_name:
            report.add(
                configuration_error(
                    "trigger's job name cannot be empty",
                    code=ErrorCode.TRIGGER_MISSING_IDENTITY,
                    notes=[f'trigger: {self.full_name}'],
                    help_text='set job_name to the job this trigger fires',
                )
            )
        if self._repeat_interval < 1:
            report.add(
                configuration_error(
                    'repeat interval cannot be zero',
                    code=ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL,
                    notes=[f'got repeat_interval={self._repeat_interval}'],
                    help_text='use a positive number of interval units',
                )
            )

        raise_collected(report)

    def execution_complete(
        self,
        context: Any,
        result: Optional[JobExecutionResult],
    ) -> SchedulerInstruction:
        """Decide what the scheduler does with this trigger after its job ran."""
        return decide_execution_instruction(result, self.may_fire_again())
