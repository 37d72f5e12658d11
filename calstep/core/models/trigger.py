# calstep/core/models/trigger.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import Self
from calstep.core.defaults import (
    DEFAULT_GROUP,
    DEFAULT_MISFIRE_THRESHOLD,
    YEAR_TO_GIVE_UP_SCHEDULING_AT,
)
from calstep.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from calstep.core.types.instructions import IntervalUnit, MisfireInstruction
from calstep.core.utils.clock import is_aware


def coerce_misfire_instruction(value: Any) -> MisfireInstruction:
    """
    Resolve a misfire instruction from an enum member, its name or its integer code.

    Raises:
        ConfigurationError: If the value names no known instruction
    """
    if isinstance(value, MisfireInstruction):
        return value
    if isinstance(value, str):
        try:
            return MisfireInstruction[value.strip().upper()]
        except KeyError:
            pass
    elif isinstance(value, int) and not isinstance(value, bool):
        try:
            return MisfireInstruction(value)
        except ValueError:
            pass

    raise ConfigurationError(
        message='invalid misfire instruction',
        code=ErrorCode.TRIGGER_INVALID_MISFIRE_INSTRUCTION,
        notes=[f'got misfire_instruction={value!r}'],
        help_text='use one of: '
        + ', '.join(f'{m.name} ({m.value})' for m in MisfireInstruction),
    )


def coerce_interval_unit(value: Any) -> IntervalUnit:
    """
    Resolve an interval unit from an enum member or its value/name.

    Raises:
        ConfigurationError: If the value names no known unit
    """
    if isinstance(value, IntervalUnit):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for unit in IntervalUnit:
            if normalized in (unit.value, unit.name.lower()):
                return unit

    raise ConfigurationError(
        message='invalid repeat interval unit',
        code=ErrorCode.TRIGGER_INVALID_INTERVAL_UNIT,
        notes=[f'got repeat_interval_unit={value!r}'],
        help_text='use one of: ' + ', '.join(u.value for u in IntervalUnit),
    )


class SchedulingConfig(BaseModel):
    """
    Tunables shared by every trigger a scheduler drives.

    Fields:
        - give_up_year: Fire-time searches stop once they reach this year
        - misfire_threshold: How late a fire time may be before it counts as misfired
    """

    model_config = ConfigDict(frozen=True)

    give_up_year: int = Field(
        default=YEAR_TO_GIVE_UP_SCHEDULING_AT,
        ge=1,
        le=9998,
        description='Year at which fire-time searches give up',
    )
    misfire_threshold: timedelta = Field(
        default=DEFAULT_MISFIRE_THRESHOLD,
        description='Lateness after which a fire time counts as misfired',
    )

    @model_validator(mode='after')
    def validate_misfire_threshold(self) -> Self:
        report = ValidationReport('scheduling config')
        if self.misfire_threshold <= timedelta(0):
            report.add(
                ConfigurationError(
                    message='misfire_threshold must be positive',
                    code=ErrorCode.CONFIG_INVALID_SCHEDULING,
                    notes=[f'got misfire_threshold={self.misfire_threshold}'],
                    help_text='use a positive timedelta, e.g. timedelta(seconds=60)',
                )
            )
        raise_collected(report)
        return self


class CalendarIntervalConfig(BaseModel):
    """
    Declarative definition of a calendar interval trigger.

    Examples:
        - Every 2 days from a fixed origin:
          CalendarIntervalConfig(name='t', job_name='j', start_time=..., repeat_interval=2)
        - Monthly, skipping missed runs:
          CalendarIntervalConfig(
              name='t', job_name='j', repeat_interval_unit='month',
              misfire_instruction='do_nothing',
          )
    """

    name: str = Field(description='Trigger name, unique within its group')
    group: str = Field(default=DEFAULT_GROUP, description='Trigger group')
    job_name: Optional[str] = Field(default=None, description='Job fired by the trigger')
    job_group: str = Field(default=DEFAULT_GROUP, description='Group of the fired job')
    start_time: Optional[datetime] = Field(
        default=None, description='Schedule origin (None = now when first read)'
    )
    end_time: Optional[datetime] = Field(
        default=None, description='No fire times at or after this instant'
    )
    repeat_interval: int = Field(default=1, description='Units between fire times')
    repeat_interval_unit: IntervalUnit = Field(default=IntervalUnit.DAY)
    misfire_instruction: MisfireInstruction = Field(
        default=MisfireInstruction.SMART_POLICY
    )

    @field_validator('misfire_instruction', mode='before')
    @classmethod
    def validate_misfire_instruction(cls, value: Any) -> MisfireInstruction:
        return coerce_misfire_instruction(value)

    @field_validator('repeat_interval_unit', mode='before')
    @classmethod
    def validate_interval_unit(cls, value: Any) -> IntervalUnit:
        return coerce_interval_unit(value)

    @model_validator(mode='after')
    def validate_trigger_definition(self) -> Self:
        """Collect every independent definition problem and raise them together."""
        report = ValidationReport('trigger definition')

        naive = [
            label
            for label, value in (('start_time', self.start_time), ('end_time', self.end_time))
            if value is not None and not is_aware(value)
        ]
        for label in naive:
            report.add(
                ConfigurationError(
                    message=f'{label} must be timezone-aware',
                    code=ErrorCode.TRIGGER_NAIVE_DATETIME,
                    notes=[f'{label}={getattr(self, label)!r} has no tzinfo'],
                    help_text='pass an aware datetime, e.g. datetime(..., tzinfo=timezone.utc)',
                )
            )

        if (
            not naive
            and self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            report.add(
                ConfigurationError(
                    message='end time cannot be before start time',
                    code=ErrorCode.TRIGGER_END_BEFORE_START,
                    notes=[f'start_time={self.start_time}, end_time={self.end_time}'],
                    help_text='move end_time to or after start_time, or leave it unset',
                )
            )

        if self.repeat_interval < 1:
            report.add(
                ConfigurationError(
                    message='repeat interval must be >= 1',
                    code=ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL,
                    notes=[f'got repeat_interval={self.repeat_interval}'],
                    help_text='use a positive number of interval units',
                )
            )

        raise_collected(report)
        return self


class JobExecutionResult(BaseModel):
    """
    Signals raised by the job execution layer when a run finishes.

    All flags default to False, meaning "no special handling requested".
    """

    model_config = ConfigDict(frozen=True)

    refire_immediately: bool = False
    unschedule_firing_trigger: bool = False
    unschedule_all_triggers: bool = False
