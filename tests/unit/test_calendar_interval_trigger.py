"""Tests for CalendarIntervalTrigger state and scheduler-facing operations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from calstep.core.errors import ConfigurationError, ErrorCode, MultipleValidationErrors
from calstep.core.models.trigger import (
    CalendarIntervalConfig,
    JobExecutionResult,
    SchedulingConfig,
)
from calstep.core.triggers.base import Schedulable
from calstep.core.triggers.interval import CalendarIntervalTrigger
from calstep.core.types.instructions import (
    IntervalUnit,
    MisfireInstruction,
    SchedulerInstruction,
)


def _utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


class FixedClock:
    """Controllable stand-in for the UTC clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ExcludedInstants:
    def __init__(self, *instants: datetime) -> None:
        self.instants = set(instants)

    def is_time_included(self, instant: datetime) -> bool:
        return instant not in self.instants


class WeekendCalendar:
    def is_time_included(self, instant: datetime) -> bool:
        return instant.weekday() < 5


class NeverIncluded:
    def is_time_included(self, instant: datetime) -> bool:
        return False


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(_utc(2024, 6, 1, 12))


def _daily(clock: FixedClock, **overrides: object) -> CalendarIntervalTrigger:
    options: dict[str, object] = {
        'job_name': 'report',
        'start_time': _utc(2024, 1, 1, 9),
        'repeat_interval_unit': IntervalUnit.DAY,
    }
    options.update(overrides)
    return CalendarIntervalTrigger('nightly', clock=clock, **options)  # type: ignore[arg-type]


# =============================================================================
# Construction and configuration invariants
# =============================================================================


@pytest.mark.unit
class TestConfiguration:
    """Assignment-time checks and defaults."""

    def test_defaults(self, clock: FixedClock) -> None:
        trigger = CalendarIntervalTrigger('t', clock=clock)

        assert trigger.group == 'DEFAULT'
        assert trigger.full_name == 'DEFAULT.t'
        assert trigger.repeat_interval == 1
        assert trigger.repeat_interval_unit is IntervalUnit.DAY
        assert trigger.misfire_instruction is MisfireInstruction.SMART_POLICY
        assert trigger.next_fire_time is None
        assert trigger.previous_fire_time is None
        assert trigger.times_triggered == 0
        assert not trigger.complete
        assert trigger.has_millisecond_precision

    def test_unset_start_time_defaults_to_now(self, clock: FixedClock) -> None:
        trigger = CalendarIntervalTrigger('t', clock=clock)

        assert trigger.start_time == clock.now

    def test_start_time_normalized_to_utc(self, clock: FixedClock) -> None:
        minus_five = timezone(timedelta(hours=-5))
        trigger = _daily(clock, start_time=datetime(2024, 1, 1, 4, tzinfo=minus_five))

        assert trigger.start_time == _utc(2024, 1, 1, 9)
        assert trigger.start_time.tzinfo == timezone.utc

    def test_naive_start_time_rejected(self, clock: FixedClock) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _daily(clock, start_time=datetime(2024, 1, 1))

        assert exc_info.value.code == ErrorCode.TRIGGER_NAIVE_DATETIME

    def test_end_before_start_rejected_at_construction(self, clock: FixedClock) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _daily(clock, end_time=_utc(2023, 12, 31))

        assert exc_info.value.code == ErrorCode.TRIGGER_END_BEFORE_START

    def test_start_after_end_rejected_on_assignment(self, clock: FixedClock) -> None:
        trigger = _daily(clock, end_time=_utc(2024, 2, 1))

        with pytest.raises(ConfigurationError) as exc_info:
            trigger.start_time = _utc(2024, 3, 1)

        assert exc_info.value.code == ErrorCode.TRIGGER_END_BEFORE_START
        assert trigger.start_time == _utc(2024, 1, 1, 9)

    def test_negative_repeat_interval_rejected(self, clock: FixedClock) -> None:
        trigger = _daily(clock)

        with pytest.raises(ConfigurationError) as exc_info:
            trigger.repeat_interval = -1

        assert exc_info.value.code == ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL

    def test_negative_times_triggered_rejected(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.times_triggered = 4

        with pytest.raises(ConfigurationError) as exc_info:
            trigger.times_triggered = -1

        assert exc_info.value.code == ErrorCode.TRIGGER_INVALID_TIMES_TRIGGERED
        assert trigger.times_triggered == 4

    def test_zero_times_triggered_accepted(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.times_triggered = 0

        assert trigger.times_triggered == 0

    @pytest.mark.parametrize(
        ('value', 'expected'),
        [
            (2, MisfireInstruction.DO_NOTHING),
            ('fire_once_now', MisfireInstruction.FIRE_ONCE_NOW),
            (MisfireInstruction.SMART_POLICY, MisfireInstruction.SMART_POLICY),
        ],
    )
    def test_misfire_instruction_coercion(
        self, clock: FixedClock, value: object, expected: MisfireInstruction
    ) -> None:
        trigger = _daily(clock, misfire_instruction=value)

        assert trigger.misfire_instruction is expected

    @pytest.mark.parametrize('value', [3, -1, 'later'])
    def test_invalid_misfire_instruction_rejected(self, clock: FixedClock, value: object) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _daily(clock, misfire_instruction=value)

        assert exc_info.value.code == ErrorCode.TRIGGER_INVALID_MISFIRE_INSTRUCTION

    def test_invalid_unit_rejected(self, clock: FixedClock) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _daily(clock, repeat_interval_unit='fortnight')

        assert exc_info.value.code == ErrorCode.TRIGGER_INVALID_INTERVAL_UNIT

    def test_from_config(self, clock: FixedClock) -> None:
        definition = CalendarIntervalConfig(
            name='monthly',
            group='billing',
            job_name='invoice',
            start_time=_utc(2024, 1, 31),
            repeat_interval=2,
            repeat_interval_unit='month',
            misfire_instruction='do_nothing',
        )

        trigger = CalendarIntervalTrigger.from_config(definition, clock=clock)

        assert trigger.full_name == 'billing.monthly'
        assert trigger.job_name == 'invoice'
        assert trigger.repeat_interval == 2
        assert trigger.repeat_interval_unit is IntervalUnit.MONTH
        assert trigger.misfire_instruction is MisfireInstruction.DO_NOTHING
        assert trigger.start_time == _utc(2024, 1, 31)

    def test_is_schedulable(self, clock: FixedClock) -> None:
        assert isinstance(_daily(clock), Schedulable)


# =============================================================================
# Validation
# =============================================================================


@pytest.mark.unit
class TestValidate:
    def test_valid_trigger(self, clock: FixedClock) -> None:
        _daily(clock).validate()

    def test_zero_repeat_interval(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.repeat_interval = 0

        with pytest.raises(ConfigurationError) as exc_info:
            trigger.validate()

        assert exc_info.value.code == ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL

    def test_missing_job_name(self, clock: FixedClock) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _daily(clock, job_name=None).validate()

        assert exc_info.value.code == ErrorCode.TRIGGER_MISSING_IDENTITY

    def test_collects_all_problems(self, clock: FixedClock) -> None:
        trigger = CalendarIntervalTrigger('', repeat_interval=0, clock=clock)

        with pytest.raises(MultipleValidationErrors) as exc_info:
            trigger.validate()

        codes = [error.code for error in exc_info.value.report.errors]
        assert codes == [
            ErrorCode.TRIGGER_MISSING_IDENTITY,
            ErrorCode.TRIGGER_MISSING_IDENTITY,
            ErrorCode.TRIGGER_INVALID_REPEAT_INTERVAL,
        ]


# =============================================================================
# First fire time
# =============================================================================


@pytest.mark.unit
class TestComputeFirstFireTime:
    def test_without_calendar_is_start_time(self, clock: FixedClock) -> None:
        trigger = _daily(clock)

        assert trigger.compute_first_fire_time() == _utc(2024, 1, 1, 9)
        assert trigger.next_fire_time == _utc(2024, 1, 1, 9)

    def test_end_equal_to_start_fires_once(self, clock: FixedClock) -> None:
        trigger = _daily(clock, end_time=_utc(2024, 1, 1, 9))

        assert trigger.compute_first_fire_time() == _utc(2024, 1, 1, 9)

        trigger.triggered()
        assert trigger.next_fire_time is None
        assert not trigger.may_fire_again()

    def test_calendar_skips_excluded_start(self, clock: FixedClock) -> None:
        # 2024-01-06 is a Saturday
        trigger = _daily(clock, start_time=_utc(2024, 1, 6, 9))

        assert trigger.compute_first_fire_time(WeekendCalendar()) == _utc(2024, 1, 8, 9)

    def test_calendar_excluding_everything(self, clock: FixedClock) -> None:
        trigger = _daily(
            clock,
            repeat_interval_unit=IntervalUnit.YEAR,
            config=SchedulingConfig(give_up_year=2030),
        )

        assert trigger.compute_first_fire_time(NeverIncluded()) is None
        assert trigger.next_fire_time is None

    def test_complete_trigger(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.mark_complete()

        assert trigger.compute_first_fire_time() is None


# =============================================================================
# Triggered
# =============================================================================


@pytest.mark.unit
class TestTriggered:
    def test_advances_cursor(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.compute_first_fire_time()

        trigger.triggered()

        assert trigger.times_triggered == 1
        assert trigger.previous_fire_time == _utc(2024, 1, 1, 9)
        assert trigger.next_fire_time == _utc(2024, 1, 2, 9)

    def test_skips_calendar_exclusions(self, clock: FixedClock) -> None:
        # 2024-01-05 is a Friday
        trigger = _daily(clock, start_time=_utc(2024, 1, 5, 9))
        trigger.compute_first_fire_time(WeekendCalendar())

        trigger.triggered(WeekendCalendar())

        assert trigger.next_fire_time == _utc(2024, 1, 8, 9)

    def test_month_sequence_keeps_clamped_day(self, clock: FixedClock) -> None:
        trigger = _daily(
            clock, start_time=_utc(2024, 1, 31), repeat_interval_unit=IntervalUnit.MONTH
        )
        trigger.compute_first_fire_time()

        fired = []
        for _ in range(4):
            fired.append(trigger.next_fire_time)
            trigger.triggered()

        assert fired == [_utc(2024, 1, 31), _utc(2024, 2, 29), _utc(2024, 3, 29), _utc(2024, 4, 29)]
        assert trigger.times_triggered == 4

    def test_stops_at_end_time(self, clock: FixedClock) -> None:
        trigger = _daily(clock, end_time=_utc(2024, 1, 3, 9))
        trigger.compute_first_fire_time()

        trigger.triggered()
        trigger.triggered()

        assert trigger.previous_fire_time == _utc(2024, 1, 2, 9)
        assert trigger.next_fire_time is None


# =============================================================================
# Misfires
# =============================================================================


@pytest.mark.unit
class TestUpdateAfterMisfire:
    def test_smart_policy_fires_now_then_resumes_grid(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.compute_first_fire_time()

        trigger.update_after_misfire()
        assert trigger.next_fire_time == _utc(2024, 6, 1, 12)

        trigger.triggered()
        # The following firing returns to the 09:00 time of day
        assert trigger.next_fire_time == _utc(2024, 6, 2, 9)

    def test_do_nothing_skips_excluded_instants(self, clock: FixedClock) -> None:
        trigger = _daily(clock, misfire_instruction=MisfireInstruction.DO_NOTHING)
        trigger.compute_first_fire_time()
        calendar = ExcludedInstants(_utc(2024, 6, 2, 9), _utc(2024, 6, 3, 9), _utc(2024, 6, 4, 9))

        trigger.update_after_misfire(calendar)

        assert trigger.next_fire_time == _utc(2024, 6, 5, 9)

    def test_complete_trigger_stays_complete(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.mark_complete()

        trigger.update_after_misfire()

        assert trigger.next_fire_time is None


# =============================================================================
# Recalendaring
# =============================================================================


@pytest.mark.unit
class TestUpdateWithNewCalendar:
    def test_recomputes_from_previous_fire_time(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.previous_fire_time = _utc(2024, 6, 1, 9)

        trigger.update_with_new_calendar(None)

        assert trigger.next_fire_time == _utc(2024, 6, 2, 9)

    def test_skips_excluded_and_misfired(self, clock: FixedClock) -> None:
        trigger = _daily(clock)
        trigger.previous_fire_time = _utc(2024, 5, 29, 9)
        calendar = ExcludedInstants(_utc(2024, 5, 30, 9))

        trigger.update_with_new_calendar(calendar, timedelta(minutes=5))

        # May 31 replaces excluded May 30 but is already misfired, so June 1 is used
        assert trigger.next_fire_time == _utc(2024, 6, 1, 9)

    def test_default_threshold_from_config(self, clock: FixedClock) -> None:
        clock.now = _utc(2024, 5, 31, 9, 0, 30)
        trigger = _daily(clock, config=SchedulingConfig(misfire_threshold=timedelta(minutes=1)))
        trigger.previous_fire_time = _utc(2024, 5, 29, 9)

        trigger.update_with_new_calendar(ExcludedInstants(_utc(2024, 5, 30, 9)))

        assert trigger.next_fire_time == _utc(2024, 5, 31, 9)


# =============================================================================
# Queries and execution outcome
# =============================================================================


@pytest.mark.unit
class TestQueries:
    def test_final_fire_time(self, clock: FixedClock) -> None:
        trigger = _daily(
            clock, repeat_interval=2, end_time=_utc(2024, 1, 10, 12)
        )

        assert trigger.final_fire_time == _utc(2024, 1, 9, 9)

    def test_final_fire_time_without_end(self, clock: FixedClock) -> None:
        assert _daily(clock).final_fire_time is None

    def test_sub_second_end_time_final_fire_time(self, clock: FixedClock) -> None:
        start = _utc(2024, 1, 1)
        trigger = _daily(
            clock,
            start_time=start,
            end_time=start + timedelta(seconds=30, milliseconds=500),
            repeat_interval=30,
            repeat_interval_unit=IntervalUnit.SECOND,
        )

        assert trigger.final_fire_time == start + timedelta(seconds=30)

    def test_interval_beyond_datetime_range_exhausts(self, clock: FixedClock) -> None:
        trigger = _daily(
            clock, repeat_interval=8000, repeat_interval_unit=IntervalUnit.YEAR
        )

        assert trigger.compute_first_fire_time() == _utc(2024, 1, 1, 9)
        assert trigger.fire_time_after(_utc(2025, 1, 1)) is None

        trigger.triggered()

        assert trigger.next_fire_time is None
        assert not trigger.may_fire_again()

    def test_fire_time_after_defaults_to_now(self, clock: FixedClock) -> None:
        assert _daily(clock).fire_time_after() == _utc(2024, 6, 2, 9)

    def test_complete_trigger_answers_nothing(self, clock: FixedClock) -> None:
        trigger = _daily(clock, end_time=_utc(2025, 1, 1))
        trigger.compute_first_fire_time()

        trigger.mark_complete()

        assert trigger.complete
        assert trigger.next_fire_time is None
        assert trigger.fire_time_after(_utc(2024, 3, 1)) is None
        assert trigger.final_fire_time is None
        assert not trigger.may_fire_again()

        trigger.triggered()
        assert trigger.next_fire_time is None


@pytest.mark.unit
class TestExecutionComplete:
    """Instruction priority after a job execution."""

    @pytest.mark.parametrize(
        ('result', 'expected'),
        [
            (
                JobExecutionResult(
                    refire_immediately=True,
                    unschedule_firing_trigger=True,
                    unschedule_all_triggers=True,
                ),
                SchedulerInstruction.RE_EXECUTE_JOB,
            ),
            (
                JobExecutionResult(unschedule_firing_trigger=True, unschedule_all_triggers=True),
                SchedulerInstruction.SET_TRIGGER_COMPLETE,
            ),
            (
                JobExecutionResult(unschedule_all_triggers=True),
                SchedulerInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE,
            ),
            (JobExecutionResult(), SchedulerInstruction.NO_INSTRUCTION),
            (None, SchedulerInstruction.NO_INSTRUCTION),
        ],
    )
    def test_priority(
        self,
        clock: FixedClock,
        result: JobExecutionResult | None,
        expected: SchedulerInstruction,
    ) -> None:
        trigger = _daily(clock)
        trigger.compute_first_fire_time()

        assert trigger.execution_complete(None, result) is expected

    def test_exhausted_trigger_is_deleted(self, clock: FixedClock) -> None:
        trigger = _daily(clock)

        assert trigger.execution_complete(None, JobExecutionResult()) is (
            SchedulerInstruction.DELETE_TRIGGER
        )
