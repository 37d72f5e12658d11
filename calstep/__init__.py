"""calstep - calendar interval triggers for job schedulers"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.errors import (
    CalstepError,
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
)
from .core.models.trigger import (
    CalendarIntervalConfig,
    JobExecutionResult,
    SchedulingConfig,
)
from .core.triggers import (
    Calendar,
    CalendarIntervalTrigger,
    FireGrid,
    Schedulable,
    calculate_final_fire_time,
    calculate_fire_time_after,
)
from .core.types.instructions import (
    IntervalUnit,
    MisfireInstruction,
    SchedulerInstruction,
)
from .core.logging import get_logger, set_default_level

__all__ = [
    'Calendar',
    'CalendarIntervalConfig',
    'CalendarIntervalTrigger',
    'CalstepError',
    'ConfigurationError',
    'ErrorCode',
    'FireGrid',
    'IntervalUnit',
    'JobExecutionResult',
    'MisfireInstruction',
    'MultipleValidationErrors',
    'Schedulable',
    'SchedulerInstruction',
    'SchedulingConfig',
    'calculate_final_fire_time',
    'calculate_fire_time_after',
    'get_logger',
    'set_default_level',
]
