# calstep/core/triggers/misfire.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from calstep.core.defaults import YEAR_TO_GIVE_UP_SCHEDULING_AT
from calstep.core.logging import get_logger
from calstep.core.triggers.calendar_filter import Advance, Calendar, skip_excluded
from calstep.core.types.instructions import MisfireInstruction

logger = get_logger('misfire')


def effective_instruction(instruction: MisfireInstruction) -> MisfireInstruction:
    """Resolve SMART_POLICY to the concrete behaviour of calendar interval triggers."""
    if instruction is MisfireInstruction.SMART_POLICY:
        return MisfireInstruction.FIRE_ONCE_NOW
    return instruction


def resolve_misfire(
    instruction: MisfireInstruction,
    *,
    now: datetime,
    calendar: Optional[Calendar],
    advance: Advance,
    give_up_year: int = YEAR_TO_GIVE_UP_SCHEDULING_AT,
) -> Optional[datetime]:
    """
    Compute the next fire time of a trigger that missed a firing.

    FIRE_ONCE_NOW fires at `now`. The grid is always re-derived from the
    trigger's start time, so the firing after that returns to the original
    time of day.
    DO_NOTHING skips to the first included grid point after `now`.

    Args:
        instruction: Configured misfire instruction
        now: Current instant (UTC-aware)
        calendar: Exclusion calendar, None = always included
        advance: Next grid point after an instant
        give_up_year: Candidates past this year end the search

    Returns:
        New next fire time, or None if the trigger will not fire again
    """
    resolved = effective_instruction(instruction)

    match resolved:
        case MisfireInstruction.FIRE_ONCE_NOW:
            logger.debug(f'Misfire ({instruction.name}): firing once now at {now.isoformat()}')
            return now
        case MisfireInstruction.DO_NOTHING:
            next_fire_time = skip_excluded(
                advance(now), calendar, advance, give_up_year=give_up_year
            )
            logger.debug(
                f'Misfire ({instruction.name}): rescheduled to '
                f'{next_fire_time.isoformat() if next_fire_time else None}'
            )
            return next_fire_time

    raise ValueError(f'Unhandled misfire instruction: {instruction!r}')
