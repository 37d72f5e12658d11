# calstep/core/triggers/calendar_filter.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol, runtime_checkable
from calstep.core.defaults import YEAR_TO_GIVE_UP_SCHEDULING_AT
from calstep.core.logging import get_logger

logger = get_logger('calendar_filter')

# Produces the grid point following a candidate, or None when exhausted
Advance = Callable[[datetime], Optional[datetime]]


@runtime_checkable
class Calendar(Protocol):
    """Exclusion calendar owned outside the trigger (holidays, blackout windows)."""

    def is_time_included(self, instant: datetime) -> bool: ...


def _included(calendar: Optional[Calendar], candidate: datetime) -> bool:
    # No calendar means every instant is included
    return calendar is None or calendar.is_time_included(candidate)


def skip_excluded(
    candidate: Optional[datetime],
    calendar: Optional[Calendar],
    advance: Advance,
    *,
    give_up_year: int = YEAR_TO_GIVE_UP_SCHEDULING_AT,
) -> Optional[datetime]:
    """
    Advance a candidate fire time until the calendar includes it.

    Args:
        candidate: First candidate fire time (None passes straight through)
        calendar: Exclusion calendar, None = always included
        advance: Next grid point after a candidate
        give_up_year: Candidates past this year end the search

    Returns:
        First included fire time, or None when the grid ran out or the
        search passed the give-up year
    """
    skipped = 0
    while candidate is not None and not _included(calendar, candidate):
        skipped += 1
        candidate = advance(candidate)

        if candidate is not None and candidate.year > give_up_year:
            logger.debug(
                f'No included fire time before year {give_up_year} '
                f'after skipping {skipped} excluded candidates'
            )
            return None

    if skipped:
        logger.debug(f'Calendar excluded {skipped} candidate fire time(s)')
    return candidate


def skip_excluded_and_misfired(
    candidate: Optional[datetime],
    calendar: Optional[Calendar],
    advance: Advance,
    *,
    now: datetime,
    misfire_threshold: timedelta,
    give_up_year: int = YEAR_TO_GIVE_UP_SCHEDULING_AT,
) -> Optional[datetime]:
    """
    Advance past excluded candidates, also skipping ones already misfired.

    Each replacement candidate that lies in the past by at least
    misfire_threshold is stepped over once more, as a misfire would be.
    Only candidates reached through a calendar exclusion are checked.
    """
    while candidate is not None and not _included(calendar, candidate):
        candidate = advance(candidate)
        if candidate is None:
            break

        if candidate.year > give_up_year:
            logger.debug(f'No included fire time before year {give_up_year}')
            return None

        if candidate < now and now - candidate >= misfire_threshold:
            logger.debug(f'Skipping misfired candidate {candidate.isoformat()}')
            candidate = advance(candidate)

    return candidate
