"""
Turn availability intervals into concrete, minute-granular start slots.

A slot is offered when the meeting, started at the cursor, finishes no later
than the daily cutoff (18:00 by default). The interval's own end only bounds
where the cursor may start, never where the meeting may finish.
"""

from datetime import datetime, time, timedelta
from typing import Iterable, Iterator, List, Optional

from meetsync.core.models import AvailabilityInterval, Slot

DEFAULT_CUTOFF = time(18, 0)
FALLBACK_DURATION_MINUTES = 60
STEP = timedelta(minutes=1)


def parse_cutoff(value: str) -> time:
    """Parse an 'HH:MM' or 'HH:MM:SS' cutoff, falling back to 18:00."""
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        return DEFAULT_CUTOFF


def _to_slot(moment: datetime) -> Slot:
    return Slot(
        id=moment.strftime("%Y-%m-%dT%H:%M:%S"),
        date_label=moment.strftime("%d.%m.%Y"),
        time_label=moment.strftime("%H:%M"),
    )


def iter_slots(
    intervals: Iterable[AvailabilityInterval],
    duration: Optional[int],
    cutoff: time = DEFAULT_CUTOFF,
) -> Iterator[Slot]:
    """Yield slots interval by interval, ascending within each interval."""
    length = timedelta(minutes=duration or FALLBACK_DURATION_MINUTES)

    for interval in intervals:
        cursor = datetime.combine(interval.date, interval.start)
        last_start = datetime.combine(interval.date, interval.end)
        latest_finish = datetime.combine(interval.date, cutoff)

        while cursor <= last_start:
            if cursor + length > latest_finish:
                # later cursors only finish later
                break
            yield _to_slot(cursor)
            cursor += STEP


def discretize(
    intervals: Iterable[AvailabilityInterval],
    duration: Optional[int],
    cutoff: time = DEFAULT_CUTOFF,
) -> List[Slot]:
    """Materialize every offerable slot, in interval input order."""
    return list(iter_slots(intervals, duration, cutoff))
