import logging
from typing import Set

logger = logging.getLogger(__name__)


class DeleteInFlightGuard:
    """Tracks meetings with a delete request outstanding so repeats are suppressed."""

    def __init__(self) -> None:
        self._in_flight: Set[int] = set()

    def __contains__(self, meeting_id: int) -> bool:
        return meeting_id in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

    def acquire(self, meeting_id: int) -> bool:
        """Mark a delete as started. Returns False if one is already outstanding."""
        if meeting_id in self._in_flight:
            logger.info(f"Delete already in flight for meeting {meeting_id}, skipping")
            return False
        self._in_flight.add(meeting_id)
        return True

    def release(self, meeting_id: int) -> None:
        self._in_flight.discard(meeting_id)

    def clear(self) -> None:
        self._in_flight.clear()
