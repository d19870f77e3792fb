from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List

from meetsync.core.models import Meeting


class SortOption(str, Enum):
    DATE = "DATE"
    TITLE = "TITLE"
    STATUS = "STATUS"


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_at_key(meeting: Meeting) -> datetime:
    """Parse createdAt for ordering; meetings without a usable timestamp sort first."""
    if not meeting.created_at:
        return _EPOCH
    try:
        moment = datetime.fromisoformat(meeting.created_at.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def sort_meetings(meetings: Iterable[Meeting], option: SortOption) -> List[Meeting]:
    """Return a stably re-ordered copy; nothing is filtered or modified."""
    option = SortOption(option)
    if option == SortOption.DATE:
        return sorted(meetings, key=_created_at_key)
    if option == SortOption.TITLE:
        return sorted(meetings, key=lambda m: m.title)
    return sorted(meetings, key=lambda m: m.status.value)
