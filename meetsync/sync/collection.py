"""
Client-local meeting collection.

Both write paths (results of the caller's own requests and push events) go
through the same three primitives: ``insert_if_absent``, ``merge`` and
``remove``. Each is keyed by meeting id and leaves the collection untouched
when it raises, so the two paths can interleave in any order.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic.alias_generators import to_camel

from meetsync.core.models import Meeting
from meetsync.sync.sorting import SortOption, sort_meetings


def _wire_key(key: str) -> str:
    return to_camel(key) if "_" in key else key


class MeetingCollection:
    """Ordered meetings by id; insertion order unless re-sorted."""

    def __init__(self, meetings: Optional[Iterable[Meeting]] = None):
        self._meetings: Dict[int, Meeting] = {}
        if meetings:
            self.replace_all(meetings)

    def __len__(self) -> int:
        return len(self._meetings)

    def __contains__(self, meeting_id: int) -> bool:
        return meeting_id in self._meetings

    def __iter__(self) -> Iterator[Meeting]:
        return iter(list(self._meetings.values()))

    def get(self, meeting_id: int) -> Optional[Meeting]:
        return self._meetings.get(meeting_id)

    def ids(self) -> List[int]:
        return list(self._meetings)

    def all(self) -> List[Meeting]:
        return list(self._meetings.values())

    def replace_all(self, meetings: Iterable[Meeting]) -> None:
        """Load a bulk fetch. Duplicate ids keep their first occurrence."""
        fresh: Dict[int, Meeting] = {}
        for meeting in meetings:
            fresh.setdefault(meeting.id, meeting)
        self._meetings = fresh

    def clear(self) -> None:
        self._meetings.clear()

    def insert_if_absent(self, meeting: Meeting) -> bool:
        if meeting.id in self._meetings:
            return False
        self._meetings[meeting.id] = meeting
        return True

    def merge(self, meeting_id: int, patch: Dict[str, Any]) -> Optional[Meeting]:
        """
        Shallow-merge ``patch`` into the stored meeting, inserting it when absent.

        Fields present in ``patch`` overwrite, absent fields are kept. A group
        meeting left with only its organizer is void and is dropped instead.

        Args:
            meeting_id: Id the patch applies to
            patch: Meeting fields, camelCase or snake_case

        Returns:
            The stored meeting, or None if the merge voided it

        Raises:
            ValueError: If the result is not a valid meeting or its id disagrees
                (pydantic.ValidationError is a ValueError)
        """
        normalized = {_wire_key(key): value for key, value in patch.items()}
        existing = self._meetings.get(meeting_id)
        base = existing.to_wire() if existing is not None else {}
        merged = Meeting.model_validate({**base, **normalized})

        if merged.id != meeting_id:
            raise ValueError(f"patch for meeting {meeting_id} carries id {merged.id}")

        if merged.is_void:
            self._meetings.pop(meeting_id, None)
            return None

        self._meetings[meeting_id] = merged
        return merged

    def remove(self, meeting_id: int) -> bool:
        return self._meetings.pop(meeting_id, None) is not None

    def sort(self, option: SortOption) -> List[Meeting]:
        ordered = sort_meetings(self._meetings.values(), option)
        self._meetings = {meeting.id: meeting for meeting in ordered}
        return ordered
