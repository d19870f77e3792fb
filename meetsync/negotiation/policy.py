from enum import Enum
from typing import List

from pydantic import BaseModel

from meetsync.core.models import AvailabilitySummary, Meeting, Slot


class DecisionKind(str, Enum):
    VOID = "VOID"
    ARBITRATION = "ARBITRATION"
    SELECTABLE = "SELECTABLE"


class AvailabilityDecision(BaseModel):
    """Outcome of a confirmation attempt, shown to the organizer."""

    kind: DecisionKind
    reason: str
    message: str
    slots: List[Slot] = []

    @property
    def must_delete(self) -> bool:
        return self.kind == DecisionKind.VOID


def _void(reason: str, message: str) -> AvailabilityDecision:
    return AvailabilityDecision(kind=DecisionKind.VOID, reason=reason, message=message)


def decide(summary: AvailabilitySummary, meeting: Meeting, slots: List[Slot]) -> AvailabilityDecision:
    """
    Decide whether a meeting can be confirmed, must be deleted, or needs the
    organizer to choose between waiting and deleting.

    Rules are evaluated in order; the first match wins. Only ``max_count`` and
    ``have_pending`` drive the group rules, the interval list is never counted.

    Args:
        summary: Availability summary fetched for the meeting
        meeting: The meeting being confirmed
        slots: Slots discretized from ``summary.possible_intervals``

    Returns:
        AvailabilityDecision
    """
    if meeting.treated_as_personal:
        if not slots:
            return _void(
                "no_personal_slots",
                "Cannot confirm: there are no available slots for this personal meeting.",
            )
    else:
        if summary.max_count == 0:
            return _void(
                "organizer_unavailable",
                "Cannot confirm: the organizer cannot attend any candidate window.",
            )
        if summary.max_count == 1 and summary.have_pending:
            return AvailabilityDecision(
                kind=DecisionKind.ARBITRATION,
                reason="awaiting_responses",
                message="Only you are available, but some invitees have not responded. Wait or delete the meeting?",
            )
        if summary.max_count == 1:
            return _void(
                "no_attendees",
                "Cannot confirm: none of the invitees can attend.",
            )
        if len(slots) <= 1:
            return _void(
                "not_enough_options",
                "Cannot confirm: not enough timing options for a group meeting.",
            )

    return AvailabilityDecision(
        kind=DecisionKind.SELECTABLE,
        reason="selectable",
        message="Choose a time from the available options.",
        slots=slots,
    )
