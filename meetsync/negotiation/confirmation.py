import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from meetsync.core.errors import MeetingValidationError
from meetsync.core.models import Meeting, ScheduleRequest, Slot
from meetsync.negotiation.policy import AvailabilityDecision, DecisionKind, decide
from meetsync.negotiation.slots import discretize
from meetsync.negotiation.state_machine import check_can_confirm
from meetsync.observability.logger import log_event

if TYPE_CHECKING:
    from meetsync.session import MeetingSession

logger = logging.getLogger(__name__)


class ConfirmationSession:
    """
    One organizer attempt at confirming a meeting.

    The availability summary is fetched at most once per session: concurrent
    ``load()`` calls share the same request. A failed load can be retried.
    """

    def __init__(self, session: "MeetingSession", meeting_id: int):
        self.session = session
        self.meeting_id = meeting_id
        self.decision: Optional[AvailabilityDecision] = None
        self.selected_index: Optional[int] = None
        self._pending: Optional["asyncio.Future[AvailabilityDecision]"] = None

    @property
    def slots(self) -> List[Slot]:
        return self.decision.slots if self.decision is not None else []

    @property
    def selected_slot(self) -> Optional[Slot]:
        if self.selected_index is None:
            return None
        return self.slots[self.selected_index]

    def _meeting(self) -> Meeting:
        return self.session.require_meeting(self.meeting_id)

    async def _fetch(self) -> AvailabilityDecision:
        user = self.session.require_user()
        meeting = self._meeting()
        check_can_confirm(meeting, user.id)

        summary = await self.session.api.get_availability(self.meeting_id)
        slots = discretize(
            summary.possible_intervals,
            meeting.duration or self.session.config.default_duration,
            self.session.cutoff,
        )
        decision = decide(summary, meeting, slots)
        log_event(
            action="availability_loaded",
            source="local",
            meeting_id=self.meeting_id,
            decision=decision.kind.value,
            reason=decision.reason,
            max_count=summary.max_count,
            have_pending=summary.have_pending,
            slot_count=len(slots),
        )
        return decision

    def _fetch_reusable(self) -> bool:
        pending = self._pending
        if pending is None:
            return False
        if not pending.done():
            return True
        return not pending.cancelled() and pending.exception() is None

    async def load(self) -> AvailabilityDecision:
        if self.decision is not None:
            return self.decision
        if not self._fetch_reusable():
            self._pending = asyncio.ensure_future(self._fetch())
        pending = self._pending
        try:
            # a cancelled caller must not cancel the fetch other callers share
            decision = await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled() and self._pending is pending:
                self._pending = None
            raise
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise
        if self.decision is None:
            self.decision = decision
            self.selected_index = 0 if decision.slots else None
        return self.decision

    def select(self, index: int) -> Slot:
        if not 0 <= index < len(self.slots):
            raise MeetingValidationError(f"No slot at position {index}")
        self.selected_index = index
        return self.slots[index]

    def select_slot(self, slot_id: str) -> Slot:
        for index, slot in enumerate(self.slots):
            if slot.id == slot_id:
                return self.select(index)
        raise MeetingValidationError(f"Slot {slot_id} is not on offer")

    async def confirm(self) -> Optional[Meeting]:
        """Schedule the meeting at the selected slot."""
        if self.decision is None or self.decision.kind != DecisionKind.SELECTABLE:
            raise MeetingValidationError("There is no slot to confirm")
        slot = self.selected_slot
        if slot is None:
            raise MeetingValidationError("Select a slot")
        return await self.session.confirm(self.meeting_id, ScheduleRequest(start_time=slot.id))

    def wait(self) -> None:
        """Organizer chose to wait for more responses; nothing is sent."""
        log_event(action="confirmation_deferred", source="local", meeting_id=self.meeting_id)

    async def delete(self) -> bool:
        return await self.session.remove(self.meeting_id)

    async def cancel(self) -> bool:
        """
        Close the attempt. Void meetings and personal ones are deleted, since
        they have nothing left to wait for. Returns True if a delete was sent.
        """
        meeting = self.session.collection.get(self.meeting_id)
        personal = meeting is not None and meeting.treated_as_personal
        if (self.decision is not None and self.decision.must_delete) or personal:
            return await self.delete()
        return False
