import asyncio
import json
import logging
from typing import Any, Optional, Union

from meetsync.core.models import Meeting, PushAction, PushEvent
from meetsync.observability.logger import log_error, log_event, log_warning
from meetsync.sync.collection import MeetingCollection
from meetsync.sync.delete_guard import DeleteInFlightGuard

logger = logging.getLogger(__name__)

# Put on the queue to make ``run`` return.
STOP = object()

RawMessage = Union[str, bytes, dict]


class ReconciliationEngine:
    """
    Applies push events to the local meeting collection, one at a time and in
    delivery order.

    CREATE and DELETE are idempotent against exact duplicates; UPDATE and
    SCHEDULE merges are idempotent by construction. A malformed message is
    logged and dropped without touching the collection.
    """

    def __init__(self, collection: MeetingCollection, delete_guard: Optional[DeleteInFlightGuard] = None):
        self.collection = collection
        self.delete_guard = delete_guard
        self.applied = 0
        self.dropped = 0

    def apply(self, event: PushEvent) -> None:
        """
        Apply a parsed event.

        Raises:
            ValueError: If the event's data is missing or not a valid meeting
        """
        meeting_id = event.meeting_id

        if event.action == PushAction.DELETE:
            removed = self.collection.remove(meeting_id)
            if self.delete_guard is not None:
                self.delete_guard.release(meeting_id)
            log_event(action="deleted", source="push", meeting_id=meeting_id, present=removed)
            return

        if not event.data:
            raise ValueError(f"{event.action.value} event for meeting {meeting_id} has no data")

        if event.action == PushAction.CREATE:
            meeting = Meeting.model_validate(event.data)
            if meeting.id != meeting_id:
                raise ValueError(f"CREATE event for meeting {meeting_id} carries id {meeting.id}")
            if meeting.is_void:
                log_event(action="ignored_void", source="push", meeting_id=meeting_id)
                return
            inserted = self.collection.insert_if_absent(meeting)
            log_event(
                action="created" if inserted else "duplicate",
                source="push",
                meeting_id=meeting_id,
                title=meeting.title,
            )
            return

        # UPDATE / SCHEDULE; absent meetings are inserted to survive a missed CREATE
        merged = self.collection.merge(meeting_id, event.data)
        log_event(
            action="voided" if merged is None else event.action.value.lower(),
            source="push",
            meeting_id=meeting_id,
        )

    def handle_message(self, raw: RawMessage) -> bool:
        """Parse and apply one raw push message. Returns False if it was dropped."""
        try:
            payload: Any = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            event = PushEvent.model_validate(payload)
            self.apply(event)
        except (ValueError, TypeError) as exc:
            self.dropped += 1
            log_warning("Dropped malformed push message", {
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            return False

        self.applied += 1
        return True

    async def run(self, queue: "asyncio.Queue[Any]") -> None:
        """Consume raw messages from ``queue`` until ``STOP`` is received."""
        logger.info("Reconciliation engine started")
        while True:
            raw = await queue.get()
            try:
                if raw is STOP:
                    break
                self.handle_message(raw)
            except Exception as e:
                # keep consuming
                log_error(e, {"action": "push_apply_failed"})
            finally:
                queue.task_done()
        logger.info("Reconciliation engine stopped")
