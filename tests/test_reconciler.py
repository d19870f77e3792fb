"""
Test push event reconciliation.

This test suite verifies:
1. CREATE / UPDATE / SCHEDULE / DELETE against the local collection
2. Idempotence of duplicated events
3. Malformed messages are dropped without side effects
4. The queue consumer loop
"""

import asyncio
import json

import pytest

from meetsync.core.models import Meeting, MeetingStatus
from meetsync.sync.collection import MeetingCollection
from meetsync.sync.delete_guard import DeleteInFlightGuard
from meetsync.sync.reconciler import STOP, ReconciliationEngine


def _meeting_wire(meeting_id=5, **overrides):
    payload = {
        "id": meeting_id,
        "title": "Design review",
        "description": "",
        "authorId": 1,
        "possibleDays": ["2025-03-10"],
        "participants": [{"userId": 2, "status": "PENDING"}, {"userId": 3, "status": "PENDING"}],
        "isPersonal": False,
        "startTime": None,
        "duration": 60,
        "status": "PENDING",
        "createdAt": "2025-03-01T10:00:00Z",
    }
    payload.update(overrides)
    return payload


def _message(action, meeting_id=5, data=None):
    return json.dumps({"action": action, "meetingId": meeting_id, "data": data})


def _engine(*meetings):
    collection = MeetingCollection(Meeting.model_validate(m) for m in meetings)
    return ReconciliationEngine(collection, DeleteInFlightGuard())


class TestApplyEvents:
    """Test each event kind."""

    def test_create_inserts(self):
        engine = _engine()

        assert engine.handle_message(_message("CREATE", data=_meeting_wire())) is True
        assert engine.collection.ids() == [5]
        assert engine.applied == 1

    def test_duplicate_create_is_idempotent(self):
        engine = _engine()
        message = _message("CREATE", data=_meeting_wire())

        engine.handle_message(message)
        snapshot = [m.to_wire() for m in engine.collection]
        engine.handle_message(message)

        assert [m.to_wire() for m in engine.collection] == snapshot

    def test_create_does_not_overwrite_existing(self):
        engine = _engine(_meeting_wire(title="Local copy"))

        engine.handle_message(_message("CREATE", data=_meeting_wire(title="Server copy")))

        assert engine.collection.get(5).title == "Local copy"

    def test_update_merges(self):
        engine = _engine(_meeting_wire())
        participants = [{"userId": 2, "status": "ACCEPTED", "selectedDays": ["2025-03-10"]}, {"userId": 3}]

        engine.handle_message(_message("UPDATE", data={"id": 5, "participants": participants}))

        meeting = engine.collection.get(5)
        assert meeting.participant(2).selected_days == ["2025-03-10"]
        assert meeting.title == "Design review"

    def test_update_for_unknown_meeting_inserts(self):
        engine = _engine()

        engine.handle_message(_message("UPDATE", data=_meeting_wire()))

        assert 5 in engine.collection

    def test_schedule(self):
        engine = _engine(_meeting_wire())

        engine.handle_message(_message(
            "SCHEDULE",
            data=_meeting_wire(status="ACCEPTED", startTime="2025-03-10T09:00:00"),
        ))

        meeting = engine.collection.get(5)
        assert meeting.status == MeetingStatus.ACCEPTED
        assert meeting.start_time == "2025-03-10T09:00:00"

    def test_update_leaving_only_organizer_removes(self):
        engine = _engine(_meeting_wire())

        engine.handle_message(_message("UPDATE", data=_meeting_wire(participants=[{"userId": 1}])))

        assert 5 not in engine.collection

    def test_void_create_is_ignored(self):
        engine = _engine()

        engine.handle_message(_message("CREATE", data=_meeting_wire(participants=[{"userId": 1}])))

        assert len(engine.collection) == 0

    def test_delete_removes_and_releases_guard(self):
        engine = _engine(_meeting_wire())
        engine.delete_guard.acquire(5)

        engine.handle_message(_message("DELETE"))

        assert 5 not in engine.collection
        assert 5 not in engine.delete_guard

    def test_delete_unknown_is_noop(self):
        engine = _engine(_meeting_wire())

        assert engine.handle_message(_message("DELETE", meeting_id=99)) is True
        assert engine.collection.ids() == [5]

    def test_accepts_bytes_and_dicts(self):
        engine = _engine()

        engine.handle_message(_message("CREATE", data=_meeting_wire()).encode())
        engine.handle_message({"action": "CREATE", "meetingId": 6, "data": _meeting_wire(6)})

        assert engine.collection.ids() == [5, 6]


class TestMalformedMessages:
    """Malformed messages are dropped and the collection is untouched."""

    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps(["CREATE"]),
        json.dumps({"action": "RENAME", "meetingId": 5, "data": {}}),
        json.dumps({"action": "CREATE", "data": {}}),
        _message("CREATE", data=None),
        _message("CREATE", meeting_id=6, data=_meeting_wire(5)),
        _message("UPDATE", data={"participants": [{"userId": 2}, {"userId": 2}]}),
        _message("UPDATE", data={"status": "ACCEPTED"}),
    ])
    def test_dropped(self, raw):
        engine = _engine(_meeting_wire())
        before = [m.to_wire() for m in engine.collection]

        assert engine.handle_message(raw) is False
        assert engine.dropped == 1
        assert [m.to_wire() for m in engine.collection] == before


class TestRunLoop:
    """Test the queue consumer."""

    @pytest.mark.asyncio
    async def test_consumes_until_stop(self):
        engine = _engine()
        queue = asyncio.Queue()
        await queue.put(_message("CREATE", data=_meeting_wire(5)))
        await queue.put("garbage")
        await queue.put(_message("CREATE", meeting_id=6, data=_meeting_wire(6)))
        await queue.put(_message("DELETE", meeting_id=5))
        await queue.put(STOP)

        await asyncio.wait_for(engine.run(queue), timeout=1)

        assert engine.collection.ids() == [6]
        assert engine.applied == 3
        assert engine.dropped == 1
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_join_returns_after_processing(self):
        engine = _engine()
        queue = asyncio.Queue()
        task = asyncio.create_task(engine.run(queue))

        await queue.put(_message("CREATE", data=_meeting_wire()))
        await asyncio.wait_for(queue.join(), timeout=1)
        assert 5 in engine.collection

        await queue.put(STOP)
        await asyncio.wait_for(task, timeout=1)
