"""
In-memory implementation of the meetings REST contract.

Used by the test-suite (through ``httpx.ASGITransport``) and for local
development. It never computes availability: summaries are set per meeting
with ``MockBackendState.set_availability``. Every change is fanned out as a
push event to the per-user queues returned by ``MockBackendState.channel``.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request, Response
from pydantic import ValidationError

from meetsync.core.models import (
    AvailabilitySummary,
    CreateMeetingRequest,
    Meeting,
    MeetingStatus,
    ParticipantResponse,
    PushAction,
    PushEvent,
    RespondRequest,
    ResponseStatus,
    ScheduleRequest,
    User,
)

logger = logging.getLogger(__name__)


class MockBackendState:
    """Users, tokens, meetings and push channels held by the mock backend."""

    def __init__(self) -> None:
        self.users: Dict[int, User] = {}
        self.tokens: Dict[str, int] = {}
        self.meetings: Dict[int, Meeting] = {}
        self.availability: Dict[int, AvailabilitySummary] = {}
        self.channels: Dict[int, "asyncio.Queue[str]"] = {}
        self.delete_calls: Dict[int, int] = {}
        self._next_user_id = 1
        self._next_meeting_id = 1
        self._next_participant_id = 1

    def add_user(self, username: str, token: Optional[str] = None) -> User:
        user = User(id=self._next_user_id, username=username)
        self._next_user_id += 1
        self.users[user.id] = user
        self.tokens[token or f"token-{username}"] = user.id
        return user

    def set_availability(self, meeting_id: int, summary: AvailabilitySummary) -> None:
        self.availability[meeting_id] = summary

    def channel(self, user_id: int) -> "asyncio.Queue[str]":
        if user_id not in self.channels:
            self.channels[user_id] = asyncio.Queue()
        return self.channels[user_id]

    def user_for_token(self, token: str) -> Optional[User]:
        user_id = self.tokens.get(token)
        return self.users.get(user_id) if user_id is not None else None

    def next_meeting_id(self) -> int:
        meeting_id = self._next_meeting_id
        self._next_meeting_id += 1
        return meeting_id

    def next_participant_id(self) -> int:
        participant_id = self._next_participant_id
        self._next_participant_id += 1
        return participant_id

    def publish(self, meeting: Meeting, action: PushAction, data: Optional[Meeting]) -> None:
        event = PushEvent(
            action=action,
            meeting_id=meeting.id,
            data=data.to_wire() if data is not None else None,
        )
        message = json.dumps(event.to_wire())
        recipients = {meeting.author_id, *(p.user_id for p in meeting.participants)}
        for user_id in sorted(recipients):
            self.channel(user_id).put_nowait(message)


def _state(request: Request) -> MockBackendState:
    return request.app.state.backend


def current_user(request: Request) -> User:
    header = request.headers.get("authorization", "")
    if not header.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user = _state(request).user_for_token(header[7:].strip())
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def _meeting_or_404(state: MockBackendState, meeting_id: int) -> Meeting:
    meeting = state.meetings.get(meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


def _organizer_only(meeting: Meeting, user: User) -> None:
    if meeting.author_id != user.id:
        raise HTTPException(status_code=403, detail="Access to the meeting is forbidden")


def _validated(model, payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid request: {e.errors()[0]['msg']}")


router = APIRouter(prefix="/secured")


@router.get("/checkToken")
async def check_token(user: User = Depends(current_user)):
    return {"valid": True, "userId": user.id}


@router.get("/user")
async def get_current_user(user: User = Depends(current_user)):
    return user.to_wire()


@router.get("/users/meetings")
async def list_user_meetings(request: Request, user: User = Depends(current_user)):
    state = _state(request)
    mine: List[Dict[str, Any]] = [
        meeting.to_wire()
        for meeting in state.meetings.values()
        if meeting.author_id == user.id or meeting.participant(user.id) is not None
    ]
    return {"eventDtoList": mine}


@router.get("/users/{user_id}")
async def get_user(user_id: int, request: Request, user: User = Depends(current_user)):
    found = _state(request).users.get(user_id)
    if found is None:
        raise HTTPException(status_code=404, detail=f"User with id {user_id} not found")
    return found.to_wire()


@router.get("/users")
async def find_user(username: str, request: Request, user: User = Depends(current_user)):
    for candidate in _state(request).users.values():
        if candidate.username == username:
            return candidate.to_wire()
    raise HTTPException(status_code=404, detail="User with this name not found")


@router.post("/meetings")
async def create_meeting(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(current_user),
):
    state = _state(request)
    body = _validated(CreateMeetingRequest, payload)
    meeting_id = state.next_meeting_id()

    participants: List[ParticipantResponse] = []
    for invitee_id in dict.fromkeys(body.participants):
        if invitee_id == user.id:
            continue
        invitee = state.users.get(invitee_id)
        if invitee is None:
            raise HTTPException(status_code=404, detail=f"User with id {invitee_id} not found")
        participants.append(ParticipantResponse(
            id=state.next_participant_id(),
            event_id=meeting_id,
            user_id=invitee.id,
            user=invitee,
        ))

    meeting = Meeting(
        id=meeting_id,
        title=body.title,
        description=body.description,
        author_id=user.id,
        possible_days=body.possible_days,
        participants=participants,
        is_personal=not participants,
        duration=body.duration,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    state.meetings[meeting_id] = meeting
    state.publish(meeting, PushAction.CREATE, meeting)
    logger.info(f"Mock backend created meeting {meeting_id} with {len(participants)} invitee(s)")
    return meeting.to_wire()


@router.post("/meetings/{meeting_id}/selectDays")
async def respond_to_meeting(
    meeting_id: int,
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(current_user),
):
    state = _state(request)
    meeting = _meeting_or_404(state, meeting_id)
    participant = meeting.participant(user.id)
    if participant is None:
        raise HTTPException(status_code=403, detail="User is not a participant of the meeting")
    body = _validated(RespondRequest, payload)

    if meeting.status != MeetingStatus.PENDING or participant.status != ResponseStatus.PENDING:
        raise HTTPException(status_code=409, detail="Response is no longer possible")

    selected: List[str] = []
    if body.status == ResponseStatus.ACCEPTED:
        for day in body.selected_days:
            if day not in meeting.possible_days:
                raise HTTPException(status_code=400, detail=f"Selected date {day} is not one of the meeting days")
        selected = list(body.selected_days)

    participants = [
        p.model_copy(update={"status": body.status, "selected_days": selected}) if p.user_id == user.id else p
        for p in meeting.participants
    ]
    updated = meeting.model_copy(update={"participants": participants})
    state.meetings[meeting_id] = updated
    state.publish(updated, PushAction.UPDATE, updated)
    return Response(status_code=200)


@router.get("/meetings/{meeting_id}/availability")
async def get_availability(meeting_id: int, request: Request, user: User = Depends(current_user)):
    state = _state(request)
    meeting = _meeting_or_404(state, meeting_id)
    _organizer_only(meeting, user)
    summary = state.availability.get(meeting_id)
    if summary is None:
        summary = AvailabilitySummary(meeting_id=meeting_id, have_pending=meeting.has_pending)
    return summary.to_wire()


@router.put("/meetings/{meeting_id}/schedule")
async def schedule_meeting(
    meeting_id: int,
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(current_user),
):
    state = _state(request)
    meeting = _meeting_or_404(state, meeting_id)
    _organizer_only(meeting, user)
    body = _validated(ScheduleRequest, payload)

    if meeting.status != MeetingStatus.PENDING:
        raise HTTPException(status_code=409, detail="Meeting is already scheduled")
    try:
        scheduled_day = datetime.fromisoformat(body.start_time).date().isoformat()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid start time {body.start_time}")
    if scheduled_day not in meeting.possible_days:
        raise HTTPException(status_code=400, detail=f"Selected date {scheduled_day} is not one of the meeting days")

    updated = meeting.model_copy(update={"status": MeetingStatus.ACCEPTED, "start_time": body.start_time})
    state.meetings[meeting_id] = updated
    state.publish(updated, PushAction.SCHEDULE, updated)
    return updated.to_wire()


@router.delete("/meetings/{meeting_id}")
async def delete_meeting(meeting_id: int, request: Request, user: User = Depends(current_user)):
    state = _state(request)
    state.delete_calls[meeting_id] = state.delete_calls.get(meeting_id, 0) + 1
    meeting = _meeting_or_404(state, meeting_id)
    _organizer_only(meeting, user)
    del state.meetings[meeting_id]
    state.availability.pop(meeting_id, None)
    state.publish(meeting, PushAction.DELETE, None)
    return Response(status_code=200)


def create_mock_backend(state: Optional[MockBackendState] = None) -> FastAPI:
    """Build the mock backend app around ``state`` (a fresh one by default)."""
    app = FastAPI(title="meetsync mock backend")
    app.state.backend = state or MockBackendState()
    app.include_router(router)
    return app
