"""
Legal transitions for meetings and participant responses.

Meeting:      PENDING -> ACCEPTED (confirmation) | deleted. Nothing leaves ACCEPTED.
Participant:  PENDING -> ACCEPTED | DECLINED | INABILITY. Terminal for the round.

The ``check_*`` functions raise before any request is sent; the ``*_patch``
functions build the fields a successful request is expected to change, ready
to be merged into the local collection.
"""

from datetime import datetime
from typing import Any, Dict

from meetsync.core.errors import (
    InvalidTransitionError,
    MeetingValidationError,
    NotAuthorizedError,
)
from meetsync.core.models import (
    Meeting,
    MeetingStatus,
    RespondRequest,
    ResponseStatus,
    ScheduleRequest,
)


def _require_pending(meeting: Meeting) -> None:
    if meeting.status != MeetingStatus.PENDING:
        raise InvalidTransitionError(f"Meeting {meeting.id} is already {meeting.status.value}")


def _require_organizer(meeting: Meeting, user_id: int, action: str) -> None:
    if not meeting.is_organizer(user_id):
        raise NotAuthorizedError(f"Only the organizer can {action} meeting {meeting.id}")


def check_response(meeting: Meeting, user_id: int, request: RespondRequest) -> None:
    """Validate a participant's answer to a pending meeting."""
    participant = meeting.participant(user_id)
    if participant is None:
        raise NotAuthorizedError(f"User {user_id} is not a participant of meeting {meeting.id}")

    _require_pending(meeting)

    if participant.status != ResponseStatus.PENDING:
        raise InvalidTransitionError(
            f"User {user_id} already responded to meeting {meeting.id} ({participant.status.value})"
        )

    if request.status == ResponseStatus.ACCEPTED:
        if not request.selected_days and not meeting.is_personal:
            raise MeetingValidationError("Select at least one workable day")
        outside = [day for day in request.selected_days if day not in meeting.possible_days]
        if outside:
            raise MeetingValidationError(
                f"Selected day {outside[0]} is not one of the meeting's possible days"
            )


def check_can_confirm(meeting: Meeting, user_id: int) -> None:
    _require_organizer(meeting, user_id, "confirm")
    _require_pending(meeting)


def check_confirmation(meeting: Meeting, user_id: int, request: ScheduleRequest) -> None:
    """Validate the organizer's choice of a start time."""
    check_can_confirm(meeting, user_id)

    if not request.start_time:
        raise MeetingValidationError("Select a slot")

    try:
        chosen_day = datetime.fromisoformat(request.start_time).date().isoformat()
    except ValueError:
        raise MeetingValidationError(f"Invalid start time: {request.start_time}")

    if meeting.possible_days and chosen_day not in meeting.possible_days:
        raise MeetingValidationError(
            f"Chosen date {chosen_day} is not one of the meeting's possible days"
        )


def check_removal(meeting: Meeting, user_id: int) -> None:
    _require_organizer(meeting, user_id, "delete")
    _require_pending(meeting)


def response_patch(meeting: Meeting, user_id: int, request: RespondRequest) -> Dict[str, Any]:
    participants = []
    for response in meeting.participants:
        if response.user_id == user_id:
            days = list(request.selected_days) if request.status == ResponseStatus.ACCEPTED else []
            response = response.model_copy(update={"status": request.status, "selected_days": days})
        participants.append(response.to_wire())
    return {"participants": participants}


def schedule_patch(request: ScheduleRequest) -> Dict[str, Any]:
    return {"status": MeetingStatus.ACCEPTED.value, "startTime": request.start_time}
