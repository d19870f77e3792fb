import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every shape exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ResponseStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    INABILITY = "INABILITY"


class MeetingStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"


class PushAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SCHEDULE = "SCHEDULE"
    DELETE = "DELETE"


class User(WireModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str


class ParticipantResponse(WireModel):
    id: Optional[int] = None
    event_id: Optional[int] = None
    user_id: int
    user: Optional[User] = None
    status: ResponseStatus = ResponseStatus.PENDING
    selected_days: List[str] = []

    @model_validator(mode="before")
    @classmethod
    def _user_id_from_user(cls, data: Any) -> Any:
        if isinstance(data, dict) and "userId" not in data and "user_id" not in data:
            user = data.get("user")
            if isinstance(user, dict) and "id" in user:
                data = {**data, "userId": user["id"]}
        return data

    @field_validator("selected_days", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Meeting(WireModel):
    id: int
    title: str
    description: str = ""
    author_id: int
    possible_days: List[str] = []
    participants: List[ParticipantResponse] = []
    is_personal: bool = False
    start_time: Optional[str] = None
    duration: int = Field(default=60, gt=0, le=540)
    status: MeetingStatus = MeetingStatus.PENDING
    created_at: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _description_none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("possible_days", "participants", mode="before")
    @classmethod
    def _list_none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _check_invariants(self) -> "Meeting":
        user_ids = [p.user_id for p in self.participants]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError(f"meeting {self.id} has more than one response per participant")
        if (self.status == MeetingStatus.ACCEPTED) != bool(self.start_time):
            raise ValueError(f"meeting {self.id}: startTime must be set exactly when status is ACCEPTED")
        if self.is_personal and len(self.participants) > 1:
            raise ValueError(f"personal meeting {self.id} cannot have more than one participant")
        return self

    def participant(self, user_id: int) -> Optional[ParticipantResponse]:
        for response in self.participants:
            if response.user_id == user_id:
                return response
        return None

    def is_organizer(self, user_id: int) -> bool:
        return self.author_id == user_id

    @property
    def treated_as_personal(self) -> bool:
        """Personal for scheduling decisions: flagged so, or nobody else was invited."""
        return self.is_personal or len(self.participants) <= 1

    @property
    def is_void(self) -> bool:
        """A group meeting whose participants collapsed to the organizer alone."""
        return (
            not self.is_personal
            and len(self.participants) == 1
            and self.participants[0].user_id == self.author_id
        )

    @property
    def has_pending(self) -> bool:
        return any(p.status == ResponseStatus.PENDING for p in self.participants)


class AvailabilityInterval(WireModel):
    date: datetime.date
    start: datetime.time
    end: datetime.time


class AvailabilitySummary(WireModel):
    meeting_id: Optional[int] = None
    max_count: int = Field(default=0, ge=0)
    possible_intervals: List[AvailabilityInterval] = []
    have_pending: bool = False

    @field_validator("possible_intervals", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Slot(WireModel):
    id: str  # ISO local date-time, the payload for scheduling
    date_label: str
    time_label: str


class PushEvent(WireModel):
    action: PushAction
    meeting_id: int
    data: Optional[Dict[str, Any]] = None


class UserMeetingsResponse(WireModel):
    event_dto_list: List[Meeting] = []


def _check_iso_days(days: List[str]) -> List[str]:
    for day in days:
        datetime.date.fromisoformat(day)
    return days


class CreateMeetingRequest(WireModel):
    title: str = Field(min_length=1)
    description: str = ""
    possible_days: List[str] = Field(min_length=1)
    participants: List[int] = []
    duration: int = Field(default=60, gt=0, le=540)

    @field_validator("possible_days")
    @classmethod
    def _days_are_dates(cls, value: List[str]) -> List[str]:
        return _check_iso_days(value)


class RespondRequest(WireModel):
    status: ResponseStatus
    selected_days: List[str] = []

    @field_validator("status")
    @classmethod
    def _answerable(cls, value: ResponseStatus) -> ResponseStatus:
        if value not in (ResponseStatus.ACCEPTED, ResponseStatus.DECLINED):
            raise ValueError("response status must be ACCEPTED or DECLINED")
        return value

    @field_validator("selected_days")
    @classmethod
    def _days_are_dates(cls, value: List[str]) -> List[str]:
        return _check_iso_days(value)


class ScheduleRequest(WireModel):
    start_time: str
