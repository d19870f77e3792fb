"""
Async client for the meetings REST backend.

Every request carries the bearer token. Error statuses are mapped onto the
meetsync error taxonomy so callers can tell an authorization problem from an
invalid transition or a transport failure.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from meetsync.core.config import AppConfig
from meetsync.core.errors import (
    InvalidTransitionError,
    MeetingError,
    MeetingValidationError,
    NotAuthenticatedError,
    NotAuthorizedError,
    TransportFailureError,
)
from meetsync.core.models import (
    AvailabilitySummary,
    CreateMeetingRequest,
    Meeting,
    RespondRequest,
    ScheduleRequest,
    User,
    UserMeetingsResponse,
)
from meetsync.observability.logger import timing

logger = logging.getLogger(__name__)

MEETINGS_PATH = "/secured/meetings"
USERS_PATH = "/secured/users"

_STATUS_ERRORS = {
    400: MeetingValidationError,
    401: NotAuthenticatedError,
    403: NotAuthorizedError,
    404: InvalidTransitionError,
    409: InvalidTransitionError,
}


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str):
            return message
    return None


def error_for_response(response: httpx.Response) -> MeetingError:
    """Build the error matching an unsuccessful response."""
    error_cls = _STATUS_ERRORS.get(response.status_code, TransportFailureError)
    message = _error_message(response) or f"Request failed with status {response.status_code}"
    return error_cls(message, status_code=response.status_code)


class MeetingApiClient:
    """Thin async wrapper around the meetings backend."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Backend root, e.g. http://localhost:8189
            token: Bearer credential attached to every request
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.ASGITransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig, token: str, **kwargs) -> "MeetingApiClient":
        return cls(config.api_base_url, token, timeout=config.request_timeout, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                with timing(f"{method} {path}") as timer:
                    response = await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException:
            raise TransportFailureError(f"{method} {path} timed out")
        except httpx.HTTPError as e:
            raise TransportFailureError(f"{method} {path} failed: {e}")

        logger.debug(f"{method} {path} -> {response.status_code} in {timer.get_duration_ms():.1f}ms")
        return response

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return its decoded JSON body (None when empty)."""
        response = await self._send(method, path, **kwargs)

        if response.is_error:
            raise error_for_response(response)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return json.loads(response.content)
        except ValueError:
            raise TransportFailureError(f"{method} {path} returned a malformed JSON body")

    def _parse(self, model, body: Any, what: str):
        try:
            return model.model_validate(body)
        except ValidationError as e:
            raise TransportFailureError(f"Unexpected {what} payload: {e.error_count()} validation error(s)")

    async def check_token(self) -> bool:
        """Return True if the backend accepts the bearer token."""
        try:
            response = await self._send("GET", "/secured/checkToken")
        except TransportFailureError as e:
            logger.warning(f"Token check failed: {e}")
            return False
        if response.status_code == 401:
            logger.warning("Token rejected (401 Unauthorized)")
            return False
        return response.is_success

    async def get_current_user(self) -> User:
        body = await self._request("GET", "/secured/user")
        return self._parse(User, body, "user")

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        try:
            body = await self._request("GET", f"{USERS_PATH}/{user_id}")
        except InvalidTransitionError:
            return None
        return self._parse(User, body, "user")

    async def get_user_by_username(self, username: str) -> Optional[User]:
        try:
            body = await self._request("GET", USERS_PATH, params={"username": username})
        except InvalidTransitionError:
            return None
        return self._parse(User, body, "user")

    async def list_meetings(self) -> List[Meeting]:
        body = await self._request("GET", f"{USERS_PATH}/meetings")
        if not isinstance(body, dict) or not isinstance(body.get("eventDtoList"), list):
            raise TransportFailureError("Unexpected meetings payload: expected an object with eventDtoList")
        return self._parse(UserMeetingsResponse, body, "meetings").event_dto_list

    async def create_meeting(self, request: CreateMeetingRequest) -> Meeting:
        body = await self._request("POST", MEETINGS_PATH, json=request.to_wire())
        return self._parse(Meeting, body, "meeting")

    async def respond(self, meeting_id: int, request: RespondRequest) -> None:
        await self._request("POST", f"{MEETINGS_PATH}/{meeting_id}/selectDays", json=request.to_wire())

    async def get_availability(self, meeting_id: int) -> AvailabilitySummary:
        body = await self._request("GET", f"{MEETINGS_PATH}/{meeting_id}/availability")
        return self._parse(AvailabilitySummary, body, "availability")

    async def schedule(self, meeting_id: int, request: ScheduleRequest) -> Optional[Meeting]:
        body = await self._request("PUT", f"{MEETINGS_PATH}/{meeting_id}/schedule", json=request.to_wire())
        if body is None:
            return None
        return self._parse(Meeting, body, "meeting")

    async def delete_meeting(self, meeting_id: int) -> None:
        await self._request("DELETE", f"{MEETINGS_PATH}/{meeting_id}")
