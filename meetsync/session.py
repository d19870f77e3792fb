"""
Client session: the explicit context object for one authenticated identity.

It owns the local meeting collection, the delete-in-flight guard, the
reconciliation engine and the push subscription. Construct it when the
identity is known, ``open()`` it, and ``close()`` it on logout.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from meetsync.api.client import MeetingApiClient
from meetsync.core.config import AppConfig, load_config
from meetsync.core.errors import (
    InvalidTransitionError,
    MeetingValidationError,
    NotAuthenticatedError,
)
from meetsync.core.models import (
    CreateMeetingRequest,
    Meeting,
    RespondRequest,
    ScheduleRequest,
    User,
)
from meetsync.negotiation.confirmation import ConfirmationSession
from meetsync.negotiation.slots import parse_cutoff
from meetsync.negotiation.state_machine import (
    check_confirmation,
    check_removal,
    check_response,
    response_patch,
    schedule_patch,
)
from meetsync.observability.logger import init_sentry, log_error, log_event, timing
from meetsync.push.transport import PushTransport, WebSocketPushTransport
from meetsync.sync.collection import MeetingCollection
from meetsync.sync.delete_guard import DeleteInFlightGuard
from meetsync.sync.reconciler import STOP, ReconciliationEngine
from meetsync.sync.sorting import SortOption

logger = logging.getLogger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)
TransportFactory = Callable[[User], Optional[PushTransport]]


_sentry_configured = False


def _init_observability(config: AppConfig) -> None:
    """Set up Sentry once per process, from the first session's config."""
    global _sentry_configured
    if not _sentry_configured:
        init_sentry(config)
        _sentry_configured = True


def _coerce(model: Type[RequestModel], request: Union[RequestModel, Dict[str, Any]]) -> RequestModel:
    if isinstance(request, model):
        return request
    try:
        return model.model_validate(request)
    except ValidationError as e:
        raise MeetingValidationError(f"Invalid request: {e.errors()[0]['msg']}")


class MeetingSession:
    """Meetings of the signed-in user, kept current by requests and push events."""

    def __init__(
        self,
        token: str,
        config: Optional[AppConfig] = None,
        api: Optional[MeetingApiClient] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        """
        Args:
            token: Bearer credential for the REST backend and push channel
            config: Settings; loaded from the environment when omitted
            api: API client override (tests pass one bound to the mock backend)
            transport_factory: Builds the push transport once the user is known.
                Defaults to a websocket transport; return None to disable push.
        """
        self.config = config or load_config()
        _init_observability(self.config)
        self.token = token
        self.api = api or MeetingApiClient.from_config(self.config, token)
        self.cutoff = parse_cutoff(self.config.day_cutoff)
        self.collection = MeetingCollection()
        self.delete_guard = DeleteInFlightGuard()
        self.reconciler = ReconciliationEngine(self.collection, self.delete_guard)
        self.current_user: Optional[User] = None

        self._transport_factory = transport_factory or (
            lambda user: WebSocketPushTransport.from_config(self.config, self.token, user.id)
        )
        self._queue: Optional["asyncio.Queue[Any]"] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._transport: Optional[PushTransport] = None
        self._transport_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "MeetingSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def meetings(self) -> List[Meeting]:
        return self.collection.all()

    @property
    def is_subscribed(self) -> bool:
        return self._consumer_task is not None

    def require_user(self) -> User:
        if self.current_user is None:
            raise NotAuthenticatedError("Session is not open")
        return self.current_user

    def require_meeting(self, meeting_id: int) -> Meeting:
        meeting = self.collection.get(meeting_id)
        if meeting is None:
            raise InvalidTransitionError(f"Meeting {meeting_id} not found")
        return meeting

    async def open(self) -> User:
        """Resolve the identity, load its meetings, then start the push subscription."""
        if not await self.api.check_token():
            raise NotAuthenticatedError("Token is not valid")
        self.current_user = await self.api.get_current_user()
        await self.refresh_meetings()
        self.subscribe()
        log_event(action="session_opened", source="local", user_id=self.current_user.id,
                  meeting_count=len(self.collection))
        return self.current_user

    def subscribe(self) -> bool:
        """Start the push consumer. Returns False if this identity is already subscribed."""
        user = self.require_user()
        if self._consumer_task is not None:
            logger.info(f"Push subscription already active for user {user.id}")
            return False

        self._queue = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self.reconciler.run(self._queue))
        self._transport = self._transport_factory(user)
        if self._transport is not None:
            self._transport_task = asyncio.create_task(self._transport.run(self._queue))
        return True

    async def settle(self) -> None:
        """Wait until every push message queued so far has been applied."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Logout: stop push delivery and forget all identity state."""
        try:
            if self._transport is not None:
                self._transport.stop()
            if self._transport_task is not None:
                self._transport_task.cancel()
                try:
                    await self._transport_task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    log_error(e, {"action": "push_transport_failed"})
            if self._consumer_task is not None and self._queue is not None:
                await self._queue.put(STOP)
                await self._consumer_task
        finally:
            if self._consumer_task is not None and not self._consumer_task.done():
                self._consumer_task.cancel()
            self._transport = None
            self._transport_task = None
            self._consumer_task = None
            self._queue = None
            self.collection.clear()
            self.delete_guard.clear()
            self.current_user = None
            logger.info("Session closed")

    def _apply_local(self, meeting_id: int, patch: Dict[str, Any]) -> Optional[Meeting]:
        """Merge the expected result of a successful request into the collection."""
        try:
            return self.collection.merge(meeting_id, patch)
        except ValueError as e:
            log_error(e, {"action": "local_apply_failed", "meeting_id": meeting_id})
            return self.collection.get(meeting_id)

    async def refresh_meetings(self) -> List[Meeting]:
        self.require_user()
        meetings = await self.api.list_meetings()
        self.collection.replace_all(m for m in meetings if not m.is_void)
        return self.collection.all()

    async def add_meeting(self, request: Union[CreateMeetingRequest, Dict[str, Any]]) -> Meeting:
        self.require_user()
        body = _coerce(CreateMeetingRequest, request)
        if body.duration > self.config.max_duration:
            raise MeetingValidationError(f"Duration cannot exceed {self.config.max_duration} minutes")
        with timing("create_meeting") as timer:
            meeting = await self.api.create_meeting(body)
        if not meeting.is_void:
            self.collection.insert_if_absent(meeting)
        log_event(action="created", source="local", meeting_id=meeting.id, title=meeting.title,
                  duration_ms=timer.get_duration_ms())
        return meeting

    async def respond(
        self, meeting_id: int, request: Union[RespondRequest, Dict[str, Any]]
    ) -> Optional[Meeting]:
        user = self.require_user()
        body = _coerce(RespondRequest, request)
        check_response(self.require_meeting(meeting_id), user.id, body)

        await self.api.respond(meeting_id, body)

        log_event(action="responded", source="local", meeting_id=meeting_id, status=body.status.value)
        current = self.collection.get(meeting_id)
        if current is None:
            return None
        return self._apply_local(meeting_id, response_patch(current, user.id, body))

    async def confirm(
        self, meeting_id: int, request: Union[ScheduleRequest, Dict[str, Any]]
    ) -> Optional[Meeting]:
        user = self.require_user()
        body = _coerce(ScheduleRequest, request)
        check_confirmation(self.require_meeting(meeting_id), user.id, body)

        scheduled = await self.api.schedule(meeting_id, body)

        log_event(action="scheduled", source="local", meeting_id=meeting_id, start_time=body.start_time)
        patch = scheduled.to_wire() if scheduled is not None else schedule_patch(body)
        return self._apply_local(meeting_id, patch)

    async def remove(self, meeting_id: int) -> bool:
        """
        Delete a meeting as its organizer.

        Returns False without sending anything when a delete for the same id is
        already in flight. The local copy is dropped only once the backend
        confirms; a failed delete leaves it in place.
        """
        if meeting_id in self.delete_guard:
            return False
        user = self.require_user()
        check_removal(self.require_meeting(meeting_id), user.id)

        if not self.delete_guard.acquire(meeting_id):
            return False
        try:
            await self.api.delete_meeting(meeting_id)
        finally:
            self.delete_guard.release(meeting_id)

        self.collection.remove(meeting_id)
        log_event(action="deleted", source="local", meeting_id=meeting_id)
        return True

    def sort(self, option: Union[SortOption, str]) -> List[Meeting]:
        return self.collection.sort(SortOption(option))

    def begin_confirmation(self, meeting_id: int) -> ConfirmationSession:
        self.require_meeting(meeting_id)
        return ConfirmationSession(self, meeting_id)

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.api.get_user_by_id(user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return await self.api.get_user_by_username(username)
