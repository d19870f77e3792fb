"""
Error taxonomy for meeting operations.

Every error carries an HTTP-style ``status_code`` and a human ``detail`` so
callers can surface it directly. None of them are fatal: local state is left
untouched whenever one is raised.
"""

from typing import Optional


class MeetingError(Exception):
    """Base class for all recoverable meeting errors."""

    status_code: int = 500
    default_detail: str = "Meeting operation failed"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class MeetingValidationError(MeetingError):
    """Request rejected before (or by) the backend because its payload is invalid."""

    status_code = 400
    default_detail = "Invalid request"


class NotAuthenticatedError(MeetingError):
    status_code = 401
    default_detail = "Not authenticated"


class NotAuthorizedError(MeetingError):
    """Caller acted outside its role, e.g. a non-organizer confirming."""

    status_code = 403
    default_detail = "Not authorized"


class InvalidTransitionError(MeetingError):
    """Meeting or response is already terminal, or no longer exists."""

    status_code = 409
    default_detail = "Invalid transition"


class TransportFailureError(MeetingError):
    """Network error, unexpected status or malformed body."""

    status_code = 503
    default_detail = "Transport failure"
