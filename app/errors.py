"""
Domain error taxonomy for the reservation engine.

Services raise these; the API layer renders them through a single exception
handler so routes stay thin. Each error carries a stable ``kind`` string and the
HTTP status it maps to.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

# HTTP status codes for error categories
STATUS_BAD_REQUEST = 400
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409


class LineupError(Exception):
    """Base class for all reservation engine errors"""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "detail": self.message}
        for key, value in self.extra.items():
            payload[key] = value.isoformat() if isinstance(value, date) else value
        return payload


class InvalidRequest(LineupError):
    """Malformed input: bad party size, unaligned start, unknown increment"""

    kind = "invalid_request"
    status_code = STATUS_BAD_REQUEST


class NotFound(LineupError):
    kind = "not_found"
    status_code = STATUS_NOT_FOUND


class SlotUnavailable(LineupError):
    """Capacity or exclusivity conflict at commit time.

    Callers should re-query availability and pick another slot rather than
    retrying the same request.
    """

    kind = "slot_unavailable"
    status_code = STATUS_CONFLICT


class CutoffExceeded(LineupError):
    """Modification attempted inside the venue's cutoff window"""

    kind = "cutoff_exceeded"
    status_code = STATUS_CONFLICT

    def __init__(self, message: str, deadline: Optional[datetime] = None, **extra: Any):
        super().__init__(message, deadline=deadline, **extra)
        self.deadline = deadline


class InvalidTransition(LineupError):
    kind = "invalid_transition"
    status_code = STATUS_CONFLICT


class InvalidState(LineupError):
    kind = "invalid_state"
    status_code = STATUS_CONFLICT


class AlreadyTerminal(InvalidTransition):
    """Reservation is already COMPLETED, CANCELLED or NO_SHOW"""

    kind = "already_terminal"


class Unauthorized(LineupError):
    kind = "unauthorized"
    status_code = STATUS_FORBIDDEN


async def lineup_error_handler(request: Request, exc: LineupError) -> JSONResponse:
    """Render a domain error as JSON with its mapped status code"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
