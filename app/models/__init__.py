"""Database models"""

from app.models.venue import Venue
from app.models.resource import Resource, ResourceKind, ResourceStatus
from app.models.reservation import (
    Reservation,
    ReservationStatus,
    SourceSystem,
    SessionState,
    TERMINAL_STATUSES,
    COMMITTED_STATUSES,
)
from app.models.extension import ExtensionRequest, ExtensionStatus
from app.models.audit import AuditLog
from app.models.user import User, UserRole, StaffMembership

__all__ = [
    "Venue",
    "Resource",
    "ResourceKind",
    "ResourceStatus",
    "Reservation",
    "ReservationStatus",
    "SourceSystem",
    "SessionState",
    "TERMINAL_STATUSES",
    "COMMITTED_STATUSES",
    "ExtensionRequest",
    "ExtensionStatus",
    "AuditLog",
    "User",
    "UserRole",
    "StaffMembership",
]
