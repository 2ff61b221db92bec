"""Pydantic schemas for request/response validation"""

from app.schemas.auth import (
    TokenPayload,
    UserResponse,
    ActorResponse,
)
from app.schemas.venue import (
    VenueCreate,
    VenueResponse,
    ResourceCreate,
    ResourceStatusUpdate,
    ResourceResponse,
    StaffAssign,
    StaffMembershipResponse,
)
from app.schemas.reservation import (
    ReservationCreate,
    ReservationCancel,
    ReservationReschedule,
    ReservationResponse,
    ReservationListResponse,
)
from app.schemas.availability import (
    SlotResponse,
    AvailabilityResponse,
    SlotCheckResponse,
    AlternativesResponse,
    AvailabilityRangeResponse,
)
from app.schemas.extension import (
    ExtensionCreate,
    ExtensionDecision,
    ExtensionRequestResponse,
    ExtensionResponse,
)
from app.schemas.reconciliation import (
    ReconcileRequest,
    DivergenceResponse,
    ReconciliationReportResponse,
    WebhookAck,
)

__all__ = [
    "TokenPayload",
    "UserResponse",
    "ActorResponse",
    "VenueCreate",
    "VenueResponse",
    "ResourceCreate",
    "ResourceStatusUpdate",
    "ResourceResponse",
    "StaffAssign",
    "StaffMembershipResponse",
    "ReservationCreate",
    "ReservationCancel",
    "ReservationReschedule",
    "ReservationResponse",
    "ReservationListResponse",
    "SlotResponse",
    "AvailabilityResponse",
    "SlotCheckResponse",
    "AlternativesResponse",
    "AvailabilityRangeResponse",
    "ExtensionCreate",
    "ExtensionDecision",
    "ExtensionRequestResponse",
    "ExtensionResponse",
    "ReconcileRequest",
    "DivergenceResponse",
    "ReconciliationReportResponse",
    "WebhookAck",
]
