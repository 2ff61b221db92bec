"""Extension request schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel

from app.models.extension import ExtensionStatus
from app.schemas.reservation import ReservationResponse


class ExtensionCreate(BaseModel):
    """Request more time on a session"""
    minutes: int


class ExtensionDecision(BaseModel):
    reason: Optional[str] = None


class ExtensionRequestResponse(BaseModel):
    """Extension request response"""
    id: UUID
    reservation_id: UUID
    minutes: int
    requested_by: str
    status: ExtensionStatus
    decided_by: Optional[str]
    decision_reason: Optional[str]
    created_at: datetime
    decided_at: Optional[datetime]

    class Config:
        from_attributes = True


class ExtensionResponse(BaseModel):
    """Outcome of an extension request"""
    request: ExtensionRequestResponse
    reservation: ReservationResponse
