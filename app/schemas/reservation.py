"""Reservation schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from app.models.reservation import ReservationStatus, SessionState, SourceSystem
from app.models.resource import ResourceKind


class ReservationCreate(BaseModel):
    """Create reservation request"""
    venue_id: UUID
    kind: ResourceKind = ResourceKind.TABLE
    resource_id: Optional[UUID] = None
    start: datetime
    duration_minutes: Optional[int] = None
    party_size: int
    source_system: SourceSystem = SourceSystem.LINEUP
    external_id: Optional[str] = None
    owner_id: Optional[str] = None  # staff booking on behalf of a diner
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None


class ReservationCancel(BaseModel):
    """Cancel reservation request"""
    reason: Optional[str] = None


class ReservationReschedule(BaseModel):
    """Move a reservation or change its party size"""
    start: Optional[datetime] = None
    party_size: Optional[int] = None


class ReservationResponse(BaseModel):
    """Reservation response"""
    id: UUID
    venue_id: UUID
    resource_id: Optional[UUID]
    resource_kind: ResourceKind
    start_at: datetime
    end_at: datetime
    party_size: int
    status: ReservationStatus
    source_system: SourceSystem
    source_external_id: Optional[str]
    owner_id: Optional[str]
    guest_name: Optional[str]
    guest_phone: Optional[str]
    notes: Optional[str]
    session_state: Optional[SessionState]
    warning_sent_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancelled_by: Optional[str]
    cancellation_reason: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReservationListResponse(BaseModel):
    """Reservation list"""
    items: List[ReservationResponse]
    total: int
