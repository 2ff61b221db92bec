"""Availability schemas"""

from datetime import date, datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from app.models.resource import ResourceKind
from app.services.availability import AvailabilityReason, Confidence, SlotTier


class SlotResponse(BaseModel):
    """Bookable slot"""
    start: datetime
    end: datetime
    tier: SlotTier
    confidence: Confidence
    available_capacity: int

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    """Availability for a venue and date"""
    venue_id: UUID
    date: date
    party_size: int
    kind: ResourceKind
    available: bool
    reason: Optional[AvailabilityReason] = None
    slots: List[SlotResponse] = []


class SlotCheckResponse(BaseModel):
    """Single slot verdict"""
    venue_id: UUID
    start: datetime
    party_size: int
    kind: ResourceKind
    available: bool
    reason: Optional[AvailabilityReason] = None
    slot: Optional[SlotResponse] = None


class AlternativesResponse(BaseModel):
    """Bookable slots around a requested start, closest first"""
    venue_id: UUID
    start: datetime
    party_size: int
    kind: ResourceKind
    window_minutes: int
    slots: List[SlotResponse] = []


class AvailabilityRangeResponse(BaseModel):
    """Per-day availability across a date range"""
    venue_id: UUID
    start_date: date
    end_date: date
    party_size: int
    kind: ResourceKind
    days: List[AvailabilityResponse] = []
