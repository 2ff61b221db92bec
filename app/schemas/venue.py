"""Venue, resource and staff schemas"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.resource import ResourceKind, ResourceStatus


class VenueCreate(BaseModel):
    """Create venue request"""
    name: str
    timezone: str = "America/New_York"
    hours_json: Dict[str, Any] = {}
    seating_capacity: Optional[int] = Field(default=None, gt=0)
    policies_json: Dict[str, Any] = {}


class VenueResponse(BaseModel):
    """Venue response"""
    id: UUID
    name: str
    timezone: str
    is_active: bool
    hours_json: Dict[str, Any]
    seating_capacity: Optional[int]
    policies_json: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ResourceCreate(BaseModel):
    """Add a bookable resource"""
    kind: ResourceKind
    label: str
    number: Optional[int] = None
    capacity: Optional[int] = None
    block_minutes: Optional[int] = None


class ResourceStatusUpdate(BaseModel):
    status: ResourceStatus


class ResourceResponse(BaseModel):
    """Resource response"""
    id: UUID
    venue_id: UUID
    kind: ResourceKind
    label: str
    number: Optional[int]
    capacity: Optional[int]
    block_minutes: Optional[int]
    status: ResourceStatus
    created_at: datetime

    class Config:
        from_attributes = True


class StaffAssign(BaseModel):
    user_id: UUID
    role: str = "host"


class StaffMembershipResponse(BaseModel):
    """Staff membership response"""
    id: UUID
    user_id: UUID
    venue_id: UUID
    role: str
    is_active: bool

    class Config:
        from_attributes = True
