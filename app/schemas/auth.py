"""Authentication schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel

from app.models.user import UserRole


class TokenPayload(BaseModel):
    """JWT token payload issued by the identity provider"""
    sub: str  # User ID
    role: Optional[str] = None
    exp: datetime


class UserResponse(BaseModel):
    """User response"""
    id: UUID
    email: str
    full_name: Optional[str]
    phone: Optional[str]
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ActorResponse(BaseModel):
    """Resolved identity of the caller"""
    user_id: str
    is_super_admin: bool
    staff_venue_ids: List[UUID] = []
