"""User and staff membership models"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from app.database import Base


class UserRole(str, enum.Enum):
    """User roles for RBAC"""
    SUPER_ADMIN = "super_admin"
    VENUE_ADMIN = "venue_admin"
    STAFF = "staff"
    DINER = "diner"


class User(Base):
    """Diners and staff, as known to the identity provider"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    email = Column(String(255), unique=True, nullable=False)

    # Profile
    full_name = Column(String(255))
    phone = Column(String(20))

    # Role
    role = Column(Enum(UserRole), default=UserRole.DINER)

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    memberships = relationship("StaffMembership", back_populates="user")

    def has_permission(self, required_role: UserRole) -> bool:
        """Check if user has at least the required role level"""
        role_hierarchy = {
            UserRole.DINER: 0,
            UserRole.STAFF: 1,
            UserRole.VENUE_ADMIN: 2,
            UserRole.SUPER_ADMIN: 3,
        }
        return role_hierarchy.get(self.role, 0) >= role_hierarchy.get(required_role, 0)


class StaffMembership(Base):
    """Reverse index from user to the venues they work at"""
    __tablename__ = "staff_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "venue_id", name="uq_staff_membership"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=False, index=True)
    role = Column(String(50), nullable=False)  # manager, host, attendant
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="memberships")
    venue = relationship("Venue", back_populates="staff")
