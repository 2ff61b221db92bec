"""Venue model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Integer, JSON, Uuid
from sqlalchemy.orm import relationship

from app.database import Base


class Venue(Base):
    """A single hospitality location"""
    __tablename__ = "venues"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    timezone = Column(String(50), default="America/New_York")
    is_active = Column(Boolean, default=True)

    # Operating hours (JSON: {"monday": {"open": "11:00", "close": "23:00"}, ...})
    hours_json = Column(JSON, default=dict)

    # Declared total covers, used only when no tables are registered
    seating_capacity = Column(Integer)

    # Per-venue overrides of the engine defaults (cutoff_minutes, target_windows, ...)
    policies_json = Column(JSON, default=dict)

    # Optimistic concurrency token for shared-capacity commits
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    resources = relationship("Resource", back_populates="venue")
    staff = relationship("StaffMembership", back_populates="venue")
