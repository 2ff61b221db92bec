"""Extension request model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Enum, Uuid
from sqlalchemy.orm import relationship
import enum

from app.database import Base


class ExtensionStatus(str, enum.Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class ExtensionRequest(Base):
    """Owner request for more time on a session resource"""
    __tablename__ = "extension_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id = Column(Uuid, ForeignKey("reservations.id"), nullable=False, index=True)

    minutes = Column(Integer, nullable=False)
    requested_by = Column(String(64), nullable=False)
    status = Column(Enum(ExtensionStatus), nullable=False, default=ExtensionStatus.REQUESTED)

    decided_by = Column(String(64))  # user id, or "system"
    decision_reason = Column(Text)

    created_at = Column(DateTime, nullable=False)
    decided_at = Column(DateTime)

    # Relationships
    reservation = relationship("Reservation", back_populates="extension_requests")
