"""Reservation model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Enum, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from app.database import Base
from app.models.resource import ResourceKind


class ReservationStatus(str, enum.Enum):
    """Reservation lifecycle states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
)

# Statuses that hold capacity on the ledger
COMMITTED_STATUSES = (
    ReservationStatus.CONFIRMED,
    ReservationStatus.ARRIVED,
)


class SourceSystem(str, enum.Enum):
    """Intake channel that created the reservation"""
    LINEUP = "lineup"
    PHONE = "phone"
    WALK_IN = "walk_in"
    OPENTABLE = "opentable"


class SessionState(str, enum.Enum):
    """Expiration state of a lane or gaming-block session"""
    ACTIVE = "active"
    WARNING = "warning"
    EXPIRED = "expired"


class Reservation(Base):
    """Canonical ledger entry"""
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("venue_id", "source_system", "source_external_id", name="uq_reservation_external"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=False, index=True)
    resource_id = Column(Uuid, ForeignKey("resources.id"), index=True)  # null until a table is assigned
    resource_kind = Column(Enum(ResourceKind), nullable=False)

    # Window, venue-local wall clock
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    party_size = Column(Integer, nullable=False)

    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)

    # Source tracking
    source_system = Column(Enum(SourceSystem), nullable=False, default=SourceSystem.LINEUP)
    source_external_id = Column(String(100))

    # Guest information
    owner_id = Column(String(64), index=True)
    guest_name = Column(String(255))
    guest_phone = Column(String(20))
    notes = Column(Text)

    # Session resources only
    session_state = Column(Enum(SessionState))
    warning_sent_at = Column(DateTime)

    reminder_sent_at = Column(DateTime)

    # Cancellation
    cancelled_at = Column(DateTime)
    cancelled_by = Column(String(64))
    cancellation_reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    extension_requests = relationship("ExtensionRequest", back_populates="reservation")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)
