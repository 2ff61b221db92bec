"""Bookable resource model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum, Uuid
from sqlalchemy.orm import relationship
import enum

from app.database import Base


class ResourceKind(str, enum.Enum):
    """Kinds of bookable units"""
    TABLE = "table"
    LANE = "lane"
    GAMING_BLOCK = "gaming_block"

    @property
    def is_exclusive(self) -> bool:
        """Session resources admit one reservation at a time"""
        return self is not ResourceKind.TABLE


class ResourceStatus(str, enum.Enum):
    AVAILABLE = "available"
    HELD = "held"
    OCCUPIED = "occupied"
    OUT_OF_SERVICE = "out_of_service"


class Resource(Base):
    """Dining table, bowling lane or gaming-venue time block"""
    __tablename__ = "resources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=False, index=True)

    kind = Column(Enum(ResourceKind), nullable=False)
    label = Column(String(100), nullable=False)
    number = Column(Integer)  # lane number 1..N

    # Covers for tables, members for gaming blocks; null when unknown
    capacity = Column(Integer)
    block_minutes = Column(Integer)

    status = Column(Enum(ResourceStatus), nullable=False, default=ResourceStatus.AVAILABLE)

    # Optimistic concurrency token for exclusive commits
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    venue = relationship("Venue", back_populates="resources")
