"""Audit log model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Uuid

from app.database import Base


class AuditLog(Base):
    """Append-only trail of ledger transitions"""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    venue_id = Column(Uuid, ForeignKey("venues.id"), index=True)

    # Actor information
    actor_id = Column(String(64))  # user id, or null for system
    actor_type = Column(String(50))  # user, staff, system, external

    # Action details
    action = Column(String(100), nullable=False)  # reservation.confirmed, session.warning, ...
    resource_type = Column(String(50))  # reservation, resource, extension_request
    resource_id = Column(Uuid, index=True)

    # Change data
    data_json = Column(JSON)  # {"before": ..., "after": ...}

    created_at = Column(DateTime, default=datetime.utcnow)
