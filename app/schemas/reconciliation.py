"""Reconciliation schemas"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID
from pydantic import BaseModel

from app.services.reconciliation import DivergenceType


class ReconcileRequest(BaseModel):
    """External book snapshot for a window"""
    window_start: datetime
    window_end: datetime
    reservations: List[Dict[str, Any]] = []


class DivergenceResponse(BaseModel):
    type: DivergenceType
    external_id: str
    reservation_id: Optional[UUID] = None
    detail: str = ""

    class Config:
        from_attributes = True


class ReconciliationReportResponse(BaseModel):
    """Reconciliation report"""
    venue_id: UUID
    window_start: datetime
    window_end: datetime
    source_count: int
    ledger_count: int
    created: List[UUID]
    updated: List[UUID]
    cancelled: List[UUID]
    divergences: List[DivergenceResponse]

    class Config:
        from_attributes = True


class WebhookAck(BaseModel):
    """Webhook processing result"""
    success: bool
    reservation_id: Optional[UUID] = None
