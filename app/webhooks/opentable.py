"""OpenTable webhook handlers"""

import hashlib
import hmac
import json
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
import structlog

from app.api.deps import get_reconciler
from app.config import settings
from app.errors import InvalidRequest
from app.schemas.reconciliation import WebhookAck
from app.services.reconciliation import ExternalReservation, ReservationReconciler

router = APIRouter()
logger = structlog.get_logger()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an HMAC-SHA256 hex digest of the raw request body"""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(expected, signature)


@router.post("/opentable/{venue_id}", response_model=WebhookAck)
async def handle_opentable_webhook(
    venue_id: UUID,
    request: Request,
    x_opentable_signature: Optional[str] = Header(default=None),
    reconciler: ReservationReconciler = Depends(get_reconciler),
):
    """
    Handle a reservation event pushed by OpenTable.
    Creates, updates or cancels the matching ledger row.
    """
    body = await request.body()
    if settings.opentable_webhook_secret and not verify_signature(
        body, x_opentable_signature, settings.opentable_webhook_secret
    ):
        logger.warning("Rejected OpenTable webhook with bad signature", venue_id=str(venue_id))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise InvalidRequest("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise InvalidRequest("Webhook body must be a JSON object")

    external = ExternalReservation.from_payload(payload)
    logger.info(
        "OpenTable webhook received",
        venue_id=str(venue_id),
        external_id=external.external_id,
        event_type=payload.get("eventType"),
        status=external.status.value,
    )

    reservation = await reconciler.ingest(venue_id, external)
    return WebhookAck(success=True, reservation_id=reservation.id if reservation else None)
