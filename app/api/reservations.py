"""Reservation API endpoints"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.auth import get_current_actor
from app.api.deps import get_ledger, get_scheduler
from app.errors import Unauthorized
from app.models.reservation import SourceSystem
from app.schemas.extension import (
    ExtensionCreate,
    ExtensionDecision,
    ExtensionRequestResponse,
    ExtensionResponse,
)
from app.schemas.reservation import (
    ReservationCancel,
    ReservationCreate,
    ReservationReschedule,
    ReservationResponse,
)
from app.services.actors import Actor
from app.services.ledger import ReservationLedger, ResourceRequest
from app.services.scheduler import ExpirationScheduler, ExtensionOutcome

router = APIRouter()


def _extension_response(outcome: ExtensionOutcome) -> ExtensionResponse:
    return ExtensionResponse(
        request=ExtensionRequestResponse.model_validate(outcome.request),
        reservation=ReservationResponse.model_validate(outcome.reservation),
    )


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation_data: ReservationCreate,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Book a table, lane or gaming block"""
    on_behalf = reservation_data.owner_id is not None and reservation_data.owner_id != actor.user_id
    if (on_behalf or reservation_data.source_system != SourceSystem.LINEUP) and not actor.can_override(
        reservation_data.venue_id
    ):
        raise Unauthorized("Only venue staff may book for other guests or channels")

    return await ledger.create(
        reservation_data.venue_id,
        ResourceRequest(kind=reservation_data.kind, resource_id=reservation_data.resource_id),
        reservation_data.start,
        reservation_data.duration_minutes,
        reservation_data.party_size,
        reservation_data.owner_id or actor.user_id,
        reservation_data.source_system,
        guest_name=reservation_data.guest_name,
        guest_phone=reservation_data.guest_phone,
        notes=reservation_data.notes,
        external_id=reservation_data.external_id,
        actor=actor,
    )


@router.get("/me/active", response_model=List[ReservationResponse])
async def list_my_active_reservations(
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Upcoming and in-progress reservations, soonest first"""
    return await ledger.list_active(actor.user_id)


@router.get("/me/past", response_model=List[ReservationResponse])
async def list_my_past_reservations(
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Past reservations, newest first"""
    return await ledger.list_past(actor.user_id, limit)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Get reservation details"""
    reservation = await ledger.get(reservation_id)
    if reservation.owner_id != actor.user_id and not actor.can_override(reservation.venue_id):
        raise Unauthorized("Access denied to this reservation")
    return reservation


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: UUID,
    cancel_data: Optional[ReservationCancel] = None,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Cancel a reservation"""
    reason = cancel_data.reason if cancel_data else None
    return await ledger.cancel(reservation_id, actor, reason)


@router.post("/{reservation_id}/reschedule", response_model=ReservationResponse)
async def reschedule_reservation(
    reservation_id: UUID,
    reschedule_data: ReservationReschedule,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Move a reservation or change its party size"""
    return await ledger.reschedule(
        reservation_id,
        actor,
        start=reschedule_data.start,
        party_size=reschedule_data.party_size,
    )


@router.post("/{reservation_id}/arrive", response_model=ReservationResponse)
async def mark_arrived(
    reservation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Mark guests as arrived (staff only)"""
    return await ledger.mark_arrived(reservation_id, actor)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
async def mark_completed(
    reservation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Mark reservation as completed (staff only)"""
    return await ledger.mark_completed(reservation_id, actor)


@router.post("/{reservation_id}/no-show", response_model=ReservationResponse)
async def mark_no_show(
    reservation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Mark reservation as a no-show (staff only)"""
    return await ledger.mark_no_show(reservation_id, actor)


@router.post("/{reservation_id}/extend", response_model=ExtensionResponse)
async def request_extension(
    reservation_id: UUID,
    extension_data: ExtensionCreate,
    actor: Actor = Depends(get_current_actor),
    scheduler: ExpirationScheduler = Depends(get_scheduler),
):
    """Ask for more time on a lane or gaming block that is about to end"""
    outcome = await scheduler.request_extension(reservation_id, actor, extension_data.minutes)
    return _extension_response(outcome)


@router.post("/{reservation_id}/extensions/{request_id}/approve", response_model=ExtensionResponse)
async def approve_extension(
    reservation_id: UUID,
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    scheduler: ExpirationScheduler = Depends(get_scheduler),
):
    """Approve a pending extension (staff only)"""
    outcome = await scheduler.approve_extension(request_id, actor, reservation_id=reservation_id)
    return _extension_response(outcome)


@router.post("/{reservation_id}/extensions/{request_id}/deny", response_model=ExtensionResponse)
async def deny_extension(
    reservation_id: UUID,
    request_id: UUID,
    decision: Optional[ExtensionDecision] = None,
    actor: Actor = Depends(get_current_actor),
    scheduler: ExpirationScheduler = Depends(get_scheduler),
):
    """Deny a pending extension (staff only)"""
    outcome = await scheduler.deny_extension(
        request_id,
        actor,
        reason=decision.reason if decision else None,
        reservation_id=reservation_id,
    )
    return _extension_response(outcome)
