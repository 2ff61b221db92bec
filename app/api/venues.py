"""Venue management API endpoints"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.auth import get_current_actor, get_current_active_user, require_role, verify_venue_access
from app.api.deps import get_ledger, get_reconciler, get_registry
from app.models.reservation import ReservationStatus, SourceSystem
from app.models.user import User, UserRole
from app.schemas.reconciliation import ReconcileRequest, ReconciliationReportResponse
from app.schemas.reservation import ReservationListResponse, ReservationResponse
from app.schemas.venue import (
    ResourceCreate,
    ResourceResponse,
    ResourceStatusUpdate,
    StaffAssign,
    StaffMembershipResponse,
    VenueCreate,
    VenueResponse,
)
from app.services.actors import Actor
from app.services.ledger import ReservationLedger
from app.services.reconciliation import ExternalReservation, ReservationReconciler
from app.services.registry import ResourceRegistry

router = APIRouter()


@router.post("", response_model=VenueResponse, status_code=status.HTTP_201_CREATED)
async def create_venue(
    venue_data: VenueCreate,
    current_user: User = Depends(require_role(UserRole.SUPER_ADMIN)),
    registry: ResourceRegistry = Depends(get_registry),
):
    """Create a new venue (SuperAdmin only)"""
    return await registry.create_venue(**venue_data.model_dump())


@router.get("/{venue_id}", response_model=VenueResponse)
async def get_venue(
    venue_id: UUID,
    current_user: User = Depends(get_current_active_user),
    registry: ResourceRegistry = Depends(get_registry),
):
    """Get venue details"""
    return await registry.fetch_venue(venue_id)


@router.get("/{venue_id}/resources", response_model=List[ResourceResponse])
async def list_resources(
    venue_id: UUID,
    current_user: User = Depends(get_current_active_user),
    registry: ResourceRegistry = Depends(get_registry),
):
    """List bookable resources at a venue"""
    return await registry.resources_for(venue_id)


@router.post(
    "/{venue_id}/resources",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_resource(
    venue_id: UUID,
    resource_data: ResourceCreate,
    actor: Actor = Depends(get_current_actor),
    registry: ResourceRegistry = Depends(get_registry),
):
    """Add a table, lane or gaming block"""
    await verify_venue_access(venue_id, actor)
    return await registry.add_resource(venue_id, **resource_data.model_dump())


@router.put("/{venue_id}/resources/{resource_id}/status", response_model=ResourceResponse)
async def set_resource_status(
    venue_id: UUID,
    resource_id: UUID,
    status_update: ResourceStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    registry: ResourceRegistry = Depends(get_registry),
):
    """Take a resource out of service or return it"""
    return await registry.set_resource_status(venue_id, resource_id, status_update.status, actor)


@router.post(
    "/{venue_id}/staff",
    response_model=StaffMembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_staff(
    venue_id: UUID,
    staff_data: StaffAssign,
    current_user: User = Depends(require_role(UserRole.VENUE_ADMIN)),
    actor: Actor = Depends(get_current_actor),
    registry: ResourceRegistry = Depends(get_registry),
):
    """Add a user to the venue's staff"""
    await verify_venue_access(venue_id, actor)
    return await registry.assign_staff(venue_id, staff_data.user_id, staff_data.role)


@router.get("/{venue_id}/reservations", response_model=ReservationListResponse)
async def list_venue_reservations(
    venue_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    source_system: Optional[SourceSystem] = None,
    reservation_status: Optional[ReservationStatus] = None,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """List reservations for a venue (staff only)"""
    await verify_venue_access(venue_id, actor)
    items = await ledger.list_for_venue(
        venue_id, start=start, end=end, source_system=source_system, status=reservation_status
    )
    return ReservationListResponse(
        items=[ReservationResponse.model_validate(r) for r in items],
        total=len(items),
    )


@router.post("/{venue_id}/reconcile", response_model=ReconciliationReportResponse)
async def reconcile_reservations(
    venue_id: UUID,
    request: ReconcileRequest,
    actor: Actor = Depends(get_current_actor),
    reconciler: ReservationReconciler = Depends(get_reconciler),
):
    """Reconcile the ledger against an external reservation book"""
    await verify_venue_access(venue_id, actor)
    external = [ExternalReservation.from_payload(item) for item in request.reservations]
    report = await reconciler.reconcile(venue_id, external, request.window_start, request.window_end)
    return ReconciliationReportResponse.model_validate(report)
