"""Availability API endpoints"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_engine
from app.models.resource import ResourceKind
from app.schemas.availability import (
    AlternativesResponse,
    AvailabilityRangeResponse,
    AvailabilityResponse,
    SlotCheckResponse,
    SlotResponse,
)
from app.services.availability import (
    DEFAULT_ALTERNATIVE_WINDOW_MINUTES,
    AvailabilityEngine,
    AvailabilityResult,
)

router = APIRouter()


def availability_response(
    venue_id: UUID,
    day: date,
    party_size: int,
    kind: ResourceKind,
    result: AvailabilityResult,
) -> AvailabilityResponse:
    return AvailabilityResponse(
        venue_id=venue_id,
        date=day,
        party_size=party_size,
        kind=kind,
        available=bool(result.slots),
        reason=result.reason,
        slots=[SlotResponse.model_validate(slot) for slot in result.slots],
    )


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    venue_id: UUID,
    day: date = Query(..., alias="date"),
    party_size: int = Query(...),
    kind: ResourceKind = ResourceKind.TABLE,
    engine: AvailabilityEngine = Depends(get_engine),
):
    """Bookable slots for a venue, date and party size"""
    result = await engine.compute_availability(venue_id, day, party_size, kind)
    return availability_response(venue_id, day, party_size, kind, result)


@router.get("/range", response_model=AvailabilityRangeResponse)
async def get_availability_range(
    venue_id: UUID,
    start_date: date,
    end_date: date,
    party_size: int,
    kind: ResourceKind = ResourceKind.TABLE,
    engine: AvailabilityEngine = Depends(get_engine),
):
    """Availability for each day of a date range"""
    results = await engine.availability_for_range(venue_id, start_date, end_date, party_size, kind)
    return AvailabilityRangeResponse(
        venue_id=venue_id,
        start_date=start_date,
        end_date=end_date,
        party_size=party_size,
        kind=kind,
        days=[
            availability_response(venue_id, day, party_size, kind, result)
            for day, result in results.items()
        ],
    )


@router.get("/check", response_model=SlotCheckResponse)
async def check_slot(
    venue_id: UUID,
    start: datetime,
    party_size: int,
    kind: ResourceKind = ResourceKind.TABLE,
    engine: AvailabilityEngine = Depends(get_engine),
):
    """Check a single start time"""
    check = await engine.check_slot_availability(venue_id, start, party_size, kind)
    return SlotCheckResponse(
        venue_id=venue_id,
        start=start,
        party_size=party_size,
        kind=kind,
        available=check.available,
        reason=check.reason,
        slot=SlotResponse.model_validate(check.slot) if check.slot else None,
    )


@router.get("/alternatives", response_model=AlternativesResponse)
async def get_alternatives(
    venue_id: UUID,
    start: datetime,
    party_size: int,
    kind: ResourceKind = ResourceKind.TABLE,
    window_minutes: int = DEFAULT_ALTERNATIVE_WINDOW_MINUTES,
    engine: AvailabilityEngine = Depends(get_engine),
):
    """Other bookable times near a requested start"""
    slots = await engine.alternatives_near(venue_id, start, party_size, kind, window_minutes)
    return AlternativesResponse(
        venue_id=venue_id,
        start=start,
        party_size=party_size,
        kind=kind,
        window_minutes=window_minutes,
        slots=[SlotResponse.model_validate(slot) for slot in slots],
    )
