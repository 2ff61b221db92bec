"""
Availability engine.

Computes bookable slots for a venue, date and party size by combining registry
capacity with the ledger's committed reservations. Slots are derived on every
query and never stored.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker
import structlog

from app.config import Settings, settings as default_settings
from app.errors import InvalidRequest
from app.models.reservation import Reservation
from app.models.resource import Resource, ResourceKind, ResourceStatus
from app.models.venue import Venue
from app.services.clock import (
    Clock,
    OperatingWindow,
    is_aligned,
    operating_window_for,
    overlaps,
    quantize_to_slot,
    slot_grid,
    to_venue_local,
    window_containing,
)
from app.services.ledger import ReservationLedger, peak_load
from app.services.policy import VenuePolicy
from app.services.registry import ResourceRegistry, dining_capacity, fits_party

logger = structlog.get_logger()

DEFAULT_ALTERNATIVE_WINDOW_MINUTES = 120
MAX_RANGE_DAYS = 31


class SlotTier(str, enum.Enum):
    RECOMMENDED = "recommended"
    AVAILABLE = "available"
    FLEXIBLE = "flexible"


class Confidence(str, enum.Enum):
    HIGH = "high"
    LOW = "low"


class AvailabilityReason(str, enum.Enum):
    """Why a query produced no slots"""
    CLOSED = "closed"
    PAST_DATE = "past_date"
    BEYOND_HORIZON = "beyond_horizon"
    FULLY_BOOKED = "fully_booked"
    NO_REMAINING_TIMES = "no_remaining_times"
    PARTY_TOO_LARGE = "party_too_large"


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    tier: SlotTier
    confidence: Confidence
    available_capacity: int


@dataclass
class AvailabilityResult:
    slots: List[Slot] = field(default_factory=list)
    reason: Optional[AvailabilityReason] = None


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    slot: Optional[Slot] = None
    reason: Optional[AvailabilityReason] = None


class AvailabilityEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        ledger: Optional[ReservationLedger] = None,
        settings: Settings = default_settings,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._settings = settings
        self.ledger = ledger or ReservationLedger(session_factory, clock, settings=settings)

    @property
    def registry(self) -> ResourceRegistry:
        return self.ledger.registry

    async def compute_availability(
        self,
        venue_id: UUID,
        day: date,
        party_size: int,
        kind: ResourceKind = ResourceKind.TABLE,
    ) -> AvailabilityResult:
        """Bookable slots for ``day`` in chronological order.

        An empty result always carries a reason so callers can tell a closed
        day from one that is too far out or fully booked.
        """
        if party_size is None or party_size <= 0:
            raise InvalidRequest("Party size must be positive", party_size=party_size)

        async with self._session_factory() as session:
            venue = await self.registry.get_venue(session, venue_id)
            resources = await self.registry.load_resources(session, venue_id, kind=kind, in_service_only=True)
        policy = self.registry.policy_for(venue)
        now = self._clock.now(venue.timezone)

        if day < now.date():
            return AvailabilityResult(reason=AvailabilityReason.PAST_DATE)
        if day > now.date() + timedelta(days=policy.booking_horizon_days):
            return AvailabilityResult(reason=AvailabilityReason.BEYOND_HORIZON)

        window = operating_window_for(venue, day)
        if not window:
            return AvailabilityResult(reason=AvailabilityReason.CLOSED)

        if resources and not any(fits_party(r, party_size, policy) for r in resources):
            return AvailabilityResult(reason=AvailabilityReason.PARTY_TOO_LARGE)

        committed = await self.ledger.committed_for_day(venue_id, window.open, window.close, kind)
        slots = self._slots_for_window(venue, policy, window, resources, committed, party_size, kind, now)

        if slots:
            return AvailabilityResult(slots=slots)

        grid = slot_grid(window, policy.granularity_minutes, policy.duration_for(kind))
        if grid and all(start < now for start in grid):
            reason = AvailabilityReason.NO_REMAINING_TIMES
        else:
            reason = AvailabilityReason.FULLY_BOOKED
        logger.info(
            "No availability",
            venue_id=str(venue_id),
            day=day.isoformat(),
            party_size=party_size,
            kind=kind.value,
            reason=reason.value,
        )
        return AvailabilityResult(reason=reason)

    def _slots_for_window(
        self,
        venue: Venue,
        policy: VenuePolicy,
        window: OperatingWindow,
        resources: List[Resource],
        committed: List[Reservation],
        party_size: int,
        kind: ResourceKind,
        now: datetime,
    ) -> List[Slot]:
        step = timedelta(minutes=policy.granularity_minutes)

        if kind.is_exclusive:
            eligible = [r for r in resources if fits_party(r, party_size, policy)]
            required = 1
            exact = not (kind is ResourceKind.GAMING_BLOCK and any(r.capacity is None for r in eligible))
            lengths = {r.id: timedelta(minutes=policy.duration_for(kind, r)) for r in eligible}
            grid = sorted({
                start
                for r in eligible
                for start in slot_grid(window, policy.granularity_minutes, policy.duration_for(kind, r))
            })
            free = {
                start: self._free_resources(eligible, lengths, committed, window, start)
                for start in grid
            }
            available = {start: len(rs) for start, rs in free.items()}
            # The ledger books the first free resource, so the slot ends with its length
            ends = {start: start + lengths[rs[0].id] for start, rs in free.items() if rs}
        else:
            duration = timedelta(minutes=policy.duration_for(kind))
            grid = slot_grid(window, policy.granularity_minutes, policy.duration_for(kind))
            capacity = dining_capacity(venue, resources, policy)
            required = party_size
            exact = capacity.exact
            available = {
                start: self._free_covers(policy, capacity.total, committed, start, start + duration)
                for start in grid
            }
            ends = {start: start + duration for start in grid}

        def can_seat(start: datetime) -> bool:
            return available.get(start, 0) >= required

        slots = []
        for start in grid:
            if start < now or not can_seat(start):
                continue
            remaining = available[start]
            neighbours = [n for n in (start - step, start + step) if n in available]

            if policy.in_target_window(start) and remaining >= required * policy.recommended_multiplier:
                tier = SlotTier.RECOMMENDED
            elif remaining == required or any(not can_seat(n) for n in neighbours):
                tier = SlotTier.FLEXIBLE
            else:
                tier = SlotTier.AVAILABLE

            slots.append(
                Slot(
                    start=start,
                    end=ends[start],
                    tier=tier,
                    confidence=Confidence.HIGH if exact else Confidence.LOW,
                    available_capacity=remaining,
                )
            )
        return slots

    def _free_covers(
        self,
        policy: VenuePolicy,
        total: int,
        committed: List[Reservation],
        start: datetime,
        end: datetime,
    ) -> int:
        free = total - peak_load(committed, start, end, policy.granularity_minutes)
        if policy.pacing_limit is not None:
            slot = quantize_to_slot(start, policy.granularity_minutes)
            starting = sum(
                r.party_size for r in committed
                if quantize_to_slot(r.start_at, policy.granularity_minutes) == slot
            )
            free = min(free, policy.pacing_limit - starting)
        return max(free, 0)

    def _free_resources(
        self,
        resources: List[Resource],
        lengths: Dict[UUID, timedelta],
        committed: List[Reservation],
        window: OperatingWindow,
        start: datetime,
    ) -> List[Resource]:
        """Resources free for their own length from ``start``, in booking order"""
        free = []
        for resource in resources:
            end = start + lengths[resource.id]
            if resource.status == ResourceStatus.OUT_OF_SERVICE or end > window.close:
                continue
            if any(
                r.resource_id == resource.id and overlaps(r.start_at, r.end_at, start, end)
                for r in committed
            ):
                continue
            free.append(resource)
        return free

    async def _shortest_duration(self, venue: Venue, policy: VenuePolicy, kind: ResourceKind) -> int:
        if not kind.is_exclusive:
            return policy.duration_for(kind)
        async with self._session_factory() as session:
            resources = await self.registry.load_resources(session, venue.id, kind=kind, in_service_only=True)
        if not resources:
            return policy.duration_for(kind)
        return min(policy.duration_for(kind, r) for r in resources)

    async def check_slot_availability(
        self,
        venue_id: UUID,
        start: datetime,
        party_size: int,
        kind: ResourceKind = ResourceKind.TABLE,
    ) -> SlotCheck:
        """Single-slot verdict for ``start``.

        Looks at the day of ``start`` and, for venues open past midnight, the
        previous day's window.
        """
        async with self._session_factory() as session:
            venue = await self.registry.get_venue(session, venue_id)
        policy = self.registry.policy_for(venue)
        start = to_venue_local(start, venue.timezone)
        if not is_aligned(start, policy.granularity_minutes):
            raise InvalidRequest(
                f"Start must fall on a {policy.granularity_minutes}-minute boundary",
                start=start,
            )

        duration = await self._shortest_duration(venue, policy, kind)
        window = window_containing(venue, start, start + timedelta(minutes=duration))
        if window is None:
            return SlotCheck(available=False, reason=AvailabilityReason.CLOSED)

        result = await self.compute_availability(venue_id, window.open.date(), party_size, kind)
        for slot in result.slots:
            if slot.start == start:
                return SlotCheck(available=True, slot=slot)
        return SlotCheck(available=False, reason=result.reason or AvailabilityReason.FULLY_BOOKED)

    async def alternatives_near(
        self,
        venue_id: UUID,
        start: datetime,
        party_size: int,
        kind: ResourceKind = ResourceKind.TABLE,
        window_minutes: int = DEFAULT_ALTERNATIVE_WINDOW_MINUTES,
    ) -> List[Slot]:
        """Bookable slots within ``window_minutes`` of ``start``, closest first.

        What to offer a caller whose requested time came back unavailable. The
        requested start itself is left out.
        """
        if window_minutes <= 0:
            raise InvalidRequest("Search window must be positive", window_minutes=window_minutes)

        async with self._session_factory() as session:
            venue = await self.registry.get_venue(session, venue_id)
        start = to_venue_local(start, venue.timezone)
        reach = timedelta(minutes=window_minutes)

        slots = []
        for day in sorted({(start - reach).date(), start.date(), (start + reach).date()}):
            result = await self.compute_availability(venue_id, day, party_size, kind)
            slots.extend(
                slot for slot in result.slots
                if slot.start != start and abs(slot.start - start) <= reach
            )

        unique = {slot.start: slot for slot in slots}
        return sorted(unique.values(), key=lambda s: (abs(s.start - start), s.start))

    async def availability_for_range(
        self,
        venue_id: UUID,
        first_day: date,
        last_day: date,
        party_size: int,
        kind: ResourceKind = ResourceKind.TABLE,
    ) -> Dict[date, AvailabilityResult]:
        """``compute_availability`` for each day from ``first_day`` to ``last_day`` inclusive"""
        if last_day < first_day:
            raise InvalidRequest("Range ends before it starts", first_day=first_day, last_day=last_day)
        days = (last_day - first_day).days + 1
        if days > MAX_RANGE_DAYS:
            raise InvalidRequest(f"Range is limited to {MAX_RANGE_DAYS} days", days=days)

        results = {}
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            results[day] = await self.compute_availability(venue_id, day, party_size, kind)
        return results
