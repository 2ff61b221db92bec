"""
Reservation ledger: the system of record for every booking.

Only the ledger mutates reservations. Every status change goes through
``_transition`` and leaves an audit row behind.

Commits are serialized per key through a ``LockRegistry``: exclusive resources
(lanes, gaming blocks) lock on the resource, dining locks on the venue. The lock
only covers this process, so every claim also bumps a version column with a
compare-and-commit ``UPDATE ... WHERE version = :seen``. A claim that loses the
race fails with ``SlotUnavailable`` and the transaction is rolled back.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from app.config import Settings, settings as default_settings
from app.errors import (
    AlreadyTerminal,
    CutoffExceeded,
    InvalidRequest,
    InvalidState,
    InvalidTransition,
    NotFound,
    SlotUnavailable,
    Unauthorized,
)
from app.models.audit import AuditLog
from app.models.extension import ExtensionRequest, ExtensionStatus
from app.models.reservation import (
    COMMITTED_STATUSES,
    TERMINAL_STATUSES,
    Reservation,
    ReservationStatus,
    SessionState,
    SourceSystem,
)
from app.models.resource import Resource, ResourceKind, ResourceStatus
from app.models.venue import Venue
from app.services.actors import SYSTEM_ACTOR_ID, Actor
from app.services.clock import (
    Clock,
    cutoff_deadline,
    is_aligned,
    is_within_cutoff,
    overlaps,
    quantize_to_slot,
    to_venue_local,
    window_containing,
)
from app.services.locks import LockRegistry
from app.services.policy import VenuePolicy
from app.services.registry import ResourceRegistry, dining_capacity, fits_party, table_capacity

logger = structlog.get_logger()

ALLOWED_TRANSITIONS = {
    ReservationStatus.PENDING: (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED),
    ReservationStatus.CONFIRMED: (
        ReservationStatus.ARRIVED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    ),
    ReservationStatus.ARRIVED: (ReservationStatus.COMPLETED,),
}

EXCLUSIVE_KINDS = tuple(kind for kind in ResourceKind if kind.is_exclusive)


@dataclass(frozen=True)
class ResourceRequest:
    """A specific resource, or any resource of ``kind`` that fits the party"""
    kind: ResourceKind = ResourceKind.TABLE
    resource_id: Optional[UUID] = None


def peak_load(
    reservations: Iterable[Reservation],
    start: datetime,
    end: datetime,
    granularity_minutes: int,
) -> int:
    """Largest total party size overlapping any grid sub-slot of [start, end)"""
    reservations = list(reservations)
    step = timedelta(minutes=granularity_minutes)
    peak = 0
    cursor = start
    while cursor < end:
        upper = min(cursor + step, end)
        load = sum(
            r.party_size for r in reservations
            if overlaps(r.start_at, r.end_at, cursor, upper)
        )
        peak = max(peak, load)
        cursor = upper
    return peak


def actor_type(actor: Actor, venue_id: UUID) -> str:
    if actor.user_id == SYSTEM_ACTOR_ID:
        return "system"
    if actor.can_override(venue_id):
        return "staff"
    return "user"


def _snapshot(reservation: Reservation) -> Dict[str, Any]:
    return {
        "status": reservation.status.value if reservation.status else None,
        "start_at": reservation.start_at.isoformat(),
        "end_at": reservation.end_at.isoformat(),
        "party_size": reservation.party_size,
        "resource_id": str(reservation.resource_id) if reservation.resource_id else None,
    }


class ReservationLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        registry: Optional[ResourceRegistry] = None,
        locks: Optional[LockRegistry] = None,
        settings: Settings = default_settings,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._settings = settings
        self.registry = registry or ResourceRegistry(session_factory, settings)
        self._locks = locks or LockRegistry()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        venue_id: UUID,
        resource_request: ResourceRequest,
        start: datetime,
        duration_minutes: Optional[int],
        party_size: int,
        owner_id: Optional[str],
        source_system: SourceSystem = SourceSystem.LINEUP,
        *,
        guest_name: Optional[str] = None,
        guest_phone: Optional[str] = None,
        notes: Optional[str] = None,
        external_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Reservation:
        """Validate and commit a new reservation, returning it CONFIRMED.

        ``duration_minutes`` of None takes the venue default for the resource
        kind. A repeated ``external_id`` for the same source returns the
        reservation already on file.
        """
        if party_size is None or party_size <= 0:
            raise InvalidRequest("Party size must be positive", party_size=party_size)
        if duration_minutes is not None and duration_minutes <= 0:
            raise InvalidRequest("Duration must be positive")

        kind = resource_request.kind
        async with self._session_factory() as session:
            venue = await self.registry.get_venue(session, venue_id)
            policy = self.registry.policy_for(venue)
            start = to_venue_local(start, venue.timezone)

            if external_id:
                existing = await self._find_external(session, venue_id, source_system, external_id)
                if existing is not None:
                    logger.info(
                        "External reservation already on file",
                        reservation_id=str(existing.id),
                        source_system=source_system.value,
                        external_id=external_id,
                    )
                    return existing

            resource = None
            if resource_request.resource_id is not None:
                resource = await self.registry.get_resource(session, venue_id, resource_request.resource_id)
                if resource.kind != kind:
                    raise InvalidRequest(f"Resource {resource.label} is not a {kind.value}")

        now = self._clock.now(venue.timezone)
        # "Any block" bookings take each candidate block's own length
        per_resource = duration_minutes is None and kind.is_exclusive and resource is None
        if per_resource:
            end = None
            self._validate_start(policy, start, now)
        else:
            if duration_minutes is None:
                duration_minutes = policy.duration_for(kind, resource)
            end = start + timedelta(minutes=duration_minutes)
            self._validate_window(venue, policy, start, end, now)

        fields = dict(
            venue_id=venue_id,
            resource_kind=kind,
            start_at=start,
            end_at=end,
            party_size=party_size,
            source_system=source_system,
            source_external_id=external_id,
            owner_id=owner_id,
            guest_name=guest_name,
            guest_phone=guest_phone,
            notes=notes,
        )
        actor = actor or Actor(user_id=owner_id or SYSTEM_ACTOR_ID)

        try:
            if kind.is_exclusive:
                reservation = await self._create_exclusive(venue, policy, resource_request, fields, actor, now)
            else:
                reservation = await self._create_shared(venue, policy, resource_request, fields, actor, now)
        except IntegrityError:
            # Same external event committed by a concurrent delivery
            if not external_id:
                raise
            existing = await self.find_by_external_id(venue_id, source_system, external_id)
            if existing is None:
                raise
            logger.info(
                "External reservation committed concurrently",
                reservation_id=str(existing.id),
                source_system=source_system.value,
                external_id=external_id,
            )
            return existing

        logger.info(
            "Reservation confirmed",
            reservation_id=str(reservation.id),
            venue_id=str(venue_id),
            resource_id=str(reservation.resource_id) if reservation.resource_id else None,
            kind=kind.value,
            start_at=start.isoformat(),
            party_size=party_size,
            source_system=source_system.value,
        )
        return reservation

    def _validate_window(
        self,
        venue: Venue,
        policy: VenuePolicy,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> None:
        self._validate_start(policy, start, now)
        if window_containing(venue, start, end) is None:
            raise InvalidRequest("Venue is not open for the whole reservation", start=start, end=end)
        if end <= now:
            raise InvalidRequest("Reservation window has already passed", start=start)

    def _validate_start(self, policy: VenuePolicy, start: datetime, now: datetime) -> None:
        if not is_aligned(start, policy.granularity_minutes):
            raise InvalidRequest(
                f"Start must fall on a {policy.granularity_minutes}-minute boundary",
                start=start,
            )
        if start.date() > now.date() + timedelta(days=policy.booking_horizon_days):
            raise InvalidRequest("Start is beyond the booking horizon", start=start)

    async def _create_exclusive(
        self,
        venue: Venue,
        policy: VenuePolicy,
        resource_request: ResourceRequest,
        fields: Dict[str, Any],
        actor: Actor,
        now: datetime,
    ) -> Reservation:
        party_size = fields["party_size"]
        async with self._session_factory() as session:
            resources = await self.registry.load_resources(session, venue.id, kind=resource_request.kind)

        if resource_request.resource_id is not None:
            resources = [r for r in resources if r.id == resource_request.resource_id]
            if resources and not fits_party(resources[0], party_size, policy):
                raise InvalidRequest(f"{resources[0].label} cannot hold a party of {party_size}")

        in_service = [r for r in resources if r.status != ResourceStatus.OUT_OF_SERVICE]
        candidates = [r for r in in_service if fits_party(r, party_size, policy)]
        if in_service and not candidates:
            raise InvalidRequest(f"No {resource_request.kind.value} can hold a party of {party_size}")

        start = fields["start_at"]
        if not candidates and fields["end_at"] is None:
            default_end = start + timedelta(minutes=policy.duration_for(resource_request.kind))
            self._validate_window(venue, policy, start, default_end, now)
        fitting = 0
        for candidate in candidates:
            claim = fields
            if fields["end_at"] is None:
                end = start + timedelta(minutes=policy.duration_for(resource_request.kind, candidate))
                if window_containing(venue, start, end) is None or end <= now:
                    continue
                claim = dict(fields, end_at=end)
            fitting += 1
            try:
                return await self._claim_exclusive(venue, candidate.id, claim, actor, now)
            except SlotUnavailable:
                if resource_request.resource_id is not None:
                    raise
                continue

        if candidates and not fitting:
            raise InvalidRequest("Venue is not open for the whole reservation", start=start)

        logger.warning(
            "No free resource for reservation",
            venue_id=str(venue.id),
            kind=resource_request.kind.value,
            start_at=fields["start_at"].isoformat(),
        )
        raise SlotUnavailable(
            f"No {resource_request.kind.value} is free for that time",
            start=fields["start_at"],
        )

    async def _claim_exclusive(
        self,
        venue: Venue,
        resource_id: UUID,
        fields: Dict[str, Any],
        actor: Actor,
        now: datetime,
    ) -> Reservation:
        start, end = fields["start_at"], fields["end_at"]
        async with self._locks.lock_for(("resource", resource_id)):
            async with self._session_factory() as session:
                async with session.begin():
                    resource = await session.get(Resource, resource_id)
                    if resource is None or resource.status == ResourceStatus.OUT_OF_SERVICE:
                        raise SlotUnavailable("Resource is out of service", resource_id=str(resource_id))
                    await self._ensure_exclusive_free(session, resource_id, start, end)

                    seen_version = resource.version
                    new_status = self._claimed_status(resource, start, now)

                    reservation = Reservation(id=uuid.uuid4(), resource_id=resource_id, **fields)
                    reservation.status = ReservationStatus.PENDING
                    session.add(reservation)
                    self._audit(session, reservation, "reservation.created", actor, after=_snapshot(reservation))

                    await self._compare_and_set_resource(session, resource_id, seen_version, new_status)
                    self._transition(session, reservation, ReservationStatus.CONFIRMED, actor)
                    reservation.session_state = SessionState.ACTIVE
        return reservation

    async def _create_shared(
        self,
        venue: Venue,
        policy: VenuePolicy,
        resource_request: ResourceRequest,
        fields: Dict[str, Any],
        actor: Actor,
        now: datetime,
    ) -> Reservation:
        start, end = fields["start_at"], fields["end_at"]
        async with self._locks.lock_for(("venue", venue.id)):
            async with self._session_factory() as session:
                async with session.begin():
                    current = await session.get(Venue, venue.id)
                    seen_version = current.version
                    table = await self._check_shared(
                        session,
                        current,
                        policy,
                        start,
                        end,
                        fields["party_size"],
                        table_id=resource_request.resource_id,
                    )

                    reservation = Reservation(
                        id=uuid.uuid4(),
                        resource_id=table.id if table is not None else None,
                        **fields,
                    )
                    reservation.status = ReservationStatus.PENDING
                    session.add(reservation)
                    self._audit(session, reservation, "reservation.created", actor, after=_snapshot(reservation))

                    await self._compare_and_set_venue(session, venue.id, seen_version)
                    if table is not None:
                        table.status = self._claimed_status(table, start, now)
                    self._transition(session, reservation, ReservationStatus.CONFIRMED, actor)
        return reservation

    # ------------------------------------------------------------------
    # Capacity checks (run inside the committing transaction)
    # ------------------------------------------------------------------

    async def _committed_overlapping(
        self,
        session: AsyncSession,
        venue_id: UUID,
        start: datetime,
        end: datetime,
        kind: Optional[ResourceKind] = None,
        resource_id: Optional[UUID] = None,
        exclude_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        query = select(Reservation).where(
            Reservation.venue_id == venue_id,
            Reservation.status.in_(COMMITTED_STATUSES),
            Reservation.start_at < end,
            Reservation.end_at > start,
        )
        if kind is not None:
            query = query.where(Reservation.resource_kind == kind)
        if resource_id is not None:
            query = query.where(Reservation.resource_id == resource_id)
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def _ensure_exclusive_free(
        self,
        session: AsyncSession,
        resource_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        query = select(Reservation.id).where(
            Reservation.resource_id == resource_id,
            Reservation.status.in_(COMMITTED_STATUSES),
            Reservation.start_at < end,
            Reservation.end_at > start,
        )
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)
        result = await session.execute(query.limit(1))
        conflict = result.scalar_one_or_none()
        if conflict is not None:
            logger.warning(
                "Exclusive resource conflict",
                resource_id=str(resource_id),
                conflicting_reservation_id=str(conflict),
                start_at=start.isoformat(),
                end_at=end.isoformat(),
            )
            raise SlotUnavailable(
                "Resource is already reserved for that time",
                resource_id=str(resource_id),
                start=start,
                end=end,
            )

    async def _check_shared(
        self,
        session: AsyncSession,
        venue: Venue,
        policy: VenuePolicy,
        start: datetime,
        end: datetime,
        party_size: int,
        table_id: Optional[UUID] = None,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Resource]:
        """Check dining capacity for [start, end) and pick a table.

        Returns the table to assign, or None when the venue has no free
        fitting table and the party is seated against aggregate capacity only.
        """
        tables = await self.registry.load_resources(
            session, venue.id, kind=ResourceKind.TABLE, in_service_only=True
        )
        committed = await self._committed_overlapping(
            session, venue.id, start, end, kind=ResourceKind.TABLE, exclude_id=exclude_id
        )

        capacity = dining_capacity(venue, tables, policy)
        load = peak_load(committed, start, end, policy.granularity_minutes)
        if load + party_size > capacity.total:
            logger.warning(
                "Dining capacity exceeded",
                venue_id=str(venue.id),
                start_at=start.isoformat(),
                committed=load,
                party_size=party_size,
                capacity=capacity.total,
            )
            raise SlotUnavailable(
                "Not enough covers for that time",
                start=start,
                available=max(capacity.total - load, 0),
            )

        if policy.pacing_limit is not None:
            slot = quantize_to_slot(start, policy.granularity_minutes)
            starting = sum(
                r.party_size for r in committed
                if quantize_to_slot(r.start_at, policy.granularity_minutes) == slot
            )
            if starting + party_size > policy.pacing_limit:
                raise SlotUnavailable("Too many covers already start in that slot", start=start)

        def table_has_room(table: Resource) -> bool:
            on_table = [r for r in committed if r.resource_id == table.id]
            return peak_load(on_table, start, end, policy.granularity_minutes) + party_size <= table_capacity(table, policy)

        if table_id is not None:
            table = next((t for t in tables if t.id == table_id), None)
            if table is None:
                raise SlotUnavailable("Table is out of service", resource_id=str(table_id))
            if table_capacity(table, policy) < party_size:
                raise InvalidRequest(f"{table.label} cannot seat a party of {party_size}")
            if not table_has_room(table):
                raise SlotUnavailable(f"{table.label} is already taken for that time", resource_id=str(table_id))
            return table

        if not tables:
            return None
        fitting = sorted(
            (t for t in tables if fits_party(t, party_size, policy)),
            key=lambda t: table_capacity(t, policy),
        )
        if not fitting:
            raise InvalidRequest(f"No table seats a party of {party_size}")
        return next((t for t in fitting if table_has_room(t)), None)

    def _claimed_status(self, resource: Resource, start: datetime, now: datetime) -> ResourceStatus:
        if start <= now or resource.status == ResourceStatus.OCCUPIED:
            return ResourceStatus.OCCUPIED
        return ResourceStatus.HELD

    async def _compare_and_set_resource(
        self,
        session: AsyncSession,
        resource_id: UUID,
        seen_version: int,
        status: Optional[ResourceStatus] = None,
    ) -> None:
        values: Dict[str, Any] = {"version": seen_version + 1}
        if status is not None:
            values["status"] = status
        result = await session.execute(
            update(Resource)
            .where(Resource.id == resource_id, Resource.version == seen_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("Resource version moved during commit", resource_id=str(resource_id))
            raise SlotUnavailable("Resource changed while booking; re-check availability")

    async def _compare_and_set_venue(self, session: AsyncSession, venue_id: UUID, seen_version: int) -> None:
        result = await session.execute(
            update(Venue)
            .where(Venue.id == venue_id, Venue.version == seen_version)
            .values(version=seen_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("Venue version moved during commit", venue_id=str(venue_id))
            raise SlotUnavailable("Availability changed while booking; re-check availability")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _check_transition(self, reservation: Reservation, target: ReservationStatus) -> None:
        if reservation.status in TERMINAL_STATUSES:
            raise AlreadyTerminal(
                f"Reservation is already {reservation.status.value}",
                status=reservation.status.value,
            )
        if target not in ALLOWED_TRANSITIONS.get(reservation.status, ()):
            raise InvalidTransition(
                f"Cannot move reservation from {reservation.status.value} to {target.value}",
                status=reservation.status.value,
                target=target.value,
            )

    def _transition(
        self,
        session: AsyncSession,
        reservation: Reservation,
        target: ReservationStatus,
        actor: Actor,
        **data: Any,
    ) -> None:
        self._check_transition(reservation, target)
        before = reservation.status
        reservation.status = target
        self._audit(
            session,
            reservation,
            f"reservation.{target.value}",
            actor,
            before={"status": before.value},
            after={"status": target.value, **data},
        )

    def _audit(
        self,
        session: AsyncSession,
        reservation: Reservation,
        action: str,
        actor: Actor,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        resource_type: str = "reservation",
        resource_id: Optional[UUID] = None,
    ) -> None:
        session.add(
            AuditLog(
                venue_id=reservation.venue_id,
                actor_id=actor.user_id,
                actor_type=actor_type(actor, reservation.venue_id),
                action=action,
                resource_type=resource_type,
                resource_id=resource_id or reservation.id,
                data_json={"before": before, "after": after},
            )
        )

    def _lock_key(self, reservation: Reservation) -> Hashable:
        if reservation.resource_kind.is_exclusive and reservation.resource_id is not None:
            return ("resource", reservation.resource_id)
        return ("venue", reservation.venue_id)

    async def _load(self, session: AsyncSession, reservation_id: UUID) -> Reservation:
        reservation = await session.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found", reservation_id=str(reservation_id))
        return reservation

    def _authorize_change(
        self,
        reservation: Reservation,
        actor: Actor,
        policy: VenuePolicy,
        now: datetime,
        target: Optional[ReservationStatus] = None,
    ) -> None:
        """Ownership, state and cutoff rules shared by cancel and reschedule"""
        privileged = actor.can_override(reservation.venue_id)
        if not privileged and actor.user_id != reservation.owner_id:
            raise Unauthorized("Only the reservation owner or venue staff may change it")

        if target is not None:
            self._check_transition(reservation, target)
        elif reservation.is_terminal:
            raise AlreadyTerminal(
                f"Reservation is already {reservation.status.value}",
                status=reservation.status.value,
            )
        elif reservation.status != ReservationStatus.CONFIRMED:
            raise InvalidTransition("Only confirmed reservations can be changed")

        if (
            not privileged
            and reservation.status == ReservationStatus.CONFIRMED
            and is_within_cutoff(now, reservation.start_at, policy.cutoff_minutes)
        ):
            deadline = cutoff_deadline(reservation.start_at, policy.cutoff_minutes)
            logger.info(
                "Change rejected inside cutoff",
                reservation_id=str(reservation.id),
                deadline=deadline.isoformat(),
            )
            raise CutoffExceeded(
                f"Changes close {policy.cutoff_minutes} minutes before the reservation",
                deadline=deadline,
            )

    async def _release_resource(self, session: AsyncSession, reservation: Reservation, now: datetime) -> None:
        """Recompute the coarse status of the reservation's resource"""
        if reservation.resource_id is None:
            return
        resource = await session.get(Resource, reservation.resource_id)
        if resource is None or resource.status == ResourceStatus.OUT_OF_SERVICE:
            return

        result = await session.execute(
            select(Reservation).where(
                Reservation.resource_id == resource.id,
                Reservation.id != reservation.id,
                Reservation.status.in_(COMMITTED_STATUSES),
                Reservation.end_at > now,
            )
        )
        remaining = list(result.scalars().all())
        if any(r.start_at <= now for r in remaining):
            resource.status = ResourceStatus.OCCUPIED
        elif remaining:
            resource.status = ResourceStatus.HELD
        else:
            resource.status = ResourceStatus.AVAILABLE
        resource.version = resource.version + 1

    async def _deny_pending_extensions(
        self,
        session: AsyncSession,
        reservation: Reservation,
        now: datetime,
        reason: str,
    ) -> int:
        result = await session.execute(
            select(ExtensionRequest).where(
                ExtensionRequest.reservation_id == reservation.id,
                ExtensionRequest.status == ExtensionStatus.REQUESTED,
            )
        )
        pending = list(result.scalars().all())
        for request in pending:
            request.status = ExtensionStatus.DENIED
            request.decided_by = SYSTEM_ACTOR_ID
            request.decided_at = now
            request.decision_reason = reason
        return len(pending)

    # ------------------------------------------------------------------
    # Cancellation and modification
    # ------------------------------------------------------------------

    async def cancel(self, reservation_id: UUID, actor: Actor, reason: Optional[str] = None) -> Reservation:
        """Cancel and release capacity before returning"""
        async with self._session_factory() as session:
            lock_key = self._lock_key(await self._load(session, reservation_id))

        async with self._locks.lock_for(lock_key):
            async with self._session_factory() as session:
                async with session.begin():
                    reservation = await self._load(session, reservation_id)
                    venue = await session.get(Venue, reservation.venue_id)
                    policy = self.registry.policy_for(venue)
                    now = self._clock.now(venue.timezone)

                    self._authorize_change(reservation, actor, policy, now, ReservationStatus.CANCELLED)
                    self._transition(session, reservation, ReservationStatus.CANCELLED, actor, reason=reason)
                    reservation.cancelled_at = now
                    reservation.cancelled_by = actor.user_id
                    reservation.cancellation_reason = reason

                    await self._deny_pending_extensions(session, reservation, now, "reservation cancelled")
                    await self._release_resource(session, reservation, now)

        logger.info(
            "Reservation cancelled",
            reservation_id=str(reservation_id),
            venue_id=str(reservation.venue_id),
            actor_id=actor.user_id,
            reason=reason,
        )
        return reservation

    async def reschedule(
        self,
        reservation_id: UUID,
        actor: Actor,
        start: Optional[datetime] = None,
        party_size: Optional[int] = None,
    ) -> Reservation:
        """Move a confirmed reservation or change its party size.

        The same cutoff rule as cancellation applies, and capacity is checked
        again with the reservation's own claim left out.
        """
        if start is None and party_size is None:
            raise InvalidRequest("Nothing to change")
        if party_size is not None and party_size <= 0:
            raise InvalidRequest("Party size must be positive", party_size=party_size)

        async with self._session_factory() as session:
            lock_key = self._lock_key(await self._load(session, reservation_id))

        async with self._locks.lock_for(lock_key):
            async with self._session_factory() as session:
                async with session.begin():
                    reservation = await self._load(session, reservation_id)
                    venue = await session.get(Venue, reservation.venue_id)
                    policy = self.registry.policy_for(venue)
                    now = self._clock.now(venue.timezone)

                    self._authorize_change(reservation, actor, policy, now)

                    new_start = to_venue_local(start, venue.timezone) if start else reservation.start_at
                    new_party = party_size or reservation.party_size
                    new_end = new_start + timedelta(minutes=reservation.duration_minutes)
                    self._validate_window(venue, policy, new_start, new_end, now)
                    before = _snapshot(reservation)

                    if reservation.resource_kind.is_exclusive:
                        resource = await session.get(Resource, reservation.resource_id)
                        if resource.status == ResourceStatus.OUT_OF_SERVICE:
                            raise SlotUnavailable("Resource is out of service", resource_id=str(resource.id))
                        if not fits_party(resource, new_party, policy):
                            raise InvalidRequest(f"{resource.label} cannot hold a party of {new_party}")
                        await self._ensure_exclusive_free(
                            session, resource.id, new_start, new_end, exclude_id=reservation.id
                        )
                        await self._compare_and_set_resource(session, resource.id, resource.version)
                    else:
                        seen_version = venue.version
                        table = await self._check_shared(
                            session, venue, policy, new_start, new_end, new_party, exclude_id=reservation.id
                        )
                        await self._compare_and_set_venue(session, venue.id, seen_version)
                        reservation.resource_id = table.id if table is not None else None

                    reservation.start_at = new_start
                    reservation.end_at = new_end
                    reservation.party_size = new_party
                    reservation.reminder_sent_at = None
                    self._audit(
                        session, reservation, "reservation.rescheduled", actor,
                        before=before, after=_snapshot(reservation),
                    )

        logger.info(
            "Reservation rescheduled",
            reservation_id=str(reservation_id),
            start_at=reservation.start_at.isoformat(),
            party_size=reservation.party_size,
            actor_id=actor.user_id,
        )
        return reservation

    # ------------------------------------------------------------------
    # Operator transitions
    # ------------------------------------------------------------------

    async def mark_arrived(self, reservation_id: UUID, actor: Actor) -> Reservation:
        return await self._operator_transition(reservation_id, actor, ReservationStatus.ARRIVED)

    async def mark_completed(self, reservation_id: UUID, actor: Actor) -> Reservation:
        return await self._operator_transition(reservation_id, actor, ReservationStatus.COMPLETED)

    async def mark_no_show(self, reservation_id: UUID, actor: Actor) -> Reservation:
        return await self._operator_transition(reservation_id, actor, ReservationStatus.NO_SHOW)

    async def _operator_transition(
        self,
        reservation_id: UUID,
        actor: Actor,
        target: ReservationStatus,
    ) -> Reservation:
        async with self._session_factory() as session:
            lock_key = self._lock_key(await self._load(session, reservation_id))

        async with self._locks.lock_for(lock_key):
            async with self._session_factory() as session:
                async with session.begin():
                    reservation = await self._load(session, reservation_id)
                    if not actor.can_override(reservation.venue_id):
                        raise Unauthorized("Only venue staff may update reservation status")
                    venue = await session.get(Venue, reservation.venue_id)
                    now = self._clock.now(venue.timezone)

                    self._transition(session, reservation, target, actor)
                    if target == ReservationStatus.ARRIVED:
                        if reservation.resource_id is not None:
                            resource = await session.get(Resource, reservation.resource_id)
                            if resource.status != ResourceStatus.OUT_OF_SERVICE:
                                resource.status = ResourceStatus.OCCUPIED
                                resource.version = resource.version + 1
                    else:
                        await self._deny_pending_extensions(session, reservation, now, f"reservation {target.value}")
                        await self._release_resource(session, reservation, now)

        logger.info(
            "Reservation status updated",
            reservation_id=str(reservation_id),
            status=target.value,
            actor_id=actor.user_id,
        )
        return reservation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, reservation_id: UUID) -> Reservation:
        async with self._session_factory() as session:
            return await self._load(session, reservation_id)

    async def _find_external(
        self,
        session: AsyncSession,
        venue_id: UUID,
        source_system: SourceSystem,
        external_id: str,
    ) -> Optional[Reservation]:
        result = await session.execute(
            select(Reservation).where(
                Reservation.venue_id == venue_id,
                Reservation.source_system == source_system,
                Reservation.source_external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_by_external_id(
        self,
        venue_id: UUID,
        source_system: SourceSystem,
        external_id: str,
    ) -> Optional[Reservation]:
        async with self._session_factory() as session:
            return await self._find_external(session, venue_id, source_system, external_id)

    async def _owner_reservations(self, owner_id: str) -> List[Tuple[Reservation, datetime]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reservation, Venue.timezone)
                .join(Venue, Venue.id == Reservation.venue_id)
                .where(Reservation.owner_id == owner_id)
            )
            return [(reservation, self._clock.now(tz)) for reservation, tz in result.all()]

    async def list_active(self, owner_id: str) -> List[Reservation]:
        """Upcoming and in-progress reservations, soonest first"""
        rows = await self._owner_reservations(owner_id)
        active = [r for r, now in rows if not r.is_terminal and r.end_at > now]
        return sorted(active, key=lambda r: r.start_at)

    async def list_past(self, owner_id: str, limit: int = 20) -> List[Reservation]:
        """Finished, cancelled or elapsed reservations, newest first"""
        rows = await self._owner_reservations(owner_id)
        past = [r for r, now in rows if r.is_terminal or r.end_at <= now]
        return sorted(past, key=lambda r: r.start_at, reverse=True)[:limit]

    async def list_for_venue(
        self,
        venue_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        source_system: Optional[SourceSystem] = None,
        status: Optional[ReservationStatus] = None,
    ) -> List[Reservation]:
        async with self._session_factory() as session:
            venue = await self.registry.get_venue(session, venue_id)
            query = select(Reservation).where(Reservation.venue_id == venue_id)
            if start is not None:
                query = query.where(Reservation.end_at > to_venue_local(start, venue.timezone))
            if end is not None:
                query = query.where(Reservation.start_at < to_venue_local(end, venue.timezone))
            if source_system is not None:
                query = query.where(Reservation.source_system == source_system)
            if status is not None:
                query = query.where(Reservation.status == status)
            result = await session.execute(query.order_by(Reservation.start_at))
            return list(result.scalars().all())

    async def committed_for_day(
        self,
        venue_id: UUID,
        start: datetime,
        end: datetime,
        kind: ResourceKind,
    ) -> List[Reservation]:
        """Committed reservations of ``kind`` overlapping [start, end)"""
        async with self._session_factory() as session:
            return await self._committed_overlapping(session, venue_id, start, end, kind=kind)

    # ------------------------------------------------------------------
    # Session resources
    # ------------------------------------------------------------------

    async def list_open_sessions(self) -> List[Tuple[Reservation, Venue]]:
        """Committed lane and block reservations that have not expired"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reservation, Venue)
                .join(Venue, Venue.id == Reservation.venue_id)
                .where(
                    Reservation.resource_kind.in_(EXCLUSIVE_KINDS),
                    Reservation.status.in_(COMMITTED_STATUSES),
                    Reservation.session_state.in_((SessionState.ACTIVE, SessionState.WARNING)),
                )
                .order_by(Reservation.end_at)
            )
            return [(reservation, venue) for reservation, venue in result.all()]

    async def enter_warning(self, reservation_id: UUID, now: datetime) -> bool:
        """Move an ACTIVE session to WARNING; False if another sweep got there first"""
        async with self._session_factory() as session:
            async with session.begin():
                reservation = await self._load(session, reservation_id)
                result = await session.execute(
                    update(Reservation)
                    .where(
                        Reservation.id == reservation_id,
                        Reservation.session_state == SessionState.ACTIVE,
                        Reservation.warning_sent_at.is_(None),
                        Reservation.status.in_(COMMITTED_STATUSES),
                    )
                    .values(session_state=SessionState.WARNING, warning_sent_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                self._audit(
                    session, reservation, "session.warning", Actor.system(),
                    before={"session_state": SessionState.ACTIVE.value},
                    after={"session_state": SessionState.WARNING.value, "end_at": reservation.end_at.isoformat()},
                )
        return True

    async def expire_session(self, reservation_id: UUID, now: datetime) -> bool:
        """Mark a session EXPIRED once its end has passed.

        Pending extension requests are denied and the resource is released in
        the same transaction. Returns False if the session was extended or
        expired concurrently.
        """
        async with self._session_factory() as session:
            lock_key = self._lock_key(await self._load(session, reservation_id))

        async with self._locks.lock_for(lock_key):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Reservation)
                        .where(
                            Reservation.id == reservation_id,
                            Reservation.session_state.in_((SessionState.ACTIVE, SessionState.WARNING)),
                            Reservation.end_at <= now,
                        )
                        .values(session_state=SessionState.EXPIRED)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return False
                    reservation = await self._load(session, reservation_id)
                    denied = await self._deny_pending_extensions(session, reservation, now, "session expired")
                    await self._release_resource(session, reservation, now)
                    self._audit(
                        session, reservation, "session.expired", Actor.system(),
                        after={"session_state": SessionState.EXPIRED.value, "denied_requests": denied},
                    )
        return True

    async def get_extension_request(self, request_id: UUID) -> ExtensionRequest:
        async with self._session_factory() as session:
            request = await session.get(ExtensionRequest, request_id)
            if request is None:
                raise NotFound(f"Extension request {request_id} not found", request_id=str(request_id))
            return request

    async def add_extension_request(
        self,
        reservation_id: UUID,
        minutes: int,
        requested_by: str,
        now: datetime,
    ) -> ExtensionRequest:
        """Persist a REQUESTED extension; one open request per session"""
        async with self._session_factory() as session:
            async with session.begin():
                reservation = await self._load(session, reservation_id)
                result = await session.execute(
                    select(ExtensionRequest.id).where(
                        ExtensionRequest.reservation_id == reservation_id,
                        ExtensionRequest.status == ExtensionStatus.REQUESTED,
                    )
                )
                if result.first() is not None:
                    raise InvalidState("An extension request is already pending")

                request = ExtensionRequest(
                    id=uuid.uuid4(),
                    reservation_id=reservation_id,
                    minutes=minutes,
                    requested_by=requested_by,
                    status=ExtensionStatus.REQUESTED,
                    created_at=now,
                )
                session.add(request)
                self._audit(
                    session, reservation, "extension.requested", Actor(user_id=requested_by),
                    after={"minutes": minutes},
                    resource_type="extension_request",
                    resource_id=request.id,
                )
        return request

    async def extend_session(
        self,
        reservation_id: UUID,
        request_id: UUID,
        decided_by: str,
    ) -> Reservation:
        """Grant an extension request on the same resource.

        Re-checks that nothing else claims the resource over the added time and
        that the venue is still open at the new end. On success the session
        returns to ACTIVE with a fresh warning for the new end time.
        """
        async with self._session_factory() as session:
            lock_key = self._lock_key(await self._load(session, reservation_id))

        async with self._locks.lock_for(lock_key):
            async with self._session_factory() as session:
                async with session.begin():
                    reservation = await self._load(session, reservation_id)
                    request = await session.get(ExtensionRequest, request_id)
                    if request is None or request.reservation_id != reservation_id:
                        raise NotFound(f"Extension request {request_id} not found", request_id=str(request_id))
                    if request.status != ExtensionStatus.REQUESTED:
                        raise InvalidState(f"Extension request is already {request.status.value}")

                    venue = await session.get(Venue, reservation.venue_id)
                    now = self._clock.now(venue.timezone)
                    if reservation.session_state != SessionState.WARNING or now >= reservation.end_at:
                        raise InvalidState("Session is no longer open for extension")

                    old_end = reservation.end_at
                    new_end = old_end + timedelta(minutes=request.minutes)
                    if window_containing(venue, reservation.start_at, new_end) is None:
                        raise SlotUnavailable("Extension would run past closing time", end=new_end)
                    await self._ensure_exclusive_free(
                        session, reservation.resource_id, old_end, new_end, exclude_id=reservation.id
                    )
                    resource = await session.get(Resource, reservation.resource_id)
                    await self._compare_and_set_resource(session, resource.id, resource.version)

                    reservation.end_at = new_end
                    reservation.session_state = SessionState.ACTIVE
                    reservation.warning_sent_at = None

                    request.status = ExtensionStatus.APPROVED
                    request.decided_by = decided_by
                    request.decided_at = now
                    self._audit(
                        session, reservation, "session.extended", Actor(user_id=decided_by),
                        before={"end_at": old_end.isoformat()},
                        after={"end_at": new_end.isoformat(), "request_id": str(request.id)},
                    )

        logger.info(
            "Session extended",
            reservation_id=str(reservation_id),
            request_id=str(request_id),
            end_at=new_end.isoformat(),
            decided_by=decided_by,
        )
        return reservation

    async def deny_extension_request(
        self,
        request_id: UUID,
        decided_by: str,
        reason: Optional[str] = None,
    ) -> ExtensionRequest:
        async with self._session_factory() as session:
            async with session.begin():
                request = await session.get(ExtensionRequest, request_id)
                if request is None:
                    raise NotFound(f"Extension request {request_id} not found", request_id=str(request_id))
                if request.status != ExtensionStatus.REQUESTED:
                    raise InvalidState(f"Extension request is already {request.status.value}")
                reservation = await self._load(session, request.reservation_id)
                venue = await session.get(Venue, reservation.venue_id)

                request.status = ExtensionStatus.DENIED
                request.decided_by = decided_by
                request.decided_at = self._clock.now(venue.timezone)
                request.decision_reason = reason
                self._audit(
                    session, reservation, "extension.denied", Actor(user_id=decided_by),
                    after={"reason": reason},
                    resource_type="extension_request",
                    resource_id=request.id,
                )

        logger.info("Extension denied", request_id=str(request_id), decided_by=decided_by, reason=reason)
        return request

    async def mark_reminded(self, reservation_id: UUID, now: datetime) -> bool:
        """Record a reminder once; False if one was already sent"""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Reservation)
                    .where(Reservation.id == reservation_id, Reservation.reminder_sent_at.is_(None))
                    .values(reminder_sent_at=now)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

    async def list_due_reminders(
        self,
        venue_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Reservation]:
        """Confirmed reservations starting in the window with no reminder yet"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reservation)
                .where(
                    Reservation.venue_id == venue_id,
                    Reservation.status == ReservationStatus.CONFIRMED,
                    Reservation.start_at.between(window_start, window_end),
                    Reservation.reminder_sent_at.is_(None),
                )
                .order_by(Reservation.start_at)
            )
            return list(result.scalars().all())
