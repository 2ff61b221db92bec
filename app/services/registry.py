"""
Resource registry: venues, their bookable resources, and staff membership.

Read-only from the availability engine's point of view. The session-bound
helpers (``get_venue``, ``load_resources``) are shared with the ledger so that
capacity checks run inside the ledger's own transaction.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from app.config import Settings, settings as default_settings
from app.errors import InvalidRequest, NotFound, Unauthorized
from app.models.resource import Resource, ResourceKind, ResourceStatus
from app.models.user import StaffMembership, User
from app.models.venue import Venue
from app.services.actors import Actor
from app.services.clock import operating_window_for, window_containing
from app.services.policy import VenuePolicy

logger = structlog.get_logger()


@dataclass(frozen=True)
class CapacitySnapshot:
    """Aggregate covers (tables) or resource count (sessions)"""
    total: int
    exact: bool


def dining_capacity(venue: Venue, tables: Iterable[Resource], policy: VenuePolicy) -> CapacitySnapshot:
    """Sum of in-service table capacities.

    Tables without a recorded capacity count at the fallback estimate, and a
    venue with no tables at all falls back to its declared seating capacity or
    the configured default. Either fallback marks the figure inexact.
    """
    tables = [t for t in tables if t.status != ResourceStatus.OUT_OF_SERVICE]
    if not tables:
        return CapacitySnapshot(
            total=venue.seating_capacity or policy.fallback_venue_capacity,
            exact=False,
        )

    total = 0
    exact = True
    for table in tables:
        if table.capacity is None:
            total += policy.fallback_table_capacity
            exact = False
        else:
            total += table.capacity
    return CapacitySnapshot(total=total, exact=exact)


def table_capacity(table: Resource, policy: VenuePolicy) -> int:
    return table.capacity if table.capacity is not None else policy.fallback_table_capacity


def fits_party(resource: Resource, party_size: int, policy: VenuePolicy) -> bool:
    """Whether a single resource can hold the party"""
    if resource.kind is ResourceKind.TABLE:
        return table_capacity(resource, policy) >= party_size
    return resource.capacity is None or resource.capacity >= party_size


class ResourceRegistry:
    def __init__(self, session_factory: async_sessionmaker, settings: Settings = default_settings):
        self._session_factory = session_factory
        self._settings = settings

    def policy_for(self, venue: Venue) -> VenuePolicy:
        return VenuePolicy.for_venue(venue, self._settings)

    # Session-bound helpers

    async def get_venue(self, session: AsyncSession, venue_id: UUID) -> Venue:
        venue = await session.get(Venue, venue_id)
        if venue is None or not venue.is_active:
            raise NotFound(f"Venue {venue_id} not found", venue_id=str(venue_id))
        return venue

    async def load_resources(
        self,
        session: AsyncSession,
        venue_id: UUID,
        kind: Optional[ResourceKind] = None,
        in_service_only: bool = False,
    ) -> List[Resource]:
        query = select(Resource).where(Resource.venue_id == venue_id)
        if kind is not None:
            query = query.where(Resource.kind == kind)
        if in_service_only:
            query = query.where(Resource.status != ResourceStatus.OUT_OF_SERVICE)
        result = await session.execute(query.order_by(Resource.kind, Resource.number, Resource.label))
        return list(result.scalars().all())

    async def get_resource(self, session: AsyncSession, venue_id: UUID, resource_id: UUID) -> Resource:
        resource = await session.get(Resource, resource_id)
        if resource is None or resource.venue_id != venue_id:
            raise NotFound(f"Resource {resource_id} not found", resource_id=str(resource_id))
        return resource

    async def fetch_venue(self, venue_id: UUID) -> Venue:
        async with self._session_factory() as session:
            return await self.get_venue(session, venue_id)

    def capacity_of(
        self,
        venue: Venue,
        resources: List[Resource],
        kind: ResourceKind,
        policy: VenuePolicy,
    ) -> CapacitySnapshot:
        if kind is ResourceKind.TABLE:
            return dining_capacity(venue, resources, policy)
        in_service = [r for r in resources if r.status != ResourceStatus.OUT_OF_SERVICE]
        return CapacitySnapshot(total=len(in_service), exact=True)

    # Read contract

    async def resources_for(self, venue_id: UUID) -> List[Resource]:
        async with self._session_factory() as session:
            await self.get_venue(session, venue_id)
            return await self.load_resources(session, venue_id)

    async def capacity_at(
        self,
        venue_id: UUID,
        timestamp: datetime,
        kind: ResourceKind = ResourceKind.TABLE,
    ) -> CapacitySnapshot:
        """Capacity offered at ``timestamp``; zero while the venue is closed"""
        async with self._session_factory() as session:
            venue = await self.get_venue(session, venue_id)
            policy = self.policy_for(venue)
            if window_containing(venue, timestamp, timestamp + timedelta(minutes=1)) is None:
                return CapacitySnapshot(total=0, exact=True)
            resources = await self.load_resources(session, venue_id, kind=kind)
            return self.capacity_of(venue, resources, kind, policy)

    async def list_venues(self) -> List[Venue]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Venue).where(Venue.is_active == True).order_by(Venue.name)
            )
            return list(result.scalars().all())

    async def staff_venues_for(self, user_id: UUID) -> FrozenSet[UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StaffMembership.venue_id).where(
                    StaffMembership.user_id == user_id,
                    StaffMembership.is_active == True,
                )
            )
            return frozenset(result.scalars().all())

    # Admin edits

    async def create_venue(
        self,
        name: str,
        timezone: str = "America/New_York",
        hours_json: Optional[Dict[str, Any]] = None,
        seating_capacity: Optional[int] = None,
        policies_json: Optional[Dict[str, Any]] = None,
    ) -> Venue:
        venue = Venue(
            name=name,
            timezone=timezone,
            hours_json=hours_json or {},
            seating_capacity=seating_capacity,
            policies_json=policies_json or {},
        )
        # Surface malformed hours before anything is written
        try:
            VenuePolicy.for_venue(venue, self._settings)
            for day_offset in range(7):
                operating_window_for(venue, date(2024, 1, 1) + timedelta(days=day_offset))
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidRequest(f"Invalid venue configuration: {e}")

        async with self._session_factory() as session:
            session.add(venue)
            await session.commit()
            await session.refresh(venue)

        logger.info("Venue created", venue_id=str(venue.id), name=name)
        return venue

    async def add_resource(
        self,
        venue_id: UUID,
        kind: ResourceKind,
        label: str,
        number: Optional[int] = None,
        capacity: Optional[int] = None,
        block_minutes: Optional[int] = None,
    ) -> Resource:
        if capacity is not None and capacity <= 0:
            raise InvalidRequest("Resource capacity must be positive")
        if block_minutes is not None and block_minutes <= 0:
            raise InvalidRequest("Block length must be positive")

        async with self._session_factory() as session:
            await self.get_venue(session, venue_id)
            resource = Resource(
                venue_id=venue_id,
                kind=kind,
                label=label,
                number=number,
                capacity=capacity,
                block_minutes=block_minutes,
                status=ResourceStatus.AVAILABLE,
            )
            session.add(resource)
            await session.commit()
            await session.refresh(resource)

        logger.info("Resource added", venue_id=str(venue_id), resource_id=str(resource.id), kind=kind.value)
        return resource

    async def set_resource_status(
        self,
        venue_id: UUID,
        resource_id: UUID,
        status: ResourceStatus,
        actor: Actor,
    ) -> Resource:
        """Operator override: take a resource out of service or return it"""
        if not actor.can_override(venue_id):
            raise Unauthorized("Only venue staff may change resource status")
        if status not in (ResourceStatus.OUT_OF_SERVICE, ResourceStatus.AVAILABLE):
            raise InvalidRequest("Operators may only set out_of_service or available")

        async with self._session_factory() as session:
            await self.get_venue(session, venue_id)
            resource = await self.get_resource(session, venue_id, resource_id)
            resource.status = status
            resource.version = resource.version + 1
            await session.commit()
            await session.refresh(resource)

        logger.info(
            "Resource status overridden",
            venue_id=str(venue_id),
            resource_id=str(resource_id),
            status=status.value,
            actor_id=actor.user_id,
        )
        return resource

    async def assign_staff(self, venue_id: UUID, user_id: UUID, role: str) -> StaffMembership:
        async with self._session_factory() as session:
            await self.get_venue(session, venue_id)
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found", user_id=str(user_id))

            result = await session.execute(
                select(StaffMembership).where(
                    StaffMembership.user_id == user_id,
                    StaffMembership.venue_id == venue_id,
                )
            )
            membership = result.scalar_one_or_none()
            if membership is None:
                membership = StaffMembership(user_id=user_id, venue_id=venue_id, role=role)
                session.add(membership)
            else:
                membership.role = role
                membership.is_active = True
            await session.commit()
            await session.refresh(membership)

        logger.info("Staff assigned", venue_id=str(venue_id), user_id=str(user_id), role=role)
        return membership
