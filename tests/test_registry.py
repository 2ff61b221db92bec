"""Tests for the resource registry"""

from datetime import datetime
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.errors import InvalidRequest, NotFound, Unauthorized
from app.models.resource import ResourceKind, ResourceStatus
from app.services.actors import Actor
from app.services.policy import VenuePolicy
from app.services.registry import dining_capacity, fits_party


def make_table(capacity, status=ResourceStatus.AVAILABLE):
    return SimpleNamespace(kind=ResourceKind.TABLE, capacity=capacity, status=status)


def policy_for(**overrides):
    return VenuePolicy.for_venue(SimpleNamespace(policies_json=overrides))


def test_dining_capacity_sums_in_service_tables():
    venue = SimpleNamespace(seating_capacity=None)
    tables = [make_table(2), make_table(4), make_table(6, ResourceStatus.OUT_OF_SERVICE)]

    capacity = dining_capacity(venue, tables, policy_for())

    assert capacity.total == 6
    assert capacity.exact


def test_dining_capacity_estimates_unknown_tables():
    venue = SimpleNamespace(seating_capacity=None)
    tables = [make_table(2), make_table(None)]

    capacity = dining_capacity(venue, tables, policy_for(fallback_table_capacity=5))

    assert capacity.total == 7
    assert not capacity.exact


def test_dining_capacity_without_tables_uses_declared_seating():
    assert dining_capacity(SimpleNamespace(seating_capacity=30), [], policy_for()).total == 30

    fallback = dining_capacity(SimpleNamespace(seating_capacity=None), [], policy_for(fallback_venue_capacity=50))
    assert fallback.total == 50
    assert not fallback.exact


def test_fits_party():
    policy = policy_for()
    assert fits_party(make_table(4), 4, policy)
    assert not fits_party(make_table(4), 5, policy)

    open_block = SimpleNamespace(kind=ResourceKind.GAMING_BLOCK, capacity=None)
    assert fits_party(open_block, 20, policy)


async def test_resources_for_lists_every_kind(registry, venue):
    resources = await registry.resources_for(venue.id)

    kinds = [r.kind for r in resources]
    assert kinds.count(ResourceKind.TABLE) == 4
    assert kinds.count(ResourceKind.LANE) == 3


async def test_unknown_venue_is_not_found(registry):
    with pytest.raises(NotFound):
        await registry.fetch_venue(uuid4())


async def test_capacity_at_is_zero_while_closed(registry, venue):
    open_capacity = await registry.capacity_at(venue.id, datetime(2025, 1, 1, 18, 0))
    assert open_capacity.total == 16

    lanes = await registry.capacity_at(venue.id, datetime(2025, 1, 1, 18, 0), ResourceKind.LANE)
    assert lanes.total == 3

    closed = await registry.capacity_at(venue.id, datetime(2025, 1, 1, 9, 0))
    assert closed.total == 0

    # Sunday
    assert (await registry.capacity_at(venue.id, datetime(2025, 1, 5, 18, 0))).total == 0


async def test_set_resource_status_requires_staff(registry, venue, lanes, diner, staff):
    with pytest.raises(Unauthorized):
        await registry.set_resource_status(venue.id, lanes[0].id, ResourceStatus.OUT_OF_SERVICE, diner)

    with pytest.raises(InvalidRequest):
        await registry.set_resource_status(venue.id, lanes[0].id, ResourceStatus.HELD, staff)

    resource = await registry.set_resource_status(venue.id, lanes[0].id, ResourceStatus.OUT_OF_SERVICE, staff)
    assert resource.status == ResourceStatus.OUT_OF_SERVICE
    assert resource.version == 1

    capacity = await registry.capacity_at(venue.id, datetime(2025, 1, 1, 18, 0), ResourceKind.LANE)
    assert capacity.total == 2


async def test_create_venue_rejects_malformed_hours(registry):
    with pytest.raises(InvalidRequest):
        await registry.create_venue("Broken", hours_json={"monday": {"open": "noon", "close": "23:00"}})


async def test_create_venue_and_add_resources(registry):
    venue = await registry.create_venue(
        "Pin Palace",
        hours_json={"monday": {"open": "10:00", "close": "22:00"}},
    )
    lane = await registry.add_resource(venue.id, ResourceKind.LANE, "Lane 1", number=1, capacity=6)

    assert lane.status == ResourceStatus.AVAILABLE
    assert [r.id for r in await registry.resources_for(venue.id)] == [lane.id]

    with pytest.raises(InvalidRequest):
        await registry.add_resource(venue.id, ResourceKind.TABLE, "Table 0", capacity=0)


async def test_staff_membership_index(registry, venue, make_user):
    user = await make_user("runner@example.com")

    assert await registry.staff_venues_for(user.id) == frozenset()

    membership = await registry.assign_staff(venue.id, user.id, "host")
    assert membership.role == "host"
    assert await registry.staff_venues_for(user.id) == frozenset({venue.id})

    # Re-assigning updates the role in place
    membership = await registry.assign_staff(venue.id, user.id, "manager")
    assert membership.role == "manager"


def test_staff_actor_overrides_only_its_venues():
    venue_id = uuid4()
    actor = Actor(user_id="staff-1", staff_venue_ids=frozenset({venue_id}))
    assert actor.can_override(venue_id)
    assert not actor.can_override(uuid4())
    assert Actor.system().can_override(uuid4())
