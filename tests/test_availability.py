"""Tests for the availability engine"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.errors import InvalidRequest
from app.models.resource import ResourceKind, ResourceStatus
from app.services.availability import AvailabilityReason, Confidence, SlotTier
from app.services.ledger import ResourceRequest

TODAY = date(2025, 1, 1)


def at(hour, minute=0, day=1):
    return datetime(2025, 1, day, hour, minute)


def by_start(result):
    return {slot.start: slot for slot in result.slots}


async def test_empty_dining_room_offers_every_aligned_start(availability, make_venue, clock):
    venue = await make_venue(tables=(4,) * 10)
    clock.set(at(9))

    result = await availability.compute_availability(venue.id, TODAY, 2)

    assert result.reason is None
    assert len(result.slots) == 43
    assert result.slots[0].start == at(11)
    assert result.slots[-1].start == at(21, 30)
    assert all(slot.start.minute % 15 == 0 for slot in result.slots)
    assert all(slot.end - slot.start == timedelta(minutes=90) for slot in result.slots)
    assert all(slot.confidence == Confidence.HIGH for slot in result.slots)
    assert all(slot.available_capacity == 40 for slot in result.slots)

    slots = by_start(result)
    assert slots[at(14)].tier == SlotTier.RECOMMENDED
    assert slots[at(11)].tier == SlotTier.AVAILABLE


async def test_slots_before_now_are_dropped(availability, venue):
    result = await availability.compute_availability(venue.id, TODAY, 2)

    assert result.slots[0].start == at(12)
    assert [s.start for s in result.slots] == sorted(s.start for s in result.slots)


@pytest.mark.parametrize(
    "day,party_size,reason",
    [
        (date(2024, 12, 31), 2, AvailabilityReason.PAST_DATE),
        (TODAY + timedelta(days=91), 2, AvailabilityReason.BEYOND_HORIZON),
        (date(2025, 1, 5), 2, AvailabilityReason.CLOSED),
        (TODAY, 7, AvailabilityReason.PARTY_TOO_LARGE),
    ],
)
async def test_empty_results_carry_a_reason(availability, venue, day, party_size, reason):
    result = await availability.compute_availability(venue.id, day, party_size)

    assert result.slots == []
    assert result.reason == reason


async def test_last_day_of_horizon_is_bookable(availability, venue):
    # 2025-04-01 is a Tuesday
    result = await availability.compute_availability(venue.id, TODAY + timedelta(days=90), 2)

    assert result.slots


async def test_no_remaining_times_late_in_the_day(availability, venue, clock):
    clock.set(at(22))

    result = await availability.compute_availability(venue.id, TODAY, 2)

    assert result.reason == AvailabilityReason.NO_REMAINING_TIMES


async def test_fully_booked_when_every_lane_is_out_of_service(availability, registry, venue, lanes, staff):
    for lane in lanes:
        await registry.set_resource_status(venue.id, lane.id, ResourceStatus.OUT_OF_SERVICE, staff)

    result = await availability.compute_availability(venue.id, TODAY, 4, ResourceKind.LANE)

    assert result.slots == []
    assert result.reason == AvailabilityReason.FULLY_BOOKED


async def test_invalid_party_size(availability, venue):
    with pytest.raises(InvalidRequest):
        await availability.compute_availability(venue.id, TODAY, 0)


async def test_committed_reservations_reduce_capacity(availability, ledger, venue):
    await ledger.create(venue.id, ResourceRequest(), at(18), None, 6, "diner-1")

    slots = by_start(await availability.compute_availability(venue.id, TODAY, 2))

    assert slots[at(18)].available_capacity == 10
    assert slots[at(17)].available_capacity == 10
    assert slots[at(19, 15)].available_capacity == 10
    # Back-to-back with the booking
    assert slots[at(16, 30)].available_capacity == 16
    assert slots[at(19, 30)].available_capacity == 16


async def test_cancelled_reservations_free_capacity(availability, ledger, venue, diner):
    reservation = await ledger.create(venue.id, ResourceRequest(), at(18), None, 6, diner.user_id)
    await ledger.cancel(reservation.id, diner)

    slots = by_start(await availability.compute_availability(venue.id, TODAY, 2))

    assert slots[at(18)].available_capacity == 16


async def test_seating_capacity_only_is_low_confidence(availability, make_venue):
    venue = await make_venue(seating_capacity=30)

    result = await availability.compute_availability(venue.id, TODAY, 2)

    assert result.slots
    assert all(slot.confidence == Confidence.LOW for slot in result.slots)
    assert result.slots[0].available_capacity == 30


async def test_exact_fit_is_flexible(availability, make_venue):
    venue = await make_venue(seating_capacity=8)

    result = await availability.compute_availability(venue.id, TODAY, 8)

    assert result.slots
    assert {slot.tier for slot in result.slots} == {SlotTier.FLEXIBLE}


async def test_slot_next_to_a_full_one_is_flexible(availability, ledger, make_venue):
    venue = await make_venue(seating_capacity=8)
    await ledger.create(venue.id, ResourceRequest(), at(18), None, 6, "diner-1")

    slots = by_start(await availability.compute_availability(venue.id, TODAY, 4))

    assert at(18) not in slots
    assert at(19, 15) not in slots
    assert slots[at(19, 30)].tier == SlotTier.FLEXIBLE
    assert slots[at(20)].tier == SlotTier.AVAILABLE


async def test_pacing_limit_hides_busy_start(availability, ledger, make_venue):
    venue = await make_venue(tables=(4,) * 10, policies_json={"pacing_limit": 6})
    await ledger.create(venue.id, ResourceRequest(), at(18), None, 4, "diner-1")

    slots = by_start(await availability.compute_availability(venue.id, TODAY, 4))

    assert at(18) not in slots
    assert slots[at(18, 15)].available_capacity == 6


async def test_lane_availability_counts_free_lanes(availability, ledger, venue, lanes):
    await ledger.create(venue.id, ResourceRequest(ResourceKind.LANE, lanes[0].id), at(18), None, 4, "diner-1")

    slots = by_start(await availability.compute_availability(venue.id, TODAY, 4, ResourceKind.LANE))

    assert slots[at(18)].available_capacity == 2
    assert slots[at(18)].end == at(19)
    assert slots[at(19)].available_capacity == 3


async def test_lane_party_too_large(availability, venue):
    result = await availability.compute_availability(venue.id, TODAY, 7, ResourceKind.LANE)

    assert result.reason == AvailabilityReason.PARTY_TOO_LARGE


async def test_check_slot_rejects_unaligned_start(availability, venue):
    with pytest.raises(InvalidRequest):
        await availability.check_slot_availability(venue.id, at(18, 5), 2)


async def test_check_slot_availability(availability, ledger, venue, lanes):
    check = await availability.check_slot_availability(venue.id, at(18), 2)
    assert check.available
    assert check.slot.start == at(18)

    # Sunday, and a dinner that would run past closing
    assert (await availability.check_slot_availability(venue.id, at(18, day=5), 2)).reason == AvailabilityReason.CLOSED
    assert (await availability.check_slot_availability(venue.id, at(22), 2)).reason == AvailabilityReason.CLOSED

    for lane in lanes:
        await ledger.create(venue.id, ResourceRequest(ResourceKind.LANE, lane.id), at(18), None, 4, "diner-1")
    check = await availability.check_slot_availability(venue.id, at(18), 4, ResourceKind.LANE)
    assert not check.available
    assert check.reason == AvailabilityReason.FULLY_BOOKED


async def test_offered_slot_can_be_booked(availability, ledger, venue):
    result = await availability.compute_availability(venue.id, TODAY, 4)
    slot = result.slots[0]

    reservation = await ledger.create(venue.id, ResourceRequest(), slot.start, None, 4, "diner-1")

    assert reservation.start_at == slot.start
    assert reservation.end_at == slot.end


async def test_check_slot_accepts_aware_start(availability, venue):
    check = await availability.check_slot_availability(venue.id, datetime(2025, 1, 1, 23, 0, tzinfo=timezone.utc), 2)

    assert check.available
    assert check.slot.start == at(18)


# Gaming blocks with their own lengths


@pytest.fixture
async def arcade(make_venue, registry):
    venue = await make_venue()
    await registry.add_resource(venue.id, ResourceKind.GAMING_BLOCK, "VR Pod", number=1, capacity=4, block_minutes=120)
    return venue


async def test_block_slots_use_the_block_length(availability, ledger, arcade):
    result = await availability.compute_availability(arcade.id, TODAY, 2, ResourceKind.GAMING_BLOCK)

    assert result.slots[-1].start == at(21)
    assert result.slots[-1].end == at(23)
    assert all(slot.end - slot.start == timedelta(minutes=120) for slot in result.slots)

    last = result.slots[-1]
    reservation = await ledger.create(
        arcade.id, ResourceRequest(ResourceKind.GAMING_BLOCK), last.start, None, 2, "diner-1"
    )
    assert reservation.end_at == last.end


async def test_block_busy_window_uses_the_block_length(availability, ledger, arcade):
    await ledger.create(arcade.id, ResourceRequest(ResourceKind.GAMING_BLOCK), at(18), None, 2, "diner-1")

    slots = by_start(await availability.compute_availability(arcade.id, TODAY, 2, ResourceKind.GAMING_BLOCK))

    # A two-hour block starting after 16:00 would run into the 18:00 booking
    assert at(16) in slots
    assert at(16, 15) not in slots
    assert at(19, 45) not in slots
    assert at(20) in slots


async def test_mixed_block_lengths(availability, registry, arcade):
    await registry.add_resource(arcade.id, ResourceKind.GAMING_BLOCK, "Sim Rig", number=2, capacity=4)

    slots = by_start(await availability.compute_availability(arcade.id, TODAY, 2, ResourceKind.GAMING_BLOCK))

    assert slots[at(21)].available_capacity == 2
    assert slots[at(21)].end == at(23)
    assert slots[at(21, 15)].available_capacity == 1
    assert slots[at(21, 15)].end == at(22, 15)
    assert slots[at(22)].end == at(23)


# Alternatives and date ranges


async def test_alternatives_near_a_full_lane_time(availability, ledger, venue, lanes):
    for lane in lanes:
        await ledger.create(venue.id, ResourceRequest(ResourceKind.LANE, lane.id), at(20), None, 4, "diner-1")

    alternatives = await availability.alternatives_near(venue.id, at(20), 4, ResourceKind.LANE, window_minutes=60)

    assert [slot.start for slot in alternatives] == [at(19), at(21)]


async def test_alternatives_are_closest_first(availability, venue):
    alternatives = await availability.alternatives_near(venue.id, at(18), 2, window_minutes=30)

    assert [slot.start for slot in alternatives] == [at(17, 45), at(18, 15), at(17, 30), at(18, 30)]


async def test_alternatives_need_a_positive_window(availability, venue):
    with pytest.raises(InvalidRequest):
        await availability.alternatives_near(venue.id, at(18), 2, window_minutes=0)


async def test_availability_for_range(availability, venue):
    results = await availability.availability_for_range(venue.id, date(2025, 1, 3), date(2025, 1, 5), 2)

    assert list(results) == [date(2025, 1, 3), date(2025, 1, 4), date(2025, 1, 5)]
    assert results[date(2025, 1, 3)].slots
    assert results[date(2025, 1, 5)].reason == AvailabilityReason.CLOSED


@pytest.mark.parametrize("first_day,last_day", [
    (date(2025, 1, 5), date(2025, 1, 3)),
    (TODAY, TODAY + timedelta(days=31)),
])
async def test_availability_for_range_rejects_bad_ranges(availability, venue, first_day, last_day):
    with pytest.raises(InvalidRequest):
        await availability.availability_for_range(venue.id, first_day, last_day, 2)
