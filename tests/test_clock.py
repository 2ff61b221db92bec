"""Tests for clock and time-window arithmetic"""

from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

from app.services.clock import (
    CLOSED,
    FixedClock,
    ceil_to_slot,
    cutoff_deadline,
    is_aligned,
    is_within_cutoff,
    operating_window_for,
    overlaps,
    parse_hhmm,
    quantize_to_slot,
    slot_grid,
    window_containing,
)


def venue_with_hours(**hours):
    return SimpleNamespace(hours_json=hours)


def test_quantize_rounds_down_to_grid():
    assert quantize_to_slot(datetime(2025, 1, 1, 18, 7, 30)) == datetime(2025, 1, 1, 18, 0)
    assert quantize_to_slot(datetime(2025, 1, 1, 18, 44)) == datetime(2025, 1, 1, 18, 30)
    assert quantize_to_slot(datetime(2025, 1, 1, 18, 44), 30) == datetime(2025, 1, 1, 18, 30)


def test_ceil_and_alignment():
    assert ceil_to_slot(datetime(2025, 1, 1, 18, 1)) == datetime(2025, 1, 1, 18, 15)
    assert ceil_to_slot(datetime(2025, 1, 1, 18, 15)) == datetime(2025, 1, 1, 18, 15)
    assert is_aligned(datetime(2025, 1, 1, 18, 45))
    assert not is_aligned(datetime(2025, 1, 1, 18, 50))
    assert not is_aligned(datetime(2025, 1, 1, 18, 45, 10))


def test_parse_hhmm_reads_24_as_midnight():
    assert parse_hhmm("09:30") == time(9, 30)
    assert parse_hhmm("24:00") == time(0, 0)


def test_overlap_is_half_open():
    a_start, a_end = datetime(2025, 1, 1, 19), datetime(2025, 1, 1, 20)
    assert overlaps(a_start, a_end, datetime(2025, 1, 1, 19, 30), datetime(2025, 1, 1, 20, 30))
    # Back-to-back reservations do not collide
    assert not overlaps(a_start, a_end, datetime(2025, 1, 1, 20), datetime(2025, 1, 1, 21))
    assert not overlaps(a_start, a_end, datetime(2025, 1, 1, 18), datetime(2025, 1, 1, 19))


def test_cutoff_boundary():
    start = datetime(2025, 1, 1, 20, 0)
    assert is_within_cutoff(start - timedelta(minutes=119), start, 120)
    assert not is_within_cutoff(start - timedelta(minutes=120), start, 120)
    assert not is_within_cutoff(start - timedelta(minutes=121), start, 120)
    assert cutoff_deadline(start, 120) == datetime(2025, 1, 1, 18, 0)


def test_operating_window_for_open_and_closed_days():
    venue = venue_with_hours(wednesday={"open": "11:00", "close": "23:00"}, thursday={"closed": True})

    window = operating_window_for(venue, date(2025, 1, 1))
    assert window.open == datetime(2025, 1, 1, 11, 0)
    assert window.close == datetime(2025, 1, 1, 23, 0)

    assert operating_window_for(venue, date(2025, 1, 2)) is CLOSED
    assert not operating_window_for(venue, date(2025, 1, 3))


def test_operating_window_past_midnight():
    venue = venue_with_hours(friday={"open": "18:00", "close": "02:00"})

    window = operating_window_for(venue, date(2025, 1, 3))
    assert window.close == datetime(2025, 1, 4, 2, 0)

    # A 01:00 start belongs to Friday's window
    late = window_containing(venue, datetime(2025, 1, 4, 1, 0), datetime(2025, 1, 4, 1, 45))
    assert late == window
    assert window_containing(venue, datetime(2025, 1, 4, 1, 30), datetime(2025, 1, 4, 2, 30)) is None


def test_slot_grid_only_offers_starts_that_finish_by_close():
    venue = venue_with_hours(wednesday={"open": "11:00", "close": "23:00"})
    window = operating_window_for(venue, date(2025, 1, 1))

    grid = slot_grid(window, 15, 90)

    assert len(grid) == 43
    assert grid[0] == datetime(2025, 1, 1, 11, 0)
    assert grid[-1] == datetime(2025, 1, 1, 21, 30)
    assert all(b - a == timedelta(minutes=15) for a, b in zip(grid, grid[1:]))


def test_slot_grid_is_anchored_at_midnight():
    venue = venue_with_hours(wednesday={"open": "11:10", "close": "13:00"})
    window = operating_window_for(venue, date(2025, 1, 1))

    grid = slot_grid(window, 15, 60)

    assert grid[0] == datetime(2025, 1, 1, 11, 15)
    assert grid[-1] == datetime(2025, 1, 1, 12, 0)


def test_fixed_clock_ignores_timezone_and_advances():
    clock = FixedClock(datetime(2025, 1, 1, 12, 0))
    assert clock.now("America/New_York") == clock.now("Europe/London")
    clock.advance(minutes=46)
    assert clock.now("UTC") == datetime(2025, 1, 1, 12, 46)
