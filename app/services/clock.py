"""
Clock and time-window arithmetic.

All reservation times are naive datetimes on the venue's local wall clock.
Slot grids are anchored at midnight, so a 15-minute grid has lines at :00, :15,
:30 and :45 regardless of when a venue opens.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Protocol, Union
from zoneinfo import ZoneInfo

DEFAULT_GRANULARITY_MINUTES = 15

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class _Closed:
    """Distinguished result for a day the venue does not open"""

    def __repr__(self) -> str:
        return "CLOSED"

    def __bool__(self) -> bool:
        return False


CLOSED = _Closed()


@dataclass(frozen=True)
class OperatingWindow:
    open: datetime
    close: datetime

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.open <= start and end <= self.close


class Clock(Protocol):
    def now(self, tz: str) -> datetime:
        """Current wall-clock time in ``tz``, without tzinfo"""
        ...


class SystemClock:
    def now(self, tz: str) -> datetime:
        return datetime.now(ZoneInfo(tz)).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to a wall-clock value; ignores the timezone"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self, tz: str) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM"; "24:00" is read as midnight"""
    hours, minutes = value.strip().split(":")
    hour = int(hours)
    if hour == 24:
        hour = 0
    return time(hour, int(minutes))


def to_venue_local(ts: datetime, tz: str) -> datetime:
    """Naive wall-clock time in ``tz``; naive inputs are taken as venue-local"""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(ZoneInfo(tz)).replace(tzinfo=None)


def quantize_to_slot(ts: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> datetime:
    """Round down to the nearest grid line"""
    minutes = ts.hour * 60 + ts.minute
    floored = minutes - minutes % granularity_minutes
    return ts.replace(hour=floored // 60, minute=floored % 60, second=0, microsecond=0)


def ceil_to_slot(ts: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> datetime:
    floored = quantize_to_slot(ts, granularity_minutes)
    if floored == ts:
        return floored
    return floored + timedelta(minutes=granularity_minutes)


def is_aligned(ts: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> bool:
    return quantize_to_slot(ts, granularity_minutes) == ts


def is_within_cutoff(now: datetime, event_start: datetime, cutoff_minutes: int) -> bool:
    """True when less than ``cutoff_minutes`` remain before ``event_start``"""
    return event_start - now < timedelta(minutes=cutoff_minutes)


def cutoff_deadline(event_start: datetime, cutoff_minutes: int) -> datetime:
    return event_start - timedelta(minutes=cutoff_minutes)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching boundaries do not overlap"""
    return a_start < b_end and b_start < a_end


def operating_window_for(venue, day: date) -> Union[OperatingWindow, _Closed]:
    """Resolve ``day`` to the venue's opening window, or CLOSED.

    Hours come from ``venue.hours_json`` keyed by lowercase weekday name. A
    missing day, an entry marked ``closed`` or one without both times means
    the venue is closed. A closing time at or before the opening time runs past
    midnight into the next day.
    """
    hours = (venue.hours_json or {}).get(WEEKDAYS[day.weekday()])
    if not hours or hours.get("closed") or not hours.get("open") or not hours.get("close"):
        return CLOSED

    open_at = datetime.combine(day, parse_hhmm(hours["open"]))
    close_at = datetime.combine(day, parse_hhmm(hours["close"]))
    if close_at <= open_at:
        close_at += timedelta(days=1)
    return OperatingWindow(open=open_at, close=close_at)


def window_containing(venue, start: datetime, end: datetime) -> Optional[OperatingWindow]:
    """Find the operating window holding [start, end), checking the previous
    day's window for reservations after midnight"""
    for day in (start.date(), start.date() - timedelta(days=1)):
        window = operating_window_for(venue, day)
        if window and window.contains(start, end):
            return window
    return None


def slot_grid(
    window: OperatingWindow,
    granularity_minutes: int,
    duration_minutes: int,
) -> List[datetime]:
    """Candidate starts inside ``window`` whose full duration ends by closing"""
    step = timedelta(minutes=granularity_minutes)
    duration = timedelta(minutes=duration_minutes)
    starts = []
    current = ceil_to_slot(window.open, granularity_minutes)
    while current + duration <= window.close:
        starts.append(current)
        current += step
    return starts
