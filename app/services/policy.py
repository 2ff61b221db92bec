"""Per-venue booking policy resolved from settings and venue overrides"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional, Tuple

from app.config import Settings, settings as default_settings
from app.models.resource import Resource, ResourceKind
from app.services.clock import parse_hhmm


@dataclass(frozen=True)
class VenuePolicy:
    granularity_minutes: int
    cutoff_minutes: int
    dining_duration_minutes: int
    session_duration_minutes: int
    booking_horizon_days: int
    recommended_multiplier: float
    target_windows: Tuple[Tuple[time, time], ...]
    warning_minutes: int
    extension_increments: Tuple[int, ...]
    auto_approve_extensions: bool
    fallback_table_capacity: int
    fallback_venue_capacity: int
    pacing_limit: Optional[int] = None

    @classmethod
    def for_venue(cls, venue, settings: Settings = default_settings) -> "VenuePolicy":
        overrides = venue.policies_json or {}

        def pick(key: str):
            return overrides.get(key, getattr(settings, key))

        windows = tuple(
            (parse_hhmm(w["start"]), parse_hhmm(w["end"]))
            for w in pick("target_windows")
        )
        return cls(
            granularity_minutes=int(pick("slot_granularity_minutes")),
            cutoff_minutes=int(pick("cutoff_minutes")),
            dining_duration_minutes=int(pick("dining_duration_minutes")),
            session_duration_minutes=int(pick("session_duration_minutes")),
            booking_horizon_days=int(pick("booking_horizon_days")),
            recommended_multiplier=float(pick("recommended_multiplier")),
            target_windows=windows,
            warning_minutes=int(pick("warning_minutes")),
            extension_increments=tuple(int(m) for m in pick("extension_increments")),
            auto_approve_extensions=bool(pick("auto_approve_extensions")),
            fallback_table_capacity=int(pick("fallback_table_capacity")),
            fallback_venue_capacity=int(pick("fallback_venue_capacity")),
            pacing_limit=overrides.get("pacing_limit"),
        )

    def duration_for(self, kind: ResourceKind, resource: Optional[Resource] = None) -> int:
        """Default reservation length in minutes for a resource kind"""
        if kind is ResourceKind.TABLE:
            return self.dining_duration_minutes
        if resource is not None and resource.block_minutes:
            return resource.block_minutes
        return self.session_duration_minutes

    def in_target_window(self, ts: datetime) -> bool:
        moment = ts.time()
        return any(start <= moment < end for start, end in self.target_windows)
