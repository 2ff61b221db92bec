"""
Reconciliation of an external reservation book (OpenTable) with the ledger.

External reservations are matched to ledger rows by their external id. Rows the
ledger is missing are created through the normal ledger path, so they compete
for capacity like any other booking. Start times are rounded down to the slot
grid on intake.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog

from app.errors import InvalidRequest, LineupError
from app.models.reservation import Reservation, ReservationStatus, SourceSystem
from app.models.resource import ResourceKind
from app.models.venue import Venue
from app.services.actors import Actor
from app.services.clock import Clock, quantize_to_slot, to_venue_local
from app.services.ledger import ReservationLedger, ResourceRequest

logger = structlog.get_logger()

EXTERNAL_STATUS_MAP = {
    "confirmed": ReservationStatus.CONFIRMED,
    "booked": ReservationStatus.CONFIRMED,
    "seated": ReservationStatus.ARRIVED,
    "checked_in": ReservationStatus.ARRIVED,
    "arrived": ReservationStatus.ARRIVED,
    "completed": ReservationStatus.COMPLETED,
    "done": ReservationStatus.COMPLETED,
    "cancelled": ReservationStatus.CANCELLED,
    "canceled": ReservationStatus.CANCELLED,
    "no_show": ReservationStatus.NO_SHOW,
}


@dataclass
class ExternalReservation:
    """Reservation as reported by the external book"""
    external_id: str
    start: datetime
    party_size: int
    status: ReservationStatus = ReservationStatus.CONFIRMED
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ExternalReservation":
        """Normalize a webhook or API payload, accepting either field spelling"""
        data = payload.get("data") or payload
        external_id = data.get("reservationId") or data.get("reservation_id") or data.get("id")
        raw_start = (
            data.get("reservationDateTime")
            or data.get("reservation_date_time")
            or data.get("datetime")
        )
        if not external_id or not raw_start:
            raise InvalidRequest("External reservation needs an id and a start time")

        try:
            start = datetime.fromisoformat(str(raw_start).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidRequest(f"Unparseable start time: {raw_start}")

        raw_status = str(data.get("status") or "confirmed").lower()
        status = EXTERNAL_STATUS_MAP.get(raw_status)
        if status is None:
            raise InvalidRequest(f"Unknown external status: {raw_status}")
        if payload.get("eventType") == "reservation.cancelled":
            status = ReservationStatus.CANCELLED

        return cls(
            external_id=str(external_id),
            start=start,
            party_size=int(data.get("partySize") or data.get("party_size") or data.get("guest_count") or 1),
            status=status,
            guest_name=data.get("dinerName") or data.get("guest_name") or data.get("name") or "OpenTable Guest",
            guest_phone=data.get("dinerPhone") or data.get("phone"),
            notes=data.get("specialRequests") or data.get("special_requests") or data.get("notes"),
        )


class DivergenceType(str, enum.Enum):
    CREATE_FAILED = "create_failed"
    STATUS_MISMATCH = "status_mismatch"
    FIELD_MISMATCH = "field_mismatch"
    MISSING_IN_SOURCE = "missing_in_source"


@dataclass
class Divergence:
    type: DivergenceType
    external_id: str
    reservation_id: Optional[UUID] = None
    detail: str = ""


@dataclass
class ReconciliationReport:
    venue_id: UUID
    window_start: datetime
    window_end: datetime
    source_count: int = 0
    ledger_count: int = 0
    created: List[UUID] = field(default_factory=list)
    updated: List[UUID] = field(default_factory=list)
    cancelled: List[UUID] = field(default_factory=list)
    divergences: List[Divergence] = field(default_factory=list)


class ReservationReconciler:
    def __init__(
        self,
        ledger: ReservationLedger,
        clock: Clock,
        source_system: SourceSystem = SourceSystem.OPENTABLE,
    ):
        self.ledger = ledger
        self._clock = clock
        self.source_system = source_system
        self._actor = Actor.system()

    def _local_start(self, venue: Venue, external: ExternalReservation) -> datetime:
        start = to_venue_local(external.start, venue.timezone)
        policy = self.ledger.registry.policy_for(venue)
        return quantize_to_slot(start, policy.granularity_minutes)

    async def _apply_status(self, reservation: Reservation, target: ReservationStatus) -> Reservation:
        """Walk a ledger row to the status the external book reports"""
        if reservation.status == target:
            return reservation
        if target == ReservationStatus.CANCELLED:
            return await self.ledger.cancel(reservation.id, self._actor, reason=f"cancelled in {self.source_system.value}")
        if target == ReservationStatus.NO_SHOW:
            return await self.ledger.mark_no_show(reservation.id, self._actor)
        if target in (ReservationStatus.ARRIVED, ReservationStatus.COMPLETED):
            if reservation.status == ReservationStatus.CONFIRMED:
                reservation = await self.ledger.mark_arrived(reservation.id, self._actor)
            if target == ReservationStatus.COMPLETED:
                reservation = await self.ledger.mark_completed(reservation.id, self._actor)
            return reservation
        raise InvalidRequest(
            f"Cannot move {reservation.status.value} reservation back to {target.value}",
            reservation_id=str(reservation.id),
        )

    async def ingest(self, venue_id: UUID, external: ExternalReservation) -> Optional[Reservation]:
        """Apply a single external event; repeated events are no-ops"""
        venue = await self.ledger.registry.fetch_venue(venue_id)
        existing = await self.ledger.find_by_external_id(venue_id, self.source_system, external.external_id)

        if existing is not None:
            updated = await self._apply_status(existing, external.status)
            if updated.status != existing.status:
                logger.info(
                    "External status applied",
                    reservation_id=str(existing.id),
                    external_id=external.external_id,
                    status=updated.status.value,
                )
            return updated

        if external.status == ReservationStatus.CANCELLED:
            logger.info("Ignoring cancellation for unknown external reservation", external_id=external.external_id)
            return None

        reservation = await self.ledger.create(
            venue_id,
            ResourceRequest(kind=ResourceKind.TABLE),
            self._local_start(venue, external),
            external.duration_minutes,
            external.party_size,
            None,
            self.source_system,
            guest_name=external.guest_name,
            guest_phone=external.guest_phone,
            notes=external.notes,
            external_id=external.external_id,
            actor=self._actor,
        )
        if external.status != ReservationStatus.CONFIRMED:
            reservation = await self._apply_status(reservation, external.status)
        return reservation

    async def reconcile(
        self,
        venue_id: UUID,
        external_reservations: List[ExternalReservation],
        window_start: datetime,
        window_end: datetime,
    ) -> ReconciliationReport:
        """Bring the ledger in line with the external book over a window"""
        venue = await self.ledger.registry.fetch_venue(venue_id)
        now = self._clock.now(venue.timezone)
        rows = await self.ledger.list_for_venue(
            venue_id, window_start, window_end, source_system=self.source_system
        )
        ledger_map = {r.source_external_id: r for r in rows if r.source_external_id}
        source_map = {e.external_id: e for e in external_reservations}

        report = ReconciliationReport(
            venue_id=venue_id,
            window_start=window_start,
            window_end=window_end,
            source_count=len(source_map),
            ledger_count=len(ledger_map),
        )

        for external_id, external in source_map.items():
            row = ledger_map.get(external_id)
            if row is None:
                if external.status == ReservationStatus.CANCELLED:
                    continue
                try:
                    created = await self.ingest(venue_id, external)
                    report.created.append(created.id)
                except LineupError as e:
                    logger.warning("Reconciliation create failed", external_id=external_id, error=e.message)
                    report.divergences.append(
                        Divergence(type=DivergenceType.CREATE_FAILED, external_id=external_id, detail=e.message)
                    )
                continue

            if row.status != external.status:
                try:
                    await self._apply_status(row, external.status)
                    if external.status == ReservationStatus.CANCELLED:
                        report.cancelled.append(row.id)
                    else:
                        report.updated.append(row.id)
                except LineupError as e:
                    report.divergences.append(
                        Divergence(
                            type=DivergenceType.STATUS_MISMATCH,
                            external_id=external_id,
                            reservation_id=row.id,
                            detail=f"ledger {row.status.value}, source {external.status.value}: {e.message}",
                        )
                    )
                continue

            if not row.is_terminal and (
                self._local_start(venue, external) != row.start_at or external.party_size != row.party_size
            ):
                report.divergences.append(
                    Divergence(
                        type=DivergenceType.FIELD_MISMATCH,
                        external_id=external_id,
                        reservation_id=row.id,
                        detail="start or party size differs",
                    )
                )

        for external_id, row in ledger_map.items():
            if external_id in source_map or row.is_terminal:
                continue
            if row.start_at > now:
                try:
                    await self.ledger.cancel(
                        row.id, self._actor, reason=f"no longer listed in {self.source_system.value}"
                    )
                    report.cancelled.append(row.id)
                    continue
                except LineupError as e:
                    detail = e.message
            else:
                detail = "past reservation missing from source"
            report.divergences.append(
                Divergence(
                    type=DivergenceType.MISSING_IN_SOURCE,
                    external_id=external_id,
                    reservation_id=row.id,
                    detail=detail,
                )
            )

        logger.info(
            "Reconciliation complete",
            venue_id=str(venue_id),
            created=len(report.created),
            updated=len(report.updated),
            cancelled=len(report.cancelled),
            divergences=len(report.divergences),
        )
        return report
