"""
Extension and expiration scheduler for session resources.

A lane or gaming-block session moves ACTIVE -> WARNING when it enters the last
``warning_minutes`` before its end, and WARNING -> EXPIRED once the end passes.
Owners may ask for more time only while in WARNING. A granted extension puts
the session back to ACTIVE with the new end time.

The periodic sweep is safe to run concurrently with itself and with ledger
calls: every state change is a compare-and-set in the ledger, and a warning
notification goes out only for the sweep that won the transition.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog

from app.errors import InvalidRequest, InvalidState, NotFound, SlotUnavailable, Unauthorized
from app.models.extension import ExtensionRequest
from app.models.reservation import Reservation, SessionState
from app.models.venue import Venue
from app.services.actors import SYSTEM_ACTOR_ID, Actor
from app.services.clock import Clock
from app.services.ledger import ReservationLedger
from app.services.notifications import NotificationDispatcher, reservation_payload

logger = structlog.get_logger()


@dataclass
class SweepReport:
    warned: List[UUID] = field(default_factory=list)
    expired: List[UUID] = field(default_factory=list)


@dataclass
class ExtensionOutcome:
    request: ExtensionRequest
    reservation: Reservation


class ExpirationScheduler:
    def __init__(self, ledger: ReservationLedger, dispatcher: NotificationDispatcher, clock: Clock):
        self.ledger = ledger
        self.dispatcher = dispatcher
        self._clock = clock

    async def _notify(self, reservation: Reservation, venue: Venue, template_id: str, **extra: Any) -> None:
        """Best-effort delivery; failures never undo a state change"""
        if not reservation.owner_id:
            return
        payload: Dict[str, Any] = reservation_payload(reservation, venue)
        payload.update(extra)
        try:
            await self.dispatcher.notify(reservation.owner_id, template_id, payload)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                reservation_id=str(reservation.id),
                template_id=template_id,
                error=str(e),
            )

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Scan open sessions for warning crossings and expirations.

        ``now`` overrides the clock for every venue; without it each venue is
        judged on its own local time.
        """
        report = SweepReport()
        for reservation, venue in await self.ledger.list_open_sessions():
            current = now or self._clock.now(venue.timezone)
            policy = self.ledger.registry.policy_for(venue)

            if current >= reservation.end_at:
                if await self.ledger.expire_session(reservation.id, current):
                    report.expired.append(reservation.id)
                    logger.info(
                        "Session expired",
                        reservation_id=str(reservation.id),
                        venue_id=str(venue.id),
                        end_at=reservation.end_at.isoformat(),
                    )
                    await self._notify(reservation, venue, "session_expired")
                continue

            warning_at = reservation.end_at - timedelta(minutes=policy.warning_minutes)
            if (
                reservation.session_state == SessionState.ACTIVE
                and reservation.start_at <= current
                and current >= warning_at
            ):
                if await self.ledger.enter_warning(reservation.id, current):
                    report.warned.append(reservation.id)
                    logger.info(
                        "Session entered warning",
                        reservation_id=str(reservation.id),
                        venue_id=str(venue.id),
                        end_at=reservation.end_at.isoformat(),
                    )
                    await self._notify(reservation, venue, "session_warning")

        if report.warned or report.expired:
            logger.info("Sweep complete", warned=len(report.warned), expired=len(report.expired))
        return report

    async def request_extension(self, reservation_id: UUID, actor: Actor, minutes: int) -> ExtensionOutcome:
        """File an extension request from the session owner.

        With auto-approval on, the request is granted or denied right away and
        a denial surfaces as ``SlotUnavailable``. Otherwise it waits for staff.
        """
        reservation = await self.ledger.get(reservation_id)
        venue = await self.ledger.registry.fetch_venue(reservation.venue_id)
        policy = self.ledger.registry.policy_for(venue)
        now = self._clock.now(venue.timezone)

        if not reservation.resource_kind.is_exclusive:
            raise InvalidRequest("Only lane and time-block sessions can be extended")
        if actor.user_id != reservation.owner_id and not actor.can_override(reservation.venue_id):
            raise Unauthorized("Only the reservation owner may request an extension")
        if reservation.session_state != SessionState.WARNING or now >= reservation.end_at:
            raise InvalidState(
                "Extensions can only be requested while the session is ending",
                session_state=reservation.session_state.value if reservation.session_state else None,
            )
        if minutes not in policy.extension_increments:
            raise InvalidRequest(
                f"Extensions come in {', '.join(str(m) for m in policy.extension_increments)} minute increments",
                minutes=minutes,
            )

        request = await self.ledger.add_extension_request(reservation_id, minutes, actor.user_id, now)
        logger.info(
            "Extension requested",
            reservation_id=str(reservation_id),
            request_id=str(request.id),
            minutes=minutes,
        )

        if not policy.auto_approve_extensions:
            return ExtensionOutcome(request=request, reservation=reservation)
        return await self._grant(request, venue, SYSTEM_ACTOR_ID)

    async def _grant(self, request: ExtensionRequest, venue: Venue, decided_by: str) -> ExtensionOutcome:
        try:
            reservation = await self.ledger.extend_session(request.reservation_id, request.id, decided_by)
        except SlotUnavailable as e:
            denied = await self.ledger.deny_extension_request(request.id, decided_by, reason=e.message)
            reservation = await self.ledger.get(request.reservation_id)
            logger.warning(
                "Extension denied",
                reservation_id=str(request.reservation_id),
                request_id=str(request.id),
                reason=e.message,
            )
            await self._notify(reservation, venue, "extension_declined")
            e.extra["request_id"] = str(denied.id)
            raise

        request = await self.ledger.get_extension_request(request.id)
        await self._notify(reservation, venue, "extension_approved")
        return ExtensionOutcome(request=request, reservation=reservation)

    async def _load_for_decision(self, request_id: UUID, actor: Actor, reservation_id: Optional[UUID] = None):
        request = await self.ledger.get_extension_request(request_id)
        if reservation_id is not None and request.reservation_id != reservation_id:
            raise NotFound(f"Extension request {request_id} not found", request_id=str(request_id))
        reservation = await self.ledger.get(request.reservation_id)
        if not actor.can_override(reservation.venue_id):
            raise Unauthorized("Only venue staff may decide extension requests")
        venue = await self.ledger.registry.fetch_venue(reservation.venue_id)
        return request, reservation, venue

    async def approve_extension(
        self,
        request_id: UUID,
        actor: Actor,
        reservation_id: Optional[UUID] = None,
    ) -> ExtensionOutcome:
        """Staff approval for venues without auto-approval"""
        request, _, venue = await self._load_for_decision(request_id, actor, reservation_id)
        return await self._grant(request, venue, actor.user_id)

    async def deny_extension(
        self,
        request_id: UUID,
        actor: Actor,
        reason: Optional[str] = None,
        reservation_id: Optional[UUID] = None,
    ) -> ExtensionOutcome:
        request, reservation, venue = await self._load_for_decision(request_id, actor, reservation_id)
        request = await self.ledger.deny_extension_request(request.id, actor.user_id, reason=reason)
        await self._notify(reservation, venue, "extension_declined")
        return ExtensionOutcome(request=request, reservation=reservation)

