"""Notification dispatch: templates, dispatchers and SMS delivery"""

from datetime import timedelta
from typing import Any, Dict, Optional, Protocol

from twilio.rest import Client as TwilioClient
import structlog

from app.config import settings
from app.models.reservation import Reservation
from app.models.venue import Venue
from app.services.clock import Clock

logger = structlog.get_logger()

TEMPLATES = {
    "session_warning": (
        "Heads up: your {resource_label} session at {venue_name} ends at {end_time}. "
        "Open the app to add more time."
    ),
    "session_expired": "Your {resource_label} session at {venue_name} has ended. Thanks for playing!",
    "extension_approved": "You're all set! Your {resource_label} session now ends at {end_time}.",
    "extension_declined": (
        "Sorry, we couldn't extend your {resource_label} session at {venue_name}. "
        "It still ends at {end_time}."
    ),
    "reservation_reminder": (
        "Reminder: Your reservation at {venue_name} is coming up! "
        "{party_size} guests at {start_time}. See you soon!"
    ),
}


def render_template(template_id: str, payload: Dict[str, Any]) -> str:
    try:
        template = TEMPLATES[template_id]
    except KeyError:
        raise ValueError(f"Unknown notification template: {template_id}")
    return template.format(**payload)


def reservation_payload(reservation: Reservation, venue: Venue, resource_label: Optional[str] = None) -> Dict[str, Any]:
    """Template variables for a reservation"""
    return {
        "reservation_id": str(reservation.id),
        "venue_name": venue.name,
        "resource_label": resource_label or reservation.resource_kind.value.replace("_", " "),
        "party_size": reservation.party_size,
        "start_time": reservation.start_at.strftime("%I:%M %p"),
        "end_time": reservation.end_at.strftime("%I:%M %p"),
        "phone": reservation.guest_phone,
    }


class NotificationDispatcher(Protocol):
    async def notify(self, owner_id: str, template_id: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatcher:
    """Logs notifications instead of delivering them"""

    async def notify(self, owner_id: str, template_id: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notification",
            owner_id=owner_id,
            template_id=template_id,
            message=render_template(template_id, payload),
        )


class CeleryNotificationDispatcher:
    """Hands notifications to the worker for SMS delivery"""

    async def notify(self, owner_id: str, template_id: str, payload: Dict[str, Any]) -> None:
        from app.jobs.tasks import send_notification

        send_notification.delay(owner_id, template_id, payload)


def send_sms(to: str, body: str) -> str:
    """Send an SMS through Twilio and return the message sid"""
    client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
    message = client.messages.create(
        body=body,
        from_=settings.twilio_phone_number,
        to=to,
    )
    return message.sid


async def dispatch_due_reminders(ledger, dispatcher: NotificationDispatcher, clock: Clock) -> int:
    """Remind owners of reservations starting two to four hours from now.

    Each reservation is claimed before sending so it is reminded at most once,
    even with overlapping runs. Delivery failures are logged.
    """
    sent = 0
    for venue in await ledger.registry.list_venues():
        now = clock.now(venue.timezone)
        due = await ledger.list_due_reminders(venue.id, now + timedelta(hours=2), now + timedelta(hours=4))
        for reservation in due:
            if not reservation.owner_id and not reservation.guest_phone:
                continue
            if not await ledger.mark_reminded(reservation.id, now):
                continue
            try:
                await dispatcher.notify(
                    reservation.owner_id,
                    "reservation_reminder",
                    reservation_payload(reservation, venue),
                )
                sent += 1
                logger.info("Sent reservation reminder", reservation_id=str(reservation.id))
            except Exception as e:
                logger.error(
                    "Failed to send reservation reminder",
                    reservation_id=str(reservation.id),
                    error=str(e),
                )
    return sent
