"""Background job tasks"""

from typing import Any, Dict, Optional
from uuid import UUID
import asyncio
import structlog

from app.jobs.celery_app import celery_app

logger = structlog.get_logger()


def run_async(coro):
    """Run a coroutine to completion from a worker process"""
    return asyncio.run(coro)


def _build_ledger():
    from app.api.deps import resource_locks, system_clock
    from app.config import settings
    from app.database import SessionLocal
    from app.services.ledger import ReservationLedger

    return ReservationLedger(SessionLocal, system_clock, locks=resource_locks, settings=settings)


@celery_app.task(name="sweep_session_expirations")
def sweep_session_expirations():
    """Warn sessions that are about to end and expire finished ones"""

    async def _sweep():
        from app.api.deps import system_clock
        from app.database import engine
        from app.services.notifications import CeleryNotificationDispatcher
        from app.services.scheduler import ExpirationScheduler

        try:
            scheduler = ExpirationScheduler(_build_ledger(), CeleryNotificationDispatcher(), system_clock)
            report = await scheduler.sweep()
            return {"warned": len(report.warned), "expired": len(report.expired)}
        finally:
            await engine.dispose()

    return run_async(_sweep())


@celery_app.task(name="send_notification")
def send_notification(owner_id: Optional[str], template_id: str, payload: Dict[str, Any]):
    """Render a notification and deliver it by SMS"""
    logger.info("Sending notification", owner_id=owner_id, template_id=template_id)

    async def _lookup_phone() -> Optional[str]:
        from app.database import SessionLocal, engine
        from app.models.user import User

        if not owner_id:
            return None
        try:
            user_id = UUID(owner_id)
        except ValueError:
            return None
        try:
            async with SessionLocal() as db:
                user = await db.get(User, user_id)
                return user.phone if user else None
        finally:
            await engine.dispose()

    from app.services.notifications import render_template, send_sms

    body = render_template(template_id, payload)
    phone = payload.get("phone") or run_async(_lookup_phone())
    if not phone:
        logger.warning("No phone number for notification", owner_id=owner_id, template_id=template_id)
        return None

    sid = send_sms(phone, body)
    logger.info("Notification sent", owner_id=owner_id, template_id=template_id, message_sid=sid)
    return sid


@celery_app.task(name="send_reservation_reminders")
def send_reservation_reminders():
    """Send reminders for upcoming reservations"""
    logger.info("Sending reservation reminders")

    async def _send_reminders():
        from app.api.deps import system_clock
        from app.database import engine
        from app.services.notifications import CeleryNotificationDispatcher, dispatch_due_reminders

        try:
            return await dispatch_due_reminders(_build_ledger(), CeleryNotificationDispatcher(), system_clock)
        finally:
            await engine.dispose()

    return run_async(_send_reminders())
