"""Service providers for the API routers"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.database import get_session_factory
from app.services.availability import AvailabilityEngine
from app.services.clock import Clock, SystemClock
from app.services.ledger import ReservationLedger
from app.services.locks import LockRegistry
from app.services.notifications import CeleryNotificationDispatcher, NotificationDispatcher
from app.services.reconciliation import ReservationReconciler
from app.services.registry import ResourceRegistry
from app.services.scheduler import ExpirationScheduler

# Shared by every request in this process
resource_locks = LockRegistry()
system_clock = SystemClock()


def get_clock() -> Clock:
    return system_clock


def get_dispatcher() -> NotificationDispatcher:
    return CeleryNotificationDispatcher()


def get_registry(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ResourceRegistry:
    return ResourceRegistry(session_factory, settings)


def get_ledger(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    registry: ResourceRegistry = Depends(get_registry),
) -> ReservationLedger:
    return ReservationLedger(session_factory, clock, registry=registry, locks=resource_locks, settings=settings)


def get_engine(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    ledger: ReservationLedger = Depends(get_ledger),
) -> AvailabilityEngine:
    return AvailabilityEngine(session_factory, clock, ledger=ledger, settings=settings)


def get_scheduler(
    ledger: ReservationLedger = Depends(get_ledger),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> ExpirationScheduler:
    return ExpirationScheduler(ledger, dispatcher, clock)


def get_reconciler(
    ledger: ReservationLedger = Depends(get_ledger),
    clock: Clock = Depends(get_clock),
) -> ReservationReconciler:
    return ReservationReconciler(ledger, clock)
