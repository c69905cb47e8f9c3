"""
FastAPI dependencies that assemble the waitlist services per request.

Backends come from the store factory singletons; tests replace them through
app.dependency_overrides.
"""

from datetime import datetime
from typing import Callable

from fastapi import BackgroundTasks, Depends

from campwaitlist.core.config import Settings, get_settings
from campwaitlist.services.interfaces import (
    CheckoutInitiator,
    NotificationOutbox,
    NotificationSender,
    QueueStore,
)
from campwaitlist.services.notification_service import Notifier, dispatch_outbox
from campwaitlist.services.offer_service import OfferService, utc_now
from campwaitlist.services.store_factory import (
    get_checkout_initiator,
    get_notification_sender,
    get_outbox,
    get_queue_store,
)
from campwaitlist.services.sweep_service import ExpirySweeper
from campwaitlist.services.waitlist_service import WaitlistService


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_notifier(
    outbox: NotificationOutbox = Depends(get_outbox),
    settings: Settings = Depends(get_settings),
) -> Notifier:
    return Notifier(outbox, settings)


def get_offer_service(
    store: QueueStore = Depends(get_queue_store),
    notifier: Notifier = Depends(get_notifier),
    checkout: CheckoutInitiator = Depends(get_checkout_initiator),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OfferService:
    return OfferService(store, notifier, checkout, settings, clock=clock)


def get_waitlist_service(
    store: QueueStore = Depends(get_queue_store),
    offers: OfferService = Depends(get_offer_service),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> WaitlistService:
    return WaitlistService(store, offers, notifier, settings)


def get_sweeper(
    store: QueueStore = Depends(get_queue_store),
    offers: OfferService = Depends(get_offer_service),
    notifier: Notifier = Depends(get_notifier),
    outbox: NotificationOutbox = Depends(get_outbox),
    sender: NotificationSender = Depends(get_notification_sender),
    settings: Settings = Depends(get_settings),
) -> ExpirySweeper:
    return ExpirySweeper(store, offers, notifier, outbox, sender, settings)


class OutboxDrain:
    """Schedules an outbox drain after the response has been sent."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        outbox: NotificationOutbox = Depends(get_outbox),
        sender: NotificationSender = Depends(get_notification_sender),
        settings: Settings = Depends(get_settings),
    ):
        self.background_tasks = background_tasks
        self.outbox = outbox
        self.sender = sender
        self.settings = settings

    def schedule(self) -> None:
        self.background_tasks.add_task(
            dispatch_outbox,
            self.outbox,
            self.sender,
            self.settings.OUTBOX_MAX_ATTEMPTS,
            self.settings.OUTBOX_BATCH_SIZE,
        )
