"""
Backend factory.
Configures which queue store, outbox and external collaborators to use.
"""

from typing import Optional

from campwaitlist.core.config import get_settings
from campwaitlist.infrastructure.email import build_notification_sender
from campwaitlist.infrastructure.outbox import InMemoryOutbox, RedisOutbox
from campwaitlist.infrastructure.payments import StripeCheckoutInitiator
from campwaitlist.infrastructure.redis_client import get_redis
from campwaitlist.services.interfaces import (
    CheckoutInitiator,
    NotificationOutbox,
    NotificationSender,
    QueueStore,
)


def build_queue_store() -> QueueStore:
    """
    Get configured queue store.

    Backend selection:
    - sql: PostgreSQL, row lock on the camp per critical section
    - memory: single process, local demos

    Overridden via QUEUE_STORE_BACKEND env var.
    """
    settings = get_settings()
    if settings.QUEUE_STORE_BACKEND == "memory":
        from campwaitlist.services.interfaces.memory_store import InMemoryQueueStore
        return InMemoryQueueStore()

    from campwaitlist.db.session import AsyncSessionLocal
    from campwaitlist.services.queue_store import SqlQueueStore
    return SqlQueueStore(AsyncSessionLocal)


def build_outbox() -> NotificationOutbox:
    settings = get_settings()
    if settings.OUTBOX_BACKEND == "redis" and settings.REDIS_ENABLED:
        return RedisOutbox(get_redis())
    return InMemoryOutbox()


# Singleton instances
_store: Optional[QueueStore] = None
_outbox: Optional[NotificationOutbox] = None
_sender: Optional[NotificationSender] = None
_checkout: Optional[CheckoutInitiator] = None


def get_queue_store() -> QueueStore:
    global _store
    if _store is None:
        _store = build_queue_store()
    return _store


def get_outbox() -> NotificationOutbox:
    global _outbox
    if _outbox is None:
        _outbox = build_outbox()
    return _outbox


def get_notification_sender() -> NotificationSender:
    global _sender
    if _sender is None:
        _sender = build_notification_sender()
    return _sender


def get_checkout_initiator() -> CheckoutInitiator:
    global _checkout
    if _checkout is None:
        _checkout = StripeCheckoutInitiator(get_settings().STRIPE_SECRET_KEY)
    return _checkout
