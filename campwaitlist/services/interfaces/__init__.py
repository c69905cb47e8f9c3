"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .queue_store import QueueStore
from .notifications import NotificationOutbox, NotificationSender
from .payments import CheckoutInitiator

__all__ = ['QueueStore', 'NotificationOutbox', 'NotificationSender', 'CheckoutInitiator']
