"""
Notification sender and outbox interfaces.
"""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum


class NotificationKind(str, Enum):
    JOIN_CONFIRMATION = "join_confirmation"
    OFFER_ISSUED = "offer_issued"
    OFFER_EXPIRED = "offer_expired"
    NEARBY_ALTERNATIVES = "nearby_alternatives"


@dataclass
class Notification:
    kind: str
    recipient: str
    context: dict
    payload: dict
    attempts: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, raw: str) -> "Notification":
        return cls(**json.loads(raw))


class NotificationSender(ABC):
    """
    Delivers one message to one recipient.

    Implementations:
    - ResendNotificationSender: transactional email over the Resend HTTP API
    - LoggingNotificationSender: writes the message to the structured log
    """

    @abstractmethod
    async def send(self, kind: str, recipient: str, context: dict, payload: dict) -> bool:
        """
        Returns:
            True if the provider accepted the message
            False if delivery failed and should be retried
        """
        pass


class NotificationOutbox(ABC):
    """
    Durable queue between the waitlist engine and the notification sender.

    The engine only enqueues; a drain (after each request and on every sweep)
    hands messages to the sender and re-enqueues failures until they run out
    of attempts.
    """

    @abstractmethod
    async def enqueue(self, notification: Notification) -> None:
        pass

    @abstractmethod
    async def claim_batch(self, limit: int) -> list[Notification]:
        """Remove and return up to `limit` pending messages, oldest first."""
        pass

    @abstractmethod
    async def dead_letter(self, notification: Notification) -> None:
        pass

    @abstractmethod
    async def pending_count(self) -> int:
        pass
