"""
Notification outbox implementations.

Redis layout:
  waitlist:outbox:pending  LIST of JSON notifications, RPUSH to enqueue,
                           LPOP to claim (oldest first)
  waitlist:outbox:dead     LIST of notifications that exhausted retries

A claimed message lives only in the dispatcher's memory until it is either
delivered or pushed back. A crash mid-drain loses that batch; the engine's
state is unaffected and the expiry and offer emails are informational, so
at-most-once for a crashed batch and at-least-once otherwise is accepted.
"""

from collections import deque

import redis.asyncio as redis
from redis.exceptions import RedisError

from campwaitlist.core.metrics import redis_connection_errors
from campwaitlist.services.interfaces.notifications import Notification, NotificationOutbox


PENDING_KEY = "waitlist:outbox:pending"
DEAD_KEY = "waitlist:outbox:dead"


class RedisOutbox(NotificationOutbox):
    """Outbox shared by every API worker and the sweep."""

    def __init__(self, client: redis.Redis):
        self.redis = client

    async def enqueue(self, notification: Notification) -> None:
        try:
            await self.redis.rpush(PENDING_KEY, notification.to_json())
        except RedisError:
            redis_connection_errors.inc()
            raise

    async def claim_batch(self, limit: int) -> list[Notification]:
        try:
            raw = await self.redis.lpop(PENDING_KEY, limit)
        except RedisError:
            redis_connection_errors.inc()
            raise
        return [Notification.from_json(item) for item in raw or []]

    async def dead_letter(self, notification: Notification) -> None:
        try:
            await self.redis.rpush(DEAD_KEY, notification.to_json())
        except RedisError:
            redis_connection_errors.inc()
            raise

    async def pending_count(self) -> int:
        return await self.redis.llen(PENDING_KEY)


class InMemoryOutbox(NotificationOutbox):
    """
    Process-local outbox.

    Use when:
    - Tests
    - Single-process deployments without Redis
    """

    def __init__(self):
        self.pending: deque[Notification] = deque()
        self.dead: list[Notification] = []

    async def enqueue(self, notification: Notification) -> None:
        self.pending.append(notification)

    async def claim_batch(self, limit: int) -> list[Notification]:
        batch = []
        while self.pending and len(batch) < limit:
            batch.append(self.pending.popleft())
        return batch

    async def dead_letter(self, notification: Notification) -> None:
        self.dead.append(notification)

    async def pending_count(self) -> int:
        return len(self.pending)
