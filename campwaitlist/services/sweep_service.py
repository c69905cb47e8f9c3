"""
Expiry sweep.

Finds offers that lapsed without being accepted, sends their holders back to
the end of the queue and offers the freed seats to the next in line. Driven
by the cron endpoint or the in-process scheduler; running it twice in a row
changes nothing the second time.
"""

import time
from collections import defaultdict
from dataclasses import dataclass

from campwaitlist.core.config import Settings
from campwaitlist.core.logging import get_logger
from campwaitlist.core.metrics import record_offer_outcome, sweep_duration, sweep_runs
from campwaitlist.services.interfaces.notifications import NotificationOutbox, NotificationSender
from campwaitlist.services.interfaces.queue_store import QueueStore, WaitlistEntry
from campwaitlist.services.notification_service import Notifier, dispatch_outbox
from campwaitlist.services.offer_service import OfferService, new_offer_token

logger = get_logger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    new_offers_sent: int = 0
    failed: int = 0
    notifications_dispatched: int = 0
    notifications_failed: int = 0


class ExpirySweeper:
    def __init__(
        self,
        store: QueueStore,
        offers: OfferService,
        notifier: Notifier,
        outbox: NotificationOutbox,
        sender: NotificationSender,
        settings: Settings,
    ):
        self.store = store
        self.offers = offers
        self.notifier = notifier
        self.outbox = outbox
        self.sender = sender
        self.settings = settings

    async def expire_stale_offers(self) -> SweepResult:
        result = SweepResult()
        now = self.offers.clock()
        requeued: defaultdict[str, list[WaitlistEntry]] = defaultdict(list)

        for entry in await self.store.list_stale_offers(now):
            try:
                moved = await self.store.requeue_to_tail(entry.id, now, fresh_token=new_offer_token())
            except Exception:
                result.failed += 1
                logger.exception("sweep_requeue_failed", entry_id=entry.id, camp_id=entry.camp_id)
                continue
            if moved is None:
                # Accepted, declined or re-offered since it was listed
                continue
            result.expired += 1
            record_offer_outcome("expired")
            requeued[moved.camp_id].append(moved)
            logger.info("offer_expired", entry_id=moved.id, camp_id=moved.camp_id, new_position=moved.position)

        for camp_id, entries in requeued.items():
            try:
                await self.store.compact_positions(camp_id)
                camp = await self.store.get_camp(camp_id)
                for moved in entries:
                    current = await self.store.get_entry(moved.id)
                    if camp is not None and current is not None:
                        await self.notifier.offer_expired(current, camp)
                if await self.offers.spot_opened(camp_id) is not None:
                    result.new_offers_sent += 1
            except Exception:
                result.failed += 1
                logger.exception("sweep_camp_failed", camp_id=camp_id)

        return result

    async def run(self) -> SweepResult:
        """Expire stale offers, then drain the notification outbox."""
        started = time.perf_counter()
        result = await self.expire_stale_offers()

        try:
            dispatch = await dispatch_outbox(
                self.outbox,
                self.sender,
                max_attempts=self.settings.OUTBOX_MAX_ATTEMPTS,
                batch_size=self.settings.OUTBOX_BATCH_SIZE,
            )
        except Exception:
            logger.exception("sweep_outbox_drain_failed")
        else:
            result.notifications_dispatched = dispatch.dispatched
            result.notifications_failed = dispatch.failed

        sweep_duration.observe(time.perf_counter() - started)
        sweep_runs.labels(result="partial" if result.failed else "ok").inc()
        logger.info(
            "sweep_completed",
            expired=result.expired,
            new_offers_sent=result.new_offers_sent,
            failed=result.failed,
            notifications_dispatched=result.notifications_dispatched,
            notifications_failed=result.notifications_failed,
        )
        return result
