"""
Waitlist notifications: building messages and draining the outbox.

Enqueueing never raises into the caller. A join or an offer is already
committed when its message is built; losing the message is logged and
counted, never rolled back into the queue.
"""

from dataclasses import dataclass
from datetime import datetime

from campwaitlist.core.config import Settings
from campwaitlist.core.logging import get_logger
from campwaitlist.core.metrics import outbox_dead_letters, record_notification
from campwaitlist.services.interfaces.notifications import (
    Notification,
    NotificationKind,
    NotificationOutbox,
    NotificationSender,
)
from campwaitlist.services.interfaces.queue_store import AvailableCamp, CampSnapshot, WaitlistEntry

logger = get_logger(__name__)


def format_price(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def format_dates(camp: CampSnapshot) -> str:
    start = f"{camp.start_date:%b} {camp.start_date.day}"
    end = f"{camp.end_date:%b} {camp.end_date.day}, {camp.end_date.year}"
    return f"{start} - {end}"


def format_deadline(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    return f"{moment:%b} {moment.day}, {moment.year} {hour}:{moment:%M %p} UTC"


def camp_context(camp: CampSnapshot) -> dict:
    return {
        "camp_id": camp.id,
        "tenant_id": camp.tenant_id,
        "camp_name": camp.name,
        "camp_dates": format_dates(camp),
        "location": camp.location_name or "TBD",
    }


class Notifier:
    """Turns waitlist events into outbox messages addressed to the account holder."""

    def __init__(self, outbox: NotificationOutbox, settings: Settings):
        self.outbox = outbox
        self.settings = settings

    def _offer_url(self, token: str, action: str | None = None) -> str:
        url = f"{self.settings.APP_URL}/waitlist/offer/{token}"
        return f"{url}?action={action}" if action else url

    async def _enqueue(
        self,
        kind: NotificationKind,
        entry: WaitlistEntry,
        context: dict,
        payload: dict,
    ) -> bool:
        recipient = entry.holder.email if entry.holder else None
        if not recipient:
            logger.warning("notification_skipped_no_recipient", kind=kind.value, entry_id=entry.id)
            return False

        base_payload = {
            "entry_id": entry.id,
            "user_id": entry.holder_id,
            "holder_first_name": entry.holder.first_name or "Parent",
            "camper_first_name": entry.camper.first_name if entry.camper else "Your camper",
        }
        notification = Notification(
            kind=kind.value,
            recipient=recipient,
            context=context,
            payload={**base_payload, **payload},
        )
        try:
            await self.outbox.enqueue(notification)
        except Exception:
            logger.exception("notification_enqueue_failed", kind=kind.value, entry_id=entry.id)
            record_notification(kind.value, delivered=False)
            return False

        logger.debug("notification_enqueued", kind=kind.value, entry_id=entry.id)
        return True

    async def join_confirmed(self, entry: WaitlistEntry, camp: CampSnapshot) -> bool:
        return await self._enqueue(
            NotificationKind.JOIN_CONFIRMATION,
            entry,
            camp_context(camp),
            {
                "position": entry.position,
                "offer_window_hours": self.settings.OFFER_WINDOW_HOURS,
                "browse_url": f"{self.settings.APP_URL}/camps",
            },
        )

    async def offer_issued(self, entry: WaitlistEntry, camp: CampSnapshot) -> bool:
        return await self._enqueue(
            NotificationKind.OFFER_ISSUED,
            entry,
            camp_context(camp),
            {
                "price": format_price(entry.pricing.total_price_cents),
                "price_cents": entry.pricing.total_price_cents,
                "offer_expires_at": format_deadline(entry.offer_expires_at),
                "accept_url": self._offer_url(entry.offer_token),
                "decline_url": self._offer_url(entry.offer_token, action="decline"),
            },
        )

    async def offer_expired(self, entry: WaitlistEntry, camp: CampSnapshot) -> bool:
        return await self._enqueue(
            NotificationKind.OFFER_EXPIRED,
            entry,
            camp_context(camp),
            {"position": entry.position},
        )

    async def nearby_alternatives(
        self,
        entry: WaitlistEntry,
        camp: CampSnapshot,
        alternatives: list[AvailableCamp],
    ) -> bool:
        if not alternatives:
            return False
        return await self._enqueue(
            NotificationKind.NEARBY_ALTERNATIVES,
            entry,
            camp_context(camp),
            {
                "camps": [
                    {
                        "name": alt.camp.name,
                        "dates": format_dates(alt.camp),
                        "location": alt.camp.location_name or "TBD",
                        "spots_left": alt.spots_left,
                        "register_url": f"{self.settings.APP_URL}/register/{alt.camp.slug}",
                    }
                    for alt in alternatives
                ],
            },
        )


@dataclass
class DispatchResult:
    dispatched: int = 0
    failed: int = 0
    dead_lettered: int = 0


async def dispatch_outbox(
    outbox: NotificationOutbox,
    sender: NotificationSender,
    max_attempts: int,
    batch_size: int,
) -> DispatchResult:
    """
    Deliver one batch of pending notifications.

    A failed message goes back to the end of the queue with its attempt count
    bumped, or to the dead-letter list once it reaches max_attempts. One bad
    message never stops the rest of the batch.
    """
    result = DispatchResult()

    for notification in await outbox.claim_batch(batch_size):
        notification.attempts += 1
        try:
            delivered = await sender.send(
                notification.kind,
                notification.recipient,
                notification.context,
                notification.payload,
            )
        except Exception:
            logger.exception("notification_send_error", kind=notification.kind, id=notification.id)
            delivered = False

        record_notification(notification.kind, delivered)
        if delivered:
            result.dispatched += 1
            continue

        result.failed += 1
        try:
            if notification.attempts >= max_attempts:
                await outbox.dead_letter(notification)
                outbox_dead_letters.labels(kind=notification.kind).inc()
                result.dead_lettered += 1
                logger.error(
                    "notification_dead_lettered",
                    kind=notification.kind,
                    id=notification.id,
                    attempts=notification.attempts,
                )
            else:
                await outbox.enqueue(notification)
        except Exception:
            logger.exception("notification_requeue_failed", kind=notification.kind, id=notification.id)

    if result.dispatched or result.failed:
        logger.info(
            "outbox_drained",
            dispatched=result.dispatched,
            failed=result.failed,
            dead_lettered=result.dead_lettered,
        )
    return result
