"""
Offer lifecycle: issuing, accepting and declining waitlist offers.

An offer is a time-boxed claim on one seat. It is live while
offer_expires_at > now and nothing else has to happen for it to lapse: every
accept re-checks expiry, and the sweep moves lapsed entries to the tail.

Issuance goes through QueueStore.try_issue_offer, the one place where the
capacity check and the write happen together under the per-camp lock.
Notifications and checkout calls happen after that unit has committed.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from campwaitlist.core.config import Settings
from campwaitlist.core.exceptions import (
    CheckoutFailed,
    InvalidToken,
    NoActiveOffer,
    NotFound,
    OfferExpired,
    SpotNoLongerAvailable,
)
from campwaitlist.core.logging import get_logger
from campwaitlist.core.metrics import record_offer_issued, record_offer_outcome, spot_opened_latency
from campwaitlist.services import capacity
from campwaitlist.services.interfaces.payments import CheckoutError, CheckoutInitiator, CheckoutSession
from campwaitlist.services.interfaces.queue_store import EntryStatus, QueueStore, WaitlistEntry
from campwaitlist.services.notification_service import Notifier

logger = get_logger(__name__)

DECLINE_REASON = "Waitlist offer declined"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_offer_token() -> str:
    return str(uuid.uuid4())


class OfferService:
    def __init__(
        self,
        store: QueueStore,
        notifier: Notifier,
        checkout: CheckoutInitiator,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier
        self.checkout = checkout
        self.settings = settings
        self.clock = clock

    async def _issue(self, camp_id: str, entry_id: Optional[str] = None) -> Optional[WaitlistEntry]:
        now = self.clock()
        started = time.perf_counter()
        try:
            entry = await self.store.try_issue_offer(
                camp_id,
                now=now,
                expires_at=now + self.settings.offer_window,
                fresh_token=new_offer_token(),
                entry_id=entry_id,
            )
        finally:
            spot_opened_latency.observe(time.perf_counter() - started)

        if entry is None:
            logger.debug("spot_opened_noop", camp_id=camp_id)
            return None

        record_offer_issued(manual=entry_id is not None)
        logger.info(
            "offer_issued",
            camp_id=camp_id,
            entry_id=entry.id,
            position=entry.position,
            offer_count=entry.offer_count,
            expires_at=entry.offer_expires_at.isoformat(),
            manual=entry_id is not None,
        )

        camp = await self.store.get_camp(camp_id)
        if camp is not None:
            await self.notifier.offer_issued(entry, camp)
        return entry

    async def spot_opened(self, camp_id: str) -> Optional[WaitlistEntry]:
        """
        Offer the freed seat to the next waiting claimant, if any.

        No-op when the camp is uncapped, still full, already has a live offer
        out, or nobody is waiting. Safe to call redundantly.
        """
        return await self._issue(camp_id)

    async def send_manual_offer(self, entry_id: str) -> WaitlistEntry:
        """Admin override: offer to a specific waitlisted entry, out of FIFO order."""
        entry = await self.store.get_entry(entry_id)
        if entry is None or entry.status != EntryStatus.WAITLISTED:
            raise NotFound("Registration not found or not in waitlisted state")

        issued = await self._issue(entry.camp_id, entry_id=entry_id)
        if issued is None:
            raise SpotNoLongerAvailable("Camp is full, no spot to offer")
        return issued

    async def follow_up_spot_opened(self, camp_id: str) -> Optional[WaitlistEntry]:
        """spot_opened after a seat was released; failures are logged, never raised."""
        try:
            return await self.spot_opened(camp_id)
        except Exception:
            logger.exception("spot_opened_follow_up_failed", camp_id=camp_id)
            return None

    async def _resolve(self, token: str) -> WaitlistEntry:
        entry = await self.store.get_by_token(token)
        if entry is None:
            raise InvalidToken()
        return entry

    async def accept(self, token: str, base_url: Optional[str] = None) -> CheckoutSession:
        entry = await self._resolve(token)
        now = self.clock()

        if entry.offer_expires_at is None:
            raise NoActiveOffer()
        if entry.offer_expires_at <= now:
            record_offer_outcome("rejected")
            raise OfferExpired()
        if entry.offer_expires_at - now < self.settings.checkout_min_window:
            # Too little time left for a checkout session that ends with the offer
            record_offer_outcome("rejected")
            raise OfferExpired("This offer expires too soon to complete checkout")

        camp = await self.store.get_camp(entry.camp_id)
        if camp is None:
            raise NotFound("Camp not found")

        active = await self.store.count_active(entry.camp_id, now, exclude_entry_id=entry.id)
        if not capacity.has_free_seat(camp.capacity, active):
            logger.warning("offer_accept_camp_full", entry_id=entry.id, camp_id=camp.id, active=active)
            raise SpotNoLongerAvailable()

        base = (base_url or self.settings.APP_URL).rstrip("/")
        camper_name = entry.camper.full_name if entry.camper else "Camper"
        try:
            session = await self.checkout.create_checkout(
                camp_id=camp.id,
                entry_id=entry.id,
                success_url=f"{base}/register/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base}/waitlist/offer/{token}",
                amount_cents=entry.pricing.total_price_cents,
                description=f"{camp.name} - {camper_name}",
                expires_at=entry.offer_expires_at,
            )
        except CheckoutError as exc:
            logger.error("checkout_create_failed", entry_id=entry.id, error=str(exc))
            raise CheckoutFailed() from exc

        await self.store.set_checkout_session(entry.id, session.session_id)
        record_offer_outcome("accepted")
        logger.info("offer_accepted", entry_id=entry.id, camp_id=camp.id, session_id=session.session_id)
        return session

    async def decline(self, token: str) -> WaitlistEntry:
        entry = await self._resolve(token)
        now = self.clock()

        # An entry with no offer yet may still leave the queue through its link
        if entry.offer_expires_at is not None and entry.offer_expires_at <= now:
            record_offer_outcome("rejected")
            raise OfferExpired()

        cancelled = await self.store.cancel_entry(
            entry.id, DECLINE_REASON, now, from_statuses=(EntryStatus.WAITLISTED,)
        )
        if cancelled is None:
            raise InvalidToken()

        await self.store.compact_positions(entry.camp_id)
        record_offer_outcome("declined")
        logger.info("offer_declined", entry_id=entry.id, camp_id=entry.camp_id, had_offer=entry.offer_sent_at is not None)

        await self.follow_up_spot_opened(entry.camp_id)
        cancelled.status = EntryStatus.CANCELLED
        return cancelled

    async def get_offer_details(self, token: str) -> dict:
        entry = await self._resolve(token)
        camp = await self.store.get_camp(entry.camp_id)
        if camp is None:
            raise NotFound("Camp not found")

        now = self.clock()
        return {
            "entry_id": entry.id,
            "camp_name": camp.name,
            "dates": {"start": camp.start_date, "end": camp.end_date},
            "location": {"name": camp.location_name, "city": camp.city, "state": camp.state},
            "camper_name": entry.camper.full_name if entry.camper else None,
            "total_price_cents": entry.pricing.total_price_cents,
            "offer_expires_at": entry.offer_expires_at,
            "is_expired": entry.offer_expires_at is not None and entry.offer_expires_at <= now,
            "has_offer": entry.offer_sent_at is not None,
        }
