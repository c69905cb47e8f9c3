"""
Waitlist queue operations: joining, leaving and promotion to a paid seat.

Every path that frees a seat ends with OfferService.spot_opened for the camp,
so the next claimant in line hears about it without any polling.
"""

from dataclasses import replace
from typing import Optional

from campwaitlist.core.config import Settings
from campwaitlist.core.exceptions import (
    CapacityAvailable,
    DuplicateEntry,
    NotFound,
    WaitlistDisabled,
)
from campwaitlist.core.logging import get_logger
from campwaitlist.core.metrics import record_join
from campwaitlist.services import capacity
from campwaitlist.services.interfaces.queue_store import (
    CampSnapshot,
    EntryStatus,
    Pricing,
    QueueStore,
    WaitlistEntry,
)
from campwaitlist.services.notification_service import Notifier
from campwaitlist.services.offer_service import OfferService, new_offer_token

logger = get_logger(__name__)

ADMIN_REMOVAL_REASON = "Removed from waitlist by admin"


class WaitlistService:
    def __init__(
        self,
        store: QueueStore,
        offers: OfferService,
        notifier: Notifier,
        settings: Settings,
    ):
        self.store = store
        self.offers = offers
        self.notifier = notifier
        self.settings = settings

    @property
    def clock(self):
        return self.offers.clock

    async def join(
        self,
        camp_id: str,
        camper_id: str,
        holder_id: str,
        pricing: Optional[Pricing] = None,
    ) -> WaitlistEntry:
        """
        Put a camper at the end of a full camp's waitlist.

        Raises:
            NotFound: unknown camp
            WaitlistDisabled: the camp does not run a waitlist
            CapacityAvailable: the camp is uncapped or still has a free seat
            DuplicateEntry: the camper already holds a seat or a queue slot
        """
        camp = await self.store.get_camp(camp_id)
        if camp is None:
            raise NotFound("Camp not found")
        if not camp.waitlist_enabled:
            record_join("disabled")
            raise WaitlistDisabled()

        pricing = pricing or Pricing()
        if pricing.base_price_cents is None:
            pricing = replace(pricing, base_price_cents=camp.price_cents)

        now = self.clock()
        active = await self.store.count_active(camp_id, now)
        if capacity.has_free_seat(camp.capacity, active):
            record_join("capacity_available")
            raise CapacityAvailable()

        try:
            entry = await self.store.create_waitlisted(
                camp,
                camper_id=camper_id,
                holder_id=holder_id,
                pricing=pricing,
                offer_token=new_offer_token(),
                now=now,
            )
        except CapacityAvailable:
            # Seat freed between the check above and the camp lock
            record_join("capacity_available")
            raise
        except DuplicateEntry:
            record_join("duplicate")
            raise

        record_join("joined")
        logger.info("waitlist_joined", camp_id=camp_id, entry_id=entry.id, position=entry.position)

        await self.notifier.join_confirmed(entry, camp)
        await self._suggest_alternatives(entry, camp)
        return entry

    async def _suggest_alternatives(self, entry: WaitlistEntry, camp: CampSnapshot) -> None:
        try:
            alternatives = await self.store.find_available_camps(
                tenant_id=camp.tenant_id,
                exclude_camp_id=camp.id,
                today=self.clock().date(),
                limit=self.settings.NEARBY_CAMPS_LIMIT,
                default_capacity=self.settings.DEFAULT_NEARBY_CAPACITY,
            )
        except Exception:
            logger.exception("nearby_camps_lookup_failed", camp_id=camp.id)
            return
        await self.notifier.nearby_alternatives(entry, camp, alternatives)

    async def remove_entry(self, entry_id: str) -> WaitlistEntry:
        now = self.clock()
        removed = await self.store.cancel_entry(
            entry_id, ADMIN_REMOVAL_REASON, now, from_statuses=(EntryStatus.WAITLISTED,)
        )
        if removed is None:
            raise NotFound("Registration not found or not on the waitlist")

        await self.store.compact_positions(removed.camp_id)
        logger.info("waitlist_entry_removed", entry_id=entry_id, camp_id=removed.camp_id)

        # Only a held offer occupied a seat
        if removed.has_live_offer(now):
            await self.offers.follow_up_spot_opened(removed.camp_id)
        return removed

    async def complete_waitlist_entry(self, entry_id: str) -> Optional[WaitlistEntry]:
        """
        Payment callback: the offer holder paid, their seat becomes confirmed.

        Returns None when the entry is no longer waitlisted, so a redelivered
        webhook is a no-op.
        """
        entry = await self.store.get_entry(entry_id)
        if entry is None:
            raise NotFound("Registration not found")
        if entry.status != EntryStatus.WAITLISTED:
            logger.info("waitlist_completion_ignored", entry_id=entry_id, status=entry.status.value)
            return None

        confirmed = await self.store.confirm_entry(entry_id, self.clock())
        if confirmed is None:
            return None

        await self.store.compact_positions(confirmed.camp_id)
        logger.info("waitlist_entry_confirmed", entry_id=entry_id, camp_id=confirmed.camp_id)
        await self.offers.follow_up_spot_opened(confirmed.camp_id)
        return confirmed

    async def cancel_reservation(self, entry_id: str, reason: str) -> WaitlistEntry:
        """Cancel a confirmed or pending seat and offer it to the queue."""
        cancelled = await self.store.cancel_entry(
            entry_id,
            reason,
            self.clock(),
            from_statuses=(EntryStatus.CONFIRMED, EntryStatus.PENDING),
        )
        if cancelled is None:
            raise NotFound("Registration not found or not cancellable")

        logger.info("reservation_cancelled", entry_id=entry_id, camp_id=cancelled.camp_id, reason=reason)
        await self.offers.follow_up_spot_opened(cancelled.camp_id)
        return cancelled

    async def list_queue(self, camp_id: str) -> list[dict]:
        if await self.store.get_camp(camp_id) is None:
            raise NotFound("Camp not found")

        now = self.clock()
        return [
            {
                "entry_id": entry.id,
                "position": entry.position,
                "camper_id": entry.camper_id,
                "camper_name": entry.camper.full_name if entry.camper else None,
                "holder_id": entry.holder_id,
                "holder_name": entry.holder.full_name if entry.holder else None,
                "holder_email": entry.holder.email if entry.holder else None,
                "joined_at": entry.joined_at,
                "offer_status": entry.offer_status(now),
                "offer_sent_at": entry.offer_sent_at,
                "offer_expires_at": entry.offer_expires_at,
                "offer_count": entry.offer_count,
            }
            for entry in await self.store.list_waitlisted(camp_id)
        ]

    async def get_position(self, camp_id: str, holder_id: str) -> dict:
        waitlisted = await self.store.list_waitlisted(camp_id)
        for entry in waitlisted:
            if entry.holder_id == holder_id:
                return {
                    "entry_id": entry.id,
                    "position": entry.position,
                    "total_waitlisted": len(waitlisted),
                }
        raise NotFound("No waitlist entry for this account")
