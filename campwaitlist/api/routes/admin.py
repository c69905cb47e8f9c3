"""
Admin waitlist management.
"""

from fastapi import APIRouter, Depends

from campwaitlist.api.deps import OutboxDrain, get_offer_service, get_waitlist_service
from campwaitlist.core.logging import get_logger
from campwaitlist.core.security import require_admin
from campwaitlist.schemas.waitlist import (
    CancelRequest,
    EntryStatusResponse,
    OfferResponse,
    QueueEntryResponse,
    SpotOpenedResponse,
)
from campwaitlist.services.interfaces.queue_store import WaitlistEntry
from campwaitlist.services.offer_service import OfferService
from campwaitlist.services.waitlist_service import WaitlistService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


def _offer_response(entry: WaitlistEntry) -> OfferResponse:
    return OfferResponse(
        entry_id=entry.id,
        camp_id=entry.camp_id,
        position=entry.position,
        offer_sent_at=entry.offer_sent_at,
        offer_expires_at=entry.offer_expires_at,
        offer_count=entry.offer_count,
    )


@router.get("/camps/{camp_id}/waitlist", response_model=list[QueueEntryResponse])
async def list_waitlist(
    camp_id: str,
    admin_id: str = Depends(require_admin),
    waitlist: WaitlistService = Depends(get_waitlist_service),
):
    return await waitlist.list_queue(camp_id)


@router.post("/waitlist/{entry_id}/offer", response_model=OfferResponse)
async def send_offer(
    entry_id: str,
    admin_id: str = Depends(require_admin),
    offers: OfferService = Depends(get_offer_service),
    drain: OutboxDrain = Depends(),
):
    """
    Offer a spot to a specific entry, ahead of its queue turn.

    Still capacity-guarded: returns 409 when the camp has no free seat.
    """
    entry = await offers.send_manual_offer(entry_id)
    logger.info("manual_offer_sent", entry_id=entry_id, admin_id=admin_id)
    drain.schedule()
    return _offer_response(entry)


@router.delete("/waitlist/{entry_id}", response_model=EntryStatusResponse)
async def remove_from_waitlist(
    entry_id: str,
    admin_id: str = Depends(require_admin),
    waitlist: WaitlistService = Depends(get_waitlist_service),
    drain: OutboxDrain = Depends(),
):
    await waitlist.remove_entry(entry_id)
    logger.info("waitlist_entry_removed_by_admin", entry_id=entry_id, admin_id=admin_id)
    drain.schedule()
    return EntryStatusResponse(
        message="Removed from waitlist",
        entry_id=entry_id,
        status="cancelled",
    )


@router.post("/camps/{camp_id}/spot-opened", response_model=SpotOpenedResponse)
async def spot_opened(
    camp_id: str,
    admin_id: str = Depends(require_admin),
    offers: OfferService = Depends(get_offer_service),
    drain: OutboxDrain = Depends(),
):
    """Re-run offer issuance for a camp, e.g. after raising its capacity."""
    entry = await offers.spot_opened(camp_id)
    if entry is None:
        return SpotOpenedResponse(offered=False)
    drain.schedule()
    return SpotOpenedResponse(offered=True, offer=_offer_response(entry))


@router.post("/registrations/{entry_id}/cancel", response_model=EntryStatusResponse)
async def cancel_registration(
    entry_id: str,
    body: CancelRequest,
    admin_id: str = Depends(require_admin),
    waitlist: WaitlistService = Depends(get_waitlist_service),
    drain: OutboxDrain = Depends(),
):
    """Cancel a confirmed or pending registration and release its seat to the waitlist."""
    await waitlist.cancel_reservation(entry_id, body.reason)
    drain.schedule()
    return EntryStatusResponse(
        message="Registration cancelled",
        entry_id=entry_id,
        status="cancelled",
    )
