"""
Payment provider callback for accepted waitlist offers.
"""

from fastapi import APIRouter, Depends

from campwaitlist.api.deps import OutboxDrain, get_waitlist_service
from campwaitlist.core.security import require_payment_callback
from campwaitlist.schemas.waitlist import EntryStatusResponse
from campwaitlist.services.waitlist_service import WaitlistService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/waitlist/{entry_id}/complete", response_model=EntryStatusResponse)
async def complete_waitlist_payment(
    entry_id: str,
    caller: str = Depends(require_payment_callback),
    waitlist: WaitlistService = Depends(get_waitlist_service),
    drain: OutboxDrain = Depends(),
):
    """
    Confirm the seat of a paid offer.

    Redelivered callbacks for an entry that is already confirmed succeed
    without changing anything.
    """
    confirmed = await waitlist.complete_waitlist_entry(entry_id)
    if confirmed is None:
        return EntryStatusResponse(message="Already processed", entry_id=entry_id, status="unchanged")
    drain.schedule()
    return EntryStatusResponse(
        message="Registration confirmed",
        entry_id=entry_id,
        status=confirmed.status.value,
    )
