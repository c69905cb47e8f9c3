"""
Scheduled jobs triggered over HTTP by an external cron.
"""

from fastapi import APIRouter, Depends

from campwaitlist.api.deps import get_sweeper
from campwaitlist.core.security import require_cron_secret
from campwaitlist.schemas.waitlist import SweepResponse
from campwaitlist.services.sweep_service import ExpirySweeper

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.post("/waitlist/expire", response_model=SweepResponse, dependencies=[Depends(require_cron_secret)])
async def expire_waitlist_offers(sweeper: ExpirySweeper = Depends(get_sweeper)):
    """Expire lapsed offers, offer the freed seats onward and flush notifications."""
    result = await sweeper.run()
    return SweepResponse(
        expired=result.expired,
        new_offers_sent=result.new_offers_sent,
        notifications_dispatched=result.notifications_dispatched,
        notifications_failed=result.notifications_failed,
    )
