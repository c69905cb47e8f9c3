"""
Public waitlist endpoints: joining and answering offers.

Offer links in emails carry the token, so the offer endpoints need no login;
the token itself is the credential.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from campwaitlist.api.deps import OutboxDrain, get_offer_service, get_waitlist_service
from campwaitlist.core.security import get_current_user_id, get_token_payload, is_admin
from campwaitlist.schemas.waitlist import (
    CheckoutResponse,
    DeclineResponse,
    JoinRequest,
    JoinResponse,
    OfferDetailsResponse,
    PositionResponse,
)
from campwaitlist.services.offer_service import OfferService
from campwaitlist.services.waitlist_service import WaitlistService

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


@router.post("/join", response_model=JoinResponse, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    body: JoinRequest,
    holder_id: str = Depends(get_current_user_id),
    waitlist: WaitlistService = Depends(get_waitlist_service),
    drain: OutboxDrain = Depends(),
):
    """
    Join the waitlist of a full camp.

    Returns 409 when the camp still has room (register normally instead) or
    the camper already has a seat or a queue slot for it.
    """
    entry = await waitlist.join(
        camp_id=body.camp_id,
        camper_id=body.camper_id,
        holder_id=holder_id,
        pricing=body.to_pricing(),
    )
    drain.schedule()
    return JoinResponse(entry_id=entry.id, position=entry.position)


@router.get("/offers/{token}", response_model=OfferDetailsResponse)
async def get_offer(
    token: str,
    offers: OfferService = Depends(get_offer_service),
):
    """Offer details for the landing page behind the email link."""
    return await offers.get_offer_details(token)


@router.post("/offers/{token}/accept", response_model=CheckoutResponse)
async def accept_offer(
    token: str,
    offers: OfferService = Depends(get_offer_service),
):
    """Accept a live offer; returns the checkout to complete payment."""
    session = await offers.accept(token)
    return CheckoutResponse(checkout_url=session.checkout_url, session_id=session.session_id)


@router.post("/offers/{token}/decline", response_model=DeclineResponse)
async def decline_offer(
    token: str,
    offers: OfferService = Depends(get_offer_service),
    drain: OutboxDrain = Depends(),
):
    """Decline the offer and leave the waitlist; the spot goes to the next in line."""
    entry = await offers.decline(token)
    drain.schedule()
    return DeclineResponse(
        message="Offer declined, you have been removed from the waitlist",
        entry_id=entry.id,
        status=entry.status.value,
    )


@router.get("/camps/{camp_id}/position", response_model=PositionResponse)
async def get_position(
    camp_id: str,
    holder_id: Optional[str] = Query(default=None),
    payload: dict = Depends(get_token_payload),
    waitlist: WaitlistService = Depends(get_waitlist_service),
):
    """Queue position of the caller's entry, or of any holder for admins."""
    caller = str(payload.get("sub"))
    holder_id = holder_id or caller
    if holder_id != caller and not is_admin(payload):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another account's waitlist position",
        )
    return await waitlist.get_position(camp_id, holder_id)
