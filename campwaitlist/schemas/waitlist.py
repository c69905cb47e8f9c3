"""
Pydantic schemas for waitlist request/response validation.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from campwaitlist.services.interfaces.queue_store import Pricing


class JoinRequest(BaseModel):
    camp_id: str
    camper_id: str
    base_price_cents: Optional[int] = Field(default=None, ge=0)
    discount_cents: int = Field(default=0, ge=0)
    promo_discount_cents: int = Field(default=0, ge=0)
    addons_total_cents: int = Field(default=0, ge=0)
    tax_cents: int = Field(default=0, ge=0)
    promo_code_id: Optional[str] = None
    shirt_size: Optional[str] = Field(default=None, max_length=10)
    special_considerations: Optional[str] = Field(default=None, max_length=1000)
    friend_requests: list[str] = Field(default_factory=list)

    def to_pricing(self) -> Pricing:
        """Pricing for the entry; a missing base price falls back to the camp price."""
        return Pricing(
            base_price_cents=self.base_price_cents,
            discount_cents=self.discount_cents,
            promo_discount_cents=self.promo_discount_cents,
            addons_total_cents=self.addons_total_cents,
            tax_cents=self.tax_cents,
            promo_code_id=self.promo_code_id,
            shirt_size=self.shirt_size,
            special_considerations=self.special_considerations,
            friend_requests=list(self.friend_requests),
        )


class JoinResponse(BaseModel):
    entry_id: str
    position: int


class OfferDates(BaseModel):
    start: date
    end: date


class OfferLocation(BaseModel):
    name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class OfferDetailsResponse(BaseModel):
    entry_id: str
    camp_name: str
    dates: OfferDates
    location: OfferLocation
    camper_name: Optional[str] = None
    total_price_cents: int
    offer_expires_at: Optional[datetime] = None
    is_expired: bool
    has_offer: bool


class CheckoutResponse(BaseModel):
    checkout_url: str
    session_id: str


class DeclineResponse(BaseModel):
    message: str
    entry_id: str
    status: str


class PositionResponse(BaseModel):
    entry_id: str
    position: int
    total_waitlisted: int


class QueueEntryResponse(BaseModel):
    entry_id: str
    position: int
    camper_id: str
    camper_name: Optional[str] = None
    holder_id: str
    holder_name: Optional[str] = None
    holder_email: Optional[str] = None
    joined_at: Optional[datetime] = None
    offer_status: str
    offer_sent_at: Optional[datetime] = None
    offer_expires_at: Optional[datetime] = None
    offer_count: int


class OfferResponse(BaseModel):
    entry_id: str
    camp_id: str
    position: Optional[int] = None
    offer_sent_at: datetime
    offer_expires_at: datetime
    offer_count: int


class SpotOpenedResponse(BaseModel):
    offered: bool
    offer: Optional[OfferResponse] = None


class EntryStatusResponse(BaseModel):
    message: str
    entry_id: str
    status: str


class CancelRequest(BaseModel):
    reason: str = Field(default="Cancelled by admin", min_length=1, max_length=255)


class SweepResponse(BaseModel):
    expired: int
    new_offers_sent: int
    notifications_dispatched: int
    notifications_failed: int
