from campwaitlist.schemas.waitlist import (
    CancelRequest,
    CheckoutResponse,
    DeclineResponse,
    EntryStatusResponse,
    JoinRequest,
    JoinResponse,
    OfferDetailsResponse,
    OfferResponse,
    PositionResponse,
    QueueEntryResponse,
    SpotOpenedResponse,
    SweepResponse,
)

__all__ = [
    "JoinRequest", "JoinResponse", "PositionResponse",
    "OfferDetailsResponse", "CheckoutResponse", "DeclineResponse",
    "QueueEntryResponse", "OfferResponse", "SpotOpenedResponse",
    "EntryStatusResponse", "CancelRequest", "SweepResponse",
]
