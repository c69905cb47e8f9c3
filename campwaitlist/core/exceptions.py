"""
Typed waitlist errors.

Validation failures from join/accept/decline are raised as subclasses of
WaitlistError and rendered by the API exception handler. Each carries the
HTTP status and a stable machine-readable code for the client.
"""

from fastapi import status


class WaitlistError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "waitlist_error"
    default_detail: str = "Waitlist request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class CapacityAvailable(WaitlistError):
    """Camp still has room; the claimant should register normally."""

    status_code = status.HTTP_409_CONFLICT
    code = "capacity_available"
    default_detail = "Camp still has spots available, please register normally"


class DuplicateEntry(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_entry"
    default_detail = "This camper is already registered or waitlisted for this camp"


class InvalidToken(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "invalid_token"
    default_detail = "Invalid offer token"


class OfferExpired(WaitlistError):
    status_code = status.HTTP_410_GONE
    code = "offer_expired"
    default_detail = "This offer has expired"


class NoActiveOffer(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    code = "no_active_offer"
    default_detail = "No spot has been offered for this waitlist entry yet"


class SpotNoLongerAvailable(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    code = "spot_no_longer_available"
    default_detail = "Sorry, the spot is no longer available"


class NotFound(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found"


class WaitlistDisabled(WaitlistError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "waitlist_disabled"
    default_detail = "Waitlist is not enabled for this camp"


class CheckoutFailed(WaitlistError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "checkout_failed"
    default_detail = "Failed to create checkout session"
