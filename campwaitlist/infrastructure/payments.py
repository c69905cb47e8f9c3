"""
Stripe checkout for accepted waitlist offers.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe

from campwaitlist.core.logging import get_logger
from campwaitlist.services.interfaces.payments import CheckoutError, CheckoutInitiator, CheckoutSession

logger = get_logger(__name__)

# Stripe accepts a session expiry between 30 minutes and 24 hours out
MAX_SESSION_LIFETIME = timedelta(hours=24)


class StripeCheckoutInitiator(CheckoutInitiator):
    """
    Hosted Stripe Checkout session per accepted offer.

    The registration id travels in the session metadata so the payment
    webhook can call back into the waitlist with it.
    """

    def __init__(self, secret_key: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.currency = currency

    async def create_checkout(
        self,
        camp_id: str,
        entry_id: str,
        success_url: str,
        cancel_url: str,
        amount_cents: int,
        description: str,
        expires_at: Optional[datetime] = None,
    ) -> CheckoutSession:
        if not self.secret_key:
            raise CheckoutError("Payments are not configured")

        options = {}
        if expires_at is not None:
            latest = datetime.now(timezone.utc) + MAX_SESSION_LIFETIME
            options["expires_at"] = int(min(expires_at, latest).timestamp())

        try:
            # The Stripe SDK is blocking; keep it off the event loop
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.secret_key,
                mode="payment",
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": amount_cents,
                        "product_data": {"name": description},
                    },
                }],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=entry_id,
                metadata={"registration_id": entry_id, "camp_id": camp_id, "source": "waitlist"},
                **options,
            )
        except stripe.StripeError as e:
            logger.error("stripe_checkout_failed", entry_id=entry_id, error=str(e))
            raise CheckoutError(e.user_message or "Failed to create checkout session") from e

        logger.info("stripe_checkout_created", entry_id=entry_id, session_id=session.id)
        return CheckoutSession(checkout_url=session.url, session_id=session.id)
