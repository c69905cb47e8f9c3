"""
Checkout initiator interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class CheckoutError(Exception):
    """The payment provider refused or failed to open a checkout session."""


@dataclass
class CheckoutSession:
    checkout_url: str
    session_id: str


class CheckoutInitiator(ABC):
    """
    Opens a hosted checkout for an accepted offer.

    Completion arrives later, out of band, through the payment callback
    endpoint which confirms the waitlist entry.
    """

    @abstractmethod
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
        """
        The session must stop accepting payment at expires_at, the end of
        the offer it pays for.

        Raises:
            CheckoutError: provider rejected the request or was unreachable
        """
        pass
