"""
Queue store interface.
Keeps the admission logic independent of the persistence backend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class EntryStatus(str, Enum):
    WAITLISTED = "waitlisted"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Statuses that hold (or are queued for) a seat
ACTIVE_STATUSES = (EntryStatus.WAITLISTED, EntryStatus.PENDING, EntryStatus.CONFIRMED)
OCCUPYING_STATUSES = (EntryStatus.PENDING, EntryStatus.CONFIRMED)


def duplicate_message(existing_status: EntryStatus | str) -> str:
    if EntryStatus(existing_status) == EntryStatus.WAITLISTED:
        return "This camper is already on the waitlist for this camp"
    return "This camper is already registered for this camp"


@dataclass
class Person:
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


@dataclass
class Pricing:
    base_price_cents: Optional[int] = None
    discount_cents: int = 0
    promo_discount_cents: int = 0
    addons_total_cents: int = 0
    tax_cents: int = 0
    promo_code_id: Optional[str] = None
    shirt_size: Optional[str] = None
    special_considerations: Optional[str] = None
    friend_requests: list[str] = field(default_factory=list)

    @property
    def total_price_cents(self) -> int:
        return (
            (self.base_price_cents or 0)
            - self.discount_cents
            - self.promo_discount_cents
            + self.addons_total_cents
            + self.tax_cents
        )


@dataclass
class CampSnapshot:
    id: str
    tenant_id: str
    name: str
    slug: str
    start_date: date
    end_date: date
    capacity: Optional[int] = None
    price_cents: int = 0
    location_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    status: str = "registration_open"
    waitlist_enabled: bool = True


@dataclass
class AvailableCamp:
    camp: CampSnapshot
    spots_left: int


@dataclass
class WaitlistEntry:
    id: str
    camp_id: str
    tenant_id: str
    camper_id: str
    holder_id: str
    status: EntryStatus
    pricing: Pricing
    position: Optional[int] = None
    joined_at: Optional[datetime] = None
    offer_token: Optional[str] = None
    offer_sent_at: Optional[datetime] = None
    offer_expires_at: Optional[datetime] = None
    offer_count: int = 0
    checkout_session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    camper: Optional[Person] = None
    holder: Optional[Person] = None

    def has_live_offer(self, now: datetime) -> bool:
        return self.offer_expires_at is not None and self.offer_expires_at > now

    def offer_status(self, now: datetime) -> str:
        if self.offer_sent_at is None:
            return "waiting"
        if self.offer_expires_at is not None and now >= self.offer_expires_at:
            return "offer_expired"
        return "offer_sent"


class QueueStore(ABC):
    """
    Persistence contract for waitlist entries and camp capacity.

    Implementations:
    - SqlQueueStore: PostgreSQL, per-camp serialization via SELECT ... FOR UPDATE
      on the camp row
    - InMemoryQueueStore: one asyncio.Lock per camp, for tests and local runs

    Every method that assigns or rewrites positions, or issues an offer, must
    run as one atomic unit that excludes other such writers for the same camp.
    Different camps never contend.
    """

    @abstractmethod
    async def get_camp(self, camp_id: str) -> Optional[CampSnapshot]:
        pass

    @abstractmethod
    async def count_active(
        self,
        camp_id: str,
        now: datetime,
        exclude_entry_id: Optional[str] = None,
    ) -> int:
        """
        Count confirmed + pending + waitlisted entries with a live offer.

        Args:
            camp_id: Camp to count
            now: Reference instant for offer liveness
            exclude_entry_id: Entry left out of the count (its own offer)
        """
        pass

    @abstractmethod
    async def create_waitlisted(
        self,
        camp: CampSnapshot,
        camper_id: str,
        holder_id: str,
        pricing: Pricing,
        offer_token: str,
        now: datetime,
    ) -> WaitlistEntry:
        """
        Persist a waitlisted entry at the tail (max position + 1) under the camp lock.

        Raises CapacityAvailable if, under the lock, the camp is uncapped or
        has a free seat, and DuplicateEntry if the camper already has a
        waitlisted, pending or confirmed entry for the camp.
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[WaitlistEntry]:
        pass

    @abstractmethod
    async def get_by_token(self, offer_token: str) -> Optional[WaitlistEntry]:
        """Resolve a token to its entry, only while that entry is waitlisted."""
        pass

    @abstractmethod
    async def list_waitlisted(self, camp_id: str) -> list[WaitlistEntry]:
        """Waitlisted entries for a camp, ordered by position ascending."""
        pass

    @abstractmethod
    async def try_issue_offer(
        self,
        camp_id: str,
        now: datetime,
        expires_at: datetime,
        fresh_token: str,
        entry_id: Optional[str] = None,
    ) -> Optional[WaitlistEntry]:
        """
        Capacity check-then-mark, serialized per camp.

        Without entry_id: offer to the lowest-position waitlisted entry with no
        live offer, if confirmed + pending + live offers < capacity and no other
        offer for the camp is live. Returns the offered entry, or None when
        uncapped, full, an offer is outstanding, or nobody is waiting.

        With entry_id (admin): offer to that entry, its own live offer excluded
        from the count. Other outstanding offers do not block it, capacity
        does. Raises NotFound if it is not waitlisted, SpotNoLongerAvailable if
        the camp is full.

        An entry that already received an offer gets fresh_token as its new
        offer token, so links from an earlier offer stop resolving.
        """
        pass

    @abstractmethod
    async def set_checkout_session(self, entry_id: str, session_id: str) -> None:
        pass

    @abstractmethod
    async def cancel_entry(
        self,
        entry_id: str,
        reason: str,
        now: datetime,
        from_statuses: tuple[EntryStatus, ...],
    ) -> Optional[WaitlistEntry]:
        """
        Cancel the entry if its status is in from_statuses; clears position and
        offer fields. Returns the entry as it was before cancelling, or None.
        """
        pass

    @abstractmethod
    async def requeue_to_tail(
        self,
        entry_id: str,
        now: datetime,
        fresh_token: str,
    ) -> Optional[WaitlistEntry]:
        """
        Move a waitlisted entry whose offer lapsed before `now` behind every
        other waitlisted entry, clear its offer and rotate its token. Returns
        None if the entry is no longer waitlisted or its offer is not stale.
        """
        pass

    @abstractmethod
    async def confirm_entry(self, entry_id: str, now: datetime) -> Optional[WaitlistEntry]:
        """Flip a waitlisted entry to confirmed (paid). None if not waitlisted."""
        pass

    @abstractmethod
    async def compact_positions(self, camp_id: str) -> int:
        """Rewrite waitlisted positions to 1..N. Returns the number of rows changed."""
        pass

    @abstractmethod
    async def list_stale_offers(self, now: datetime) -> list[WaitlistEntry]:
        """Waitlisted entries across all camps with offer_expires_at < now."""
        pass

    @abstractmethod
    async def find_available_camps(
        self,
        tenant_id: str,
        exclude_camp_id: str,
        today: date,
        limit: int,
        default_capacity: int,
    ) -> list[AvailableCamp]:
        """Upcoming published camps of the tenant that still have open seats."""
        pass
