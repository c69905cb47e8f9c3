"""
Capacity guard rules shared by every queue store.

A seat is taken by a confirmed or pending registration, and also by a
waitlisted entry whose offer is still live: the claimant may pay for it at
any moment until the offer expires.
"""

from datetime import datetime
from typing import Iterable, Optional

from campwaitlist.services.interfaces.queue_store import (
    OCCUPYING_STATUSES,
    EntryStatus,
    WaitlistEntry,
)


def occupies_seat(entry: WaitlistEntry, now: datetime) -> bool:
    if entry.status in OCCUPYING_STATUSES:
        return True
    return entry.status == EntryStatus.WAITLISTED and entry.has_live_offer(now)


def count_active(
    entries: Iterable[WaitlistEntry],
    now: datetime,
    exclude_entry_id: Optional[str] = None,
) -> int:
    return sum(
        1 for e in entries
        if e.id != exclude_entry_id and occupies_seat(e, now)
    )


def has_free_seat(capacity: Optional[int], active: int) -> bool:
    """An uncapped camp always has room."""
    return capacity is None or active < capacity


def has_outstanding_offer(waitlisted: Iterable[WaitlistEntry], now: datetime) -> bool:
    """Offers go out one at a time per camp."""
    return any(
        e.status == EntryStatus.WAITLISTED and e.has_live_offer(now) for e in waitlisted
    )


def next_candidate(waitlisted: Iterable[WaitlistEntry], now: datetime) -> Optional[WaitlistEntry]:
    """
    Lowest-position waitlisted entry without a live offer.

    Entries holding a live offer are skipped, not waited on: their seat is
    already counted against capacity.
    """
    candidates = [
        e for e in waitlisted
        if e.status == EntryStatus.WAITLISTED and not e.has_live_offer(now)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda e: (e.position or 0, e.joined_at or now, e.id))
