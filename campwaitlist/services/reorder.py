"""
FIFO compaction of waitlist positions.

Removals leave gaps (1, 3, 4). Compaction rewrites the waitlisted entries of
one camp to 1..N keeping their relative order. Ties, which only a broken
store could produce, fall back to join time and then id so the result is
deterministic. Running it twice changes nothing the second time.
"""

from datetime import datetime, timezone
from typing import Iterable

from campwaitlist.services.interfaces.queue_store import EntryStatus, WaitlistEntry

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def queue_order(entry: WaitlistEntry) -> tuple:
    position = entry.position if entry.position is not None else float("inf")
    return (position, entry.joined_at or _EPOCH, entry.id)


def compaction_plan(entries: Iterable[WaitlistEntry]) -> dict[str, int]:
    """Map entry id -> new position for every waitlisted entry whose position changes."""
    waitlisted = sorted(
        (e for e in entries if e.status == EntryStatus.WAITLISTED),
        key=queue_order,
    )
    return {
        entry.id: index
        for index, entry in enumerate(waitlisted, start=1)
        if entry.position != index
    }
