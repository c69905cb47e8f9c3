"""
In-memory queue store.
Single-process implementation of the QueueStore contract.
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from datetime import date, datetime
from typing import Optional

from campwaitlist.core.exceptions import CapacityAvailable, DuplicateEntry, NotFound, SpotNoLongerAvailable
from campwaitlist.services import capacity
from campwaitlist.services.interfaces.queue_store import (
    ACTIVE_STATUSES,
    OCCUPYING_STATUSES,
    AvailableCamp,
    CampSnapshot,
    EntryStatus,
    Person,
    Pricing,
    QueueStore,
    WaitlistEntry,
    duplicate_message,
)
from campwaitlist.services.reorder import compaction_plan, queue_order


class InMemoryQueueStore(QueueStore):
    """
    Dict-backed store with one asyncio.Lock per camp.

    The per-camp lock gives the same guarantee as the row lock in the SQL
    store: position assignment and offer issuance for one camp never
    interleave. Callers always receive copies, never the stored objects.

    Use when:
    - Unit and API tests
    - Local demos without PostgreSQL
    """

    def __init__(self):
        self._camps: dict[str, CampSnapshot] = {}
        self._people: dict[str, Person] = {}
        self._entries: dict[str, WaitlistEntry] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # Seeding (camp and reservation CRUD live outside this service)

    def add_camp(self, camp: CampSnapshot) -> CampSnapshot:
        self._camps[camp.id] = copy.deepcopy(camp)
        return camp

    def add_person(self, person: Person) -> Person:
        self._people[person.id] = copy.deepcopy(person)
        return person

    def add_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        self._entries[entry.id] = copy.deepcopy(entry)
        return entry

    def set_capacity(self, camp_id: str, capacity_: Optional[int]) -> None:
        self._camps[camp_id].capacity = capacity_

    # Internal helpers

    def _snapshot(self, entry: WaitlistEntry) -> WaitlistEntry:
        result = copy.deepcopy(entry)
        result.camper = copy.deepcopy(self._people.get(entry.camper_id))
        result.holder = copy.deepcopy(self._people.get(entry.holder_id))
        return result

    def _camp_entries(self, camp_id: str) -> list[WaitlistEntry]:
        return [e for e in self._entries.values() if e.camp_id == camp_id]

    def _waitlisted(self, camp_id: str) -> list[WaitlistEntry]:
        return sorted(
            (e for e in self._camp_entries(camp_id) if e.status == EntryStatus.WAITLISTED),
            key=queue_order,
        )

    def _tail_position(self, camp_id: str) -> int:
        positions = [e.position or 0 for e in self._waitlisted(camp_id)]
        return max(positions, default=0) + 1

    # QueueStore

    async def get_camp(self, camp_id: str) -> Optional[CampSnapshot]:
        camp = self._camps.get(camp_id)
        return copy.deepcopy(camp) if camp else None

    async def count_active(
        self,
        camp_id: str,
        now: datetime,
        exclude_entry_id: Optional[str] = None,
    ) -> int:
        return capacity.count_active(self._camp_entries(camp_id), now, exclude_entry_id)

    async def create_waitlisted(
        self,
        camp: CampSnapshot,
        camper_id: str,
        holder_id: str,
        pricing: Pricing,
        offer_token: str,
        now: datetime,
    ) -> WaitlistEntry:
        async with self._locks[camp.id]:
            current = self._camps.get(camp.id, camp)
            active = capacity.count_active(self._camp_entries(camp.id), now)
            if capacity.has_free_seat(current.capacity, active):
                raise CapacityAvailable()

            for existing in self._camp_entries(camp.id):
                if existing.camper_id == camper_id and existing.status in ACTIVE_STATUSES:
                    raise DuplicateEntry(duplicate_message(existing.status))

            entry = WaitlistEntry(
                id=str(uuid.uuid4()),
                camp_id=camp.id,
                tenant_id=camp.tenant_id,
                camper_id=camper_id,
                holder_id=holder_id,
                status=EntryStatus.WAITLISTED,
                pricing=copy.deepcopy(pricing),
                position=self._tail_position(camp.id),
                joined_at=now,
                offer_token=offer_token,
            )
            self._entries[entry.id] = entry
            return self._snapshot(entry)

    async def get_entry(self, entry_id: str) -> Optional[WaitlistEntry]:
        entry = self._entries.get(entry_id)
        return self._snapshot(entry) if entry else None

    async def get_by_token(self, offer_token: str) -> Optional[WaitlistEntry]:
        for entry in self._entries.values():
            if entry.offer_token == offer_token and entry.status == EntryStatus.WAITLISTED:
                return self._snapshot(entry)
        return None

    async def list_waitlisted(self, camp_id: str) -> list[WaitlistEntry]:
        return [self._snapshot(e) for e in self._waitlisted(camp_id)]

    async def try_issue_offer(
        self,
        camp_id: str,
        now: datetime,
        expires_at: datetime,
        fresh_token: str,
        entry_id: Optional[str] = None,
    ) -> Optional[WaitlistEntry]:
        async with self._locks[camp_id]:
            camp = self._camps.get(camp_id)
            if camp is None:
                if entry_id is not None:
                    raise NotFound("Camp not found")
                return None

            if entry_id is not None:
                target = self._entries.get(entry_id)
                if target is None or target.camp_id != camp_id or target.status != EntryStatus.WAITLISTED:
                    raise NotFound("Registration not found or not in waitlisted state")
                active = capacity.count_active(self._camp_entries(camp_id), now, exclude_entry_id=entry_id)
                if not capacity.has_free_seat(camp.capacity, active):
                    raise SpotNoLongerAvailable("Camp is full, no spot to offer")
            else:
                if camp.capacity is None:
                    return None
                active = capacity.count_active(self._camp_entries(camp_id), now)
                if not capacity.has_free_seat(camp.capacity, active):
                    return None
                waitlisted = self._waitlisted(camp_id)
                if capacity.has_outstanding_offer(waitlisted, now):
                    return None
                target = capacity.next_candidate(waitlisted, now)
                if target is None:
                    return None

            if target.offer_count > 0:
                target.offer_token = fresh_token
            target.offer_sent_at = now
            target.offer_expires_at = expires_at
            target.offer_count += 1
            return self._snapshot(target)

    async def set_checkout_session(self, entry_id: str, session_id: str) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFound("Registration not found")
        entry.checkout_session_id = session_id

    async def cancel_entry(
        self,
        entry_id: str,
        reason: str,
        now: datetime,
        from_statuses: tuple[EntryStatus, ...],
    ) -> Optional[WaitlistEntry]:
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        async with self._locks[entry.camp_id]:
            if entry.status not in from_statuses:
                return None
            before = self._snapshot(entry)
            entry.status = EntryStatus.CANCELLED
            entry.cancelled_at = now
            entry.cancellation_reason = reason
            entry.position = None
            entry.offer_sent_at = None
            entry.offer_expires_at = None
            return before

    async def requeue_to_tail(
        self,
        entry_id: str,
        now: datetime,
        fresh_token: str,
    ) -> Optional[WaitlistEntry]:
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        async with self._locks[entry.camp_id]:
            if entry.status != EntryStatus.WAITLISTED:
                return None
            if entry.offer_expires_at is None or entry.offer_expires_at >= now:
                return None
            entry.position = self._tail_position(entry.camp_id)
            entry.offer_sent_at = None
            entry.offer_expires_at = None
            entry.offer_token = fresh_token
            return self._snapshot(entry)

    async def confirm_entry(self, entry_id: str, now: datetime) -> Optional[WaitlistEntry]:
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        async with self._locks[entry.camp_id]:
            if entry.status != EntryStatus.WAITLISTED:
                return None
            entry.status = EntryStatus.CONFIRMED
            entry.paid_at = now
            entry.position = None
            entry.offer_sent_at = None
            entry.offer_expires_at = None
            return self._snapshot(entry)

    async def compact_positions(self, camp_id: str) -> int:
        async with self._locks[camp_id]:
            plan = compaction_plan(self._camp_entries(camp_id))
            for entry_id, position in plan.items():
                self._entries[entry_id].position = position
            return len(plan)

    async def list_stale_offers(self, now: datetime) -> list[WaitlistEntry]:
        stale = [
            e for e in self._entries.values()
            if e.status == EntryStatus.WAITLISTED
            and e.offer_expires_at is not None
            and e.offer_expires_at < now
        ]
        return [self._snapshot(e) for e in sorted(stale, key=lambda e: (e.camp_id, queue_order(e)))]

    async def find_available_camps(
        self,
        tenant_id: str,
        exclude_camp_id: str,
        today: date,
        limit: int,
        default_capacity: int,
    ) -> list[AvailableCamp]:
        upcoming = sorted(
            (
                c for c in self._camps.values()
                if c.tenant_id == tenant_id
                and c.id != exclude_camp_id
                and c.start_date > today
                and c.status in ("published", "registration_open")
            ),
            key=lambda c: c.start_date,
        )
        available: list[AvailableCamp] = []
        for camp in upcoming:
            occupied = sum(
                1 for e in self._camp_entries(camp.id) if e.status in OCCUPYING_STATUSES
            )
            spots_left = max(0, (camp.capacity or default_capacity) - occupied)
            if spots_left <= 0:
                continue
            available.append(AvailableCamp(camp=copy.deepcopy(camp), spots_left=spots_left))
            if len(available) >= limit:
                break
        return available
