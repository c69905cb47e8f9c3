"""
PostgreSQL queue store.

CONCURRENCY STRATEGY: Pessimistic lock on the camp row
=======================================================

Problem:
  Two spot-opened calls for the same camp run at once (a cancellation and
  the expiry sweep, say). Both count 9 of 10 seats taken, both pick the head
  of the queue or two different heads, both issue an offer.
  Result: 11 people can pay for 10 seats.

Solution:
  Every write that depends on the queue's shape opens a transaction and
  first runs SELECT ... FROM camps WHERE id = :camp_id FOR UPDATE.

  1. Lock the camp row (second caller blocks here until the first commits)
  2. Count confirmed + pending + live offers
  3. Pick the head without a live offer and mark the offer
  4. Commit, releasing the lock; notifications happen after this point

  The same lock covers tail position assignment on join, requeue on expiry
  and compaction, so positions never collide.

Why not optimistic locking with a version column:
  Offer liveness changes with the clock, not with a row write, so there is
  no version to compare. The critical section is a handful of indexed
  queries on one camp; serializing per camp costs little and different
  camps never block each other.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from campwaitlist.core.exceptions import CapacityAvailable, DuplicateEntry, NotFound, SpotNoLongerAvailable
from campwaitlist.core.logging import get_logger
from campwaitlist.models.camp import Camp
from campwaitlist.models.camper import Camper
from campwaitlist.models.registration import Registration
from campwaitlist.models.user import User
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
from campwaitlist.services.reorder import compaction_plan

logger = get_logger(__name__)

WAITLISTED = EntryStatus.WAITLISTED.value
OCCUPYING = [s.value for s in OCCUPYING_STATUSES]
ACTIVE = [s.value for s in ACTIVE_STATUSES]


def _camp_snapshot(camp: Camp) -> CampSnapshot:
    return CampSnapshot(
        id=camp.id,
        tenant_id=camp.tenant_id,
        name=camp.name,
        slug=camp.slug,
        start_date=camp.start_date,
        end_date=camp.end_date,
        capacity=camp.capacity,
        price_cents=camp.price_cents,
        location_name=camp.location_name,
        city=camp.city,
        state=camp.state,
        status=camp.status,
        waitlist_enabled=camp.waitlist_enabled,
    )


def _person(row: Camper | User | None) -> Optional[Person]:
    if row is None:
        return None
    return Person(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=getattr(row, "email", None),
    )


def _entry(reg: Registration) -> WaitlistEntry:
    loaded = reg.__dict__
    return WaitlistEntry(
        id=reg.id,
        camp_id=reg.camp_id,
        tenant_id=reg.tenant_id,
        camper_id=reg.camper_id,
        holder_id=reg.parent_id,
        status=EntryStatus(reg.status),
        pricing=Pricing(
            base_price_cents=reg.base_price_cents,
            discount_cents=reg.discount_cents,
            promo_discount_cents=reg.promo_discount_cents,
            addons_total_cents=reg.addons_total_cents,
            tax_cents=reg.tax_cents,
            promo_code_id=reg.promo_code_id,
            shirt_size=reg.shirt_size,
            special_considerations=reg.special_considerations,
            friend_requests=list(reg.friend_requests or []),
        ),
        position=reg.waitlist_position,
        joined_at=reg.waitlist_joined_at,
        offer_token=reg.offer_token,
        offer_sent_at=reg.offer_sent_at,
        offer_expires_at=reg.offer_expires_at,
        offer_count=reg.offer_count,
        checkout_session_id=reg.checkout_session_id,
        paid_at=reg.paid_at,
        cancelled_at=reg.cancelled_at,
        cancellation_reason=reg.cancellation_reason,
        # Relationships are only mapped when eagerly loaded
        camper=_person(loaded.get("camper")),
        holder=_person(loaded.get("parent")),
    )


def _with_people(stmt):
    return stmt.options(selectinload(Registration.camper), selectinload(Registration.parent))


class SqlQueueStore(QueueStore):
    """
    SQLAlchemy implementation of the queue store.

    Each method runs in its own short transaction. Callers never hold a
    transaction open across notification or payment calls.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._sessionmaker() as session:
            async with session.begin():
                yield session

    async def _lock_camp(self, session: AsyncSession, camp_id: str) -> Optional[Camp]:
        result = await session.execute(
            select(Camp).where(Camp.id == camp_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def _load_entry(self, session: AsyncSession, entry_id: str) -> Optional[WaitlistEntry]:
        result = await session.execute(
            _with_people(select(Registration).where(Registration.id == entry_id))
            .execution_options(populate_existing=True)
        )
        reg = result.scalar_one_or_none()
        return _entry(reg) if reg else None

    async def _count_active(
        self,
        session: AsyncSession,
        camp_id: str,
        now: datetime,
        exclude_entry_id: Optional[str] = None,
    ) -> int:
        stmt = select(func.count(Registration.id)).where(
            Registration.camp_id == camp_id,
            or_(
                Registration.status.in_(OCCUPYING),
                and_(
                    Registration.status == WAITLISTED,
                    Registration.offer_expires_at > now,
                ),
            ),
        )
        if exclude_entry_id is not None:
            stmt = stmt.where(Registration.id != exclude_entry_id)
        return (await session.execute(stmt)).scalar_one()

    async def _tail_position(self, session: AsyncSession, camp_id: str) -> int:
        result = await session.execute(
            select(func.max(Registration.waitlist_position)).where(
                Registration.camp_id == camp_id,
                Registration.status == WAITLISTED,
            )
        )
        return (result.scalar_one_or_none() or 0) + 1

    async def _camp_id_of(self, session: AsyncSession, entry_id: str) -> Optional[str]:
        result = await session.execute(
            select(Registration.camp_id).where(Registration.id == entry_id)
        )
        return result.scalar_one_or_none()

    async def get_camp(self, camp_id: str) -> Optional[CampSnapshot]:
        async with self._sessionmaker() as session:
            camp = await session.get(Camp, camp_id)
            return _camp_snapshot(camp) if camp else None

    async def count_active(
        self,
        camp_id: str,
        now: datetime,
        exclude_entry_id: Optional[str] = None,
    ) -> int:
        async with self._sessionmaker() as session:
            return await self._count_active(session, camp_id, now, exclude_entry_id)

    async def create_waitlisted(
        self,
        camp: CampSnapshot,
        camper_id: str,
        holder_id: str,
        pricing: Pricing,
        offer_token: str,
        now: datetime,
    ) -> WaitlistEntry:
        async with self._transaction() as session:
            locked = await self._lock_camp(session, camp.id)
            if locked is None:
                raise NotFound("Camp not found")

            # A seat may have freed since the caller checked
            active = await self._count_active(session, camp.id, now)
            if capacity.has_free_seat(locked.capacity, active):
                raise CapacityAvailable()

            existing = await session.execute(
                select(Registration.status).where(
                    Registration.camp_id == camp.id,
                    Registration.camper_id == camper_id,
                    Registration.status.in_(ACTIVE),
                ).limit(1)
            )
            existing_status = existing.scalar_one_or_none()
            if existing_status is not None:
                raise DuplicateEntry(duplicate_message(existing_status))

            reg = Registration(
                tenant_id=camp.tenant_id,
                camp_id=camp.id,
                camper_id=camper_id,
                parent_id=holder_id,
                status=WAITLISTED,
                base_price_cents=pricing.base_price_cents,
                discount_cents=pricing.discount_cents,
                promo_discount_cents=pricing.promo_discount_cents,
                addons_total_cents=pricing.addons_total_cents,
                tax_cents=pricing.tax_cents,
                total_price_cents=pricing.total_price_cents,
                promo_code_id=pricing.promo_code_id,
                shirt_size=pricing.shirt_size,
                special_considerations=pricing.special_considerations,
                friend_requests=list(pricing.friend_requests),
                waitlist_position=await self._tail_position(session, camp.id),
                waitlist_joined_at=now,
                offer_token=offer_token,
                offer_count=0,
            )
            session.add(reg)
            await session.flush()
            return await self._load_entry(session, reg.id)

    async def get_entry(self, entry_id: str) -> Optional[WaitlistEntry]:
        async with self._sessionmaker() as session:
            return await self._load_entry(session, entry_id)

    async def get_by_token(self, offer_token: str) -> Optional[WaitlistEntry]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                _with_people(select(Registration).where(
                    Registration.offer_token == offer_token,
                    Registration.status == WAITLISTED,
                ))
            )
            reg = result.scalar_one_or_none()
            return _entry(reg) if reg else None

    async def list_waitlisted(self, camp_id: str) -> list[WaitlistEntry]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                _with_people(select(Registration).where(
                    Registration.camp_id == camp_id,
                    Registration.status == WAITLISTED,
                ).order_by(
                    Registration.waitlist_position.asc(),
                    Registration.waitlist_joined_at.asc(),
                    Registration.id.asc(),
                ))
            )
            return [_entry(reg) for reg in result.scalars().all()]

    async def try_issue_offer(
        self,
        camp_id: str,
        now: datetime,
        expires_at: datetime,
        fresh_token: str,
        entry_id: Optional[str] = None,
    ) -> Optional[WaitlistEntry]:
        async with self._transaction() as session:
            camp = await self._lock_camp(session, camp_id)
            if camp is None:
                if entry_id is not None:
                    raise NotFound("Camp not found")
                return None

            if entry_id is not None:
                result = await session.execute(
                    select(Registration).where(
                        Registration.id == entry_id,
                        Registration.camp_id == camp_id,
                        Registration.status == WAITLISTED,
                    ).with_for_update()
                )
                target = result.scalar_one_or_none()
                if target is None:
                    raise NotFound("Registration not found or not in waitlisted state")
                active = await self._count_active(session, camp_id, now, exclude_entry_id=entry_id)
                if not capacity.has_free_seat(camp.capacity, active):
                    raise SpotNoLongerAvailable("Camp is full, no spot to offer")
            else:
                if camp.capacity is None:
                    return None
                active = await self._count_active(session, camp_id, now)
                if not capacity.has_free_seat(camp.capacity, active):
                    return None
                outstanding = await session.execute(
                    select(func.count(Registration.id)).where(
                        Registration.camp_id == camp_id,
                        Registration.status == WAITLISTED,
                        Registration.offer_expires_at > now,
                    )
                )
                if outstanding.scalar_one() > 0:
                    return None
                result = await session.execute(
                    select(Registration).where(
                        Registration.camp_id == camp_id,
                        Registration.status == WAITLISTED,
                        or_(
                            Registration.offer_expires_at.is_(None),
                            Registration.offer_expires_at <= now,
                        ),
                    ).order_by(
                        Registration.waitlist_position.asc(),
                        Registration.waitlist_joined_at.asc(),
                        Registration.id.asc(),
                    ).limit(1).with_for_update()
                )
                target = result.scalar_one_or_none()
                if target is None:
                    return None

            if target.offer_count > 0:
                target.offer_token = fresh_token
            target.offer_sent_at = now
            target.offer_expires_at = expires_at
            target.offer_count = target.offer_count + 1
            await session.flush()

            logger.debug("offer_marked", camp_id=camp_id, entry_id=target.id, active=active)
            return await self._load_entry(session, target.id)

    async def set_checkout_session(self, entry_id: str, session_id: str) -> None:
        async with self._transaction() as session:
            result = await session.execute(
                update(Registration)
                .where(Registration.id == entry_id)
                .values(checkout_session_id=session_id)
            )
            if result.rowcount == 0:
                raise NotFound("Registration not found")

    async def cancel_entry(
        self,
        entry_id: str,
        reason: str,
        now: datetime,
        from_statuses: tuple[EntryStatus, ...],
    ) -> Optional[WaitlistEntry]:
        async with self._transaction() as session:
            camp_id = await self._camp_id_of(session, entry_id)
            if camp_id is None:
                return None
            await self._lock_camp(session, camp_id)

            before = await self._load_entry(session, entry_id)
            if before is None or before.status not in from_statuses:
                return None

            await session.execute(
                update(Registration)
                .where(Registration.id == entry_id)
                .values(
                    status=EntryStatus.CANCELLED.value,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    waitlist_position=None,
                    offer_sent_at=None,
                    offer_expires_at=None,
                )
            )
            return before

    async def requeue_to_tail(
        self,
        entry_id: str,
        now: datetime,
        fresh_token: str,
    ) -> Optional[WaitlistEntry]:
        async with self._transaction() as session:
            camp_id = await self._camp_id_of(session, entry_id)
            if camp_id is None:
                return None
            await self._lock_camp(session, camp_id)

            tail = await self._tail_position(session, camp_id)
            result = await session.execute(
                update(Registration)
                .where(
                    Registration.id == entry_id,
                    Registration.status == WAITLISTED,
                    Registration.offer_expires_at < now,
                )
                .values(
                    waitlist_position=tail,
                    offer_sent_at=None,
                    offer_expires_at=None,
                    offer_token=fresh_token,
                )
            )
            if result.rowcount == 0:
                return None
            return await self._load_entry(session, entry_id)

    async def confirm_entry(self, entry_id: str, now: datetime) -> Optional[WaitlistEntry]:
        async with self._transaction() as session:
            camp_id = await self._camp_id_of(session, entry_id)
            if camp_id is None:
                return None
            await self._lock_camp(session, camp_id)

            result = await session.execute(
                update(Registration)
                .where(Registration.id == entry_id, Registration.status == WAITLISTED)
                .values(
                    status=EntryStatus.CONFIRMED.value,
                    paid_at=now,
                    waitlist_position=None,
                    offer_sent_at=None,
                    offer_expires_at=None,
                )
            )
            if result.rowcount == 0:
                return None
            return await self._load_entry(session, entry_id)

    async def compact_positions(self, camp_id: str) -> int:
        async with self._transaction() as session:
            if await self._lock_camp(session, camp_id) is None:
                return 0
            result = await session.execute(
                select(Registration).where(
                    Registration.camp_id == camp_id,
                    Registration.status == WAITLISTED,
                )
            )
            plan = compaction_plan(_entry(reg) for reg in result.scalars().all())

            # Ascending order: each target position is already free when written
            for entry_id, position in sorted(plan.items(), key=lambda item: item[1]):
                await session.execute(
                    update(Registration)
                    .where(Registration.id == entry_id)
                    .values(waitlist_position=position)
                )
            return len(plan)

    async def list_stale_offers(self, now: datetime) -> list[WaitlistEntry]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                _with_people(select(Registration).where(
                    Registration.status == WAITLISTED,
                    Registration.offer_expires_at.is_not(None),
                    Registration.offer_expires_at < now,
                ).order_by(Registration.camp_id, Registration.waitlist_position.asc()))
            )
            return [_entry(reg) for reg in result.scalars().all()]

    async def find_available_camps(
        self,
        tenant_id: str,
        exclude_camp_id: str,
        today: date,
        limit: int,
        default_capacity: int,
    ) -> list[AvailableCamp]:
        occupied = (
            select(func.count(Registration.id))
            .where(Registration.camp_id == Camp.id, Registration.status.in_(OCCUPYING))
            .correlate(Camp)
            .scalar_subquery()
        )
        spots_left = func.coalesce(Camp.capacity, default_capacity) - occupied

        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Camp, spots_left.label("spots_left"))
                .where(
                    Camp.tenant_id == tenant_id,
                    Camp.id != exclude_camp_id,
                    Camp.start_date > today,
                    Camp.status.in_(["published", "registration_open"]),
                    spots_left > 0,
                )
                .order_by(Camp.start_date.asc())
                .limit(limit)
            )
            return [
                AvailableCamp(camp=_camp_snapshot(camp), spots_left=int(left))
                for camp, left in result.all()
            ]
