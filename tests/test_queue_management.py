"""
Tests for admin queue management, payment completion and reservation
cancellation.
"""

import pytest

from campwaitlist.core.exceptions import NotFound, OfferExpired
from campwaitlist.services.interfaces.queue_store import EntryStatus


@pytest.mark.asyncio
async def test_remove_entry_compacts_queue(seed, join, store, waitlist):
    camp = seed.camp(capacity=1)
    first = await join(camp)
    second = await join(camp)
    third = await join(camp)

    removed = await waitlist.remove_entry(second.id)

    assert removed.id == second.id
    stored = await store.get_entry(second.id)
    assert stored.status == EntryStatus.CANCELLED
    assert stored.cancellation_reason == "Removed from waitlist by admin"
    queue = await store.list_waitlisted(camp.id)
    assert [(e.id, e.position) for e in queue] == [(first.id, 1), (third.id, 2)]


@pytest.mark.asyncio
async def test_removing_offer_holder_passes_the_offer_on(seed, join, store, offers, waitlist, clock):
    camp = seed.camp(capacity=1)
    first = await join(camp)
    second = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)

    await waitlist.remove_entry(first.id)

    head = await store.get_entry(second.id)
    assert head.position == 1
    assert head.has_live_offer(clock())


@pytest.mark.asyncio
async def test_remove_entry_not_waitlisted(seed, waitlist):
    camp = seed.camp(capacity=1)
    reservation = seed.reservation(camp)

    with pytest.raises(NotFound):
        await waitlist.remove_entry(reservation.id)
    with pytest.raises(NotFound):
        await waitlist.remove_entry("missing")


@pytest.mark.asyncio
async def test_complete_waitlist_entry_confirms_and_is_idempotent(seed, join, store, offers, waitlist, clock):
    camp = seed.camp(capacity=1)
    first = await join(camp)
    second = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)

    confirmed = await waitlist.complete_waitlist_entry(first.id)

    assert confirmed.status == EntryStatus.CONFIRMED
    assert confirmed.paid_at == clock()
    assert confirmed.position is None and confirmed.offer_expires_at is None
    assert (await store.get_entry(second.id)).position == 1
    assert await waitlist.complete_waitlist_entry(first.id) is None
    with pytest.raises(NotFound):
        await waitlist.complete_waitlist_entry("missing")


@pytest.mark.asyncio
async def test_cancel_reservation_offers_seat(seed, join, store, waitlist, clock):
    camp = seed.camp(capacity=1, confirmed=0)
    reservation = seed.reservation(camp, status=EntryStatus.PENDING)
    entry = await join(camp)

    cancelled = await waitlist.cancel_reservation(reservation.id, "Requested refund")

    stored = await store.get_entry(reservation.id)
    assert cancelled.id == reservation.id
    assert stored.status == EntryStatus.CANCELLED
    assert stored.cancellation_reason == "Requested refund"
    assert (await store.get_entry(entry.id)).has_live_offer(clock())


@pytest.mark.asyncio
async def test_cancel_reservation_rejects_waitlisted_entry(seed, join, waitlist):
    camp = seed.camp(capacity=1)
    entry = await join(camp)

    with pytest.raises(NotFound):
        await waitlist.cancel_reservation(entry.id, "nope")


@pytest.mark.asyncio
async def test_list_queue_reports_offer_status(seed, join, store, offers, waitlist, clock):
    camp = seed.camp(capacity=1)
    first = await join(camp)
    second = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)

    rows = await waitlist.list_queue(camp.id)
    assert [(r["entry_id"], r["offer_status"]) for r in rows] == [
        (first.id, "offer_sent"),
        (second.id, "waiting"),
    ]
    assert rows[0]["holder_email"] == first.holder.email
    assert rows[0]["camper_name"] == first.camper.full_name

    # At the deadline the offer can no longer be accepted
    clock.advance(hours=48)
    rows = await waitlist.list_queue(camp.id)
    assert rows[0]["offer_status"] == "offer_expired"
    with pytest.raises(OfferExpired):
        await offers.accept(first.offer_token)

    with pytest.raises(NotFound):
        await waitlist.list_queue("missing")


@pytest.mark.asyncio
async def test_get_position(seed, join, waitlist):
    camp = seed.camp(capacity=1)
    await join(camp)
    second = await join(camp)

    info = await waitlist.get_position(camp.id, second.holder_id)

    assert info == {"entry_id": second.id, "position": 2, "total_waitlisted": 2}
    with pytest.raises(NotFound):
        await waitlist.get_position(camp.id, "stranger")
