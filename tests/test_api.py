"""
Tests for the waitlist HTTP API.
"""

import pytest
from httpx import AsyncClient

from campwaitlist.core.security import create_access_token
from campwaitlist.services.interfaces.queue_store import EntryStatus


def _headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


async def _join(client: AsyncClient, seed, camp, **extra):
    holder, camper = seed.family()
    response = await client.post(
        "/api/v1/waitlist/join",
        json={"camp_id": camp.id, "camper_id": camper.id, **extra},
        headers=_headers(holder.id),
    )
    return holder, response


@pytest.mark.asyncio
async def test_join_endpoint(client: AsyncClient, seed, store, sender):
    camp = seed.camp(capacity=1)

    holder, response = await _join(client, seed, camp, shirt_size="AS")

    assert response.status_code == 201
    data = response.json()
    assert data["position"] == 1
    entry = await store.get_entry(data["entry_id"])
    assert entry.holder_id == holder.id
    assert entry.pricing.shirt_size == "AS"
    # Drained after the response
    assert sender.kinds() == ["join_confirmation"]


@pytest.mark.asyncio
async def test_join_unauthenticated(client: AsyncClient, seed):
    camp = seed.camp(capacity=1)
    response = await client.post("/api/v1/waitlist/join", json={"camp_id": camp.id, "camper_id": "c"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_join_errors_map_to_status_codes(client: AsyncClient, seed):
    open_camp = seed.camp(capacity=5, confirmed=1)
    _, response = await _join(client, seed, open_camp)
    assert response.status_code == 409
    assert response.json()["error"] == "capacity_available"

    closed = seed.camp(capacity=1, waitlist_enabled=False)
    _, response = await _join(client, seed, closed)
    assert response.status_code == 403
    assert response.json()["error"] == "waitlist_disabled"

    holder, camper = seed.family()
    response = await client.post(
        "/api/v1/waitlist/join",
        json={"camp_id": "missing", "camper_id": camper.id},
        headers=_headers(holder.id),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_join_returns_409(client: AsyncClient, seed):
    camp = seed.camp(capacity=1)
    holder, camper = seed.family()
    body = {"camp_id": camp.id, "camper_id": camper.id}

    first = await client.post("/api/v1/waitlist/join", json=body, headers=_headers(holder.id))
    second = await client.post("/api/v1/waitlist/join", json=body, headers=_headers(holder.id))

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["error"] == "duplicate_entry"


@pytest.mark.asyncio
async def test_offer_accept_flow(client: AsyncClient, seed, join, store, offers, checkout):
    camp = seed.camp(capacity=1)
    entry = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)

    details = await client.get(f"/api/v1/waitlist/offers/{entry.offer_token}")
    assert details.status_code == 200
    assert details.json()["has_offer"] is True
    assert details.json()["location"]["city"] == "Austin"

    response = await client.post(f"/api/v1/waitlist/offers/{entry.offer_token}/accept")
    assert response.status_code == 200
    assert response.json() == {
        "checkout_url": f"https://checkout.test/pay/{entry.id}",
        "session_id": "cs_test_1",
    }


@pytest.mark.asyncio
async def test_offer_expired_returns_410(client: AsyncClient, seed, join, store, offers, clock):
    camp = seed.camp(capacity=1)
    entry = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)
    clock.advance(hours=49)

    accept = await client.post(f"/api/v1/waitlist/offers/{entry.offer_token}/accept")
    decline = await client.post(f"/api/v1/waitlist/offers/{entry.offer_token}/decline")

    assert accept.status_code == 410
    assert decline.status_code == 410
    assert accept.json()["error"] == "offer_expired"


@pytest.mark.asyncio
async def test_unknown_token_returns_404(client: AsyncClient):
    response = await client.get("/api/v1/waitlist/offers/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "invalid_token"


@pytest.mark.asyncio
async def test_decline_endpoint(client: AsyncClient, seed, join, store):
    camp = seed.camp(capacity=1)
    entry = await join(camp)

    response = await client.post(f"/api/v1/waitlist/offers/{entry.offer_token}/decline")

    assert response.status_code == 200
    assert response.json()["entry_id"] == entry.id
    assert response.json()["status"] == "cancelled"
    assert (await store.get_entry(entry.id)).status == EntryStatus.CANCELLED


@pytest.mark.asyncio
async def test_position_endpoint(client: AsyncClient, seed, join, admin_headers):
    camp = seed.camp(capacity=1)
    await join(camp)
    entry = await join(camp)

    own = await client.get(f"/api/v1/waitlist/camps/{camp.id}/position", headers=_headers(entry.holder_id))
    assert own.json() == {"entry_id": entry.id, "position": 2, "total_waitlisted": 2}

    other = await client.get(
        f"/api/v1/waitlist/camps/{camp.id}/position",
        params={"holder_id": entry.holder_id},
        headers=_headers("someone-else"),
    )
    assert other.status_code == 403

    as_admin = await client.get(
        f"/api/v1/waitlist/camps/{camp.id}/position",
        params={"holder_id": entry.holder_id},
        headers=admin_headers,
    )
    assert as_admin.json()["position"] == 2


@pytest.mark.asyncio
async def test_admin_requires_admin_claim(client: AsyncClient, seed):
    camp = seed.camp(capacity=1)
    response = await client.get(f"/api/v1/admin/camps/{camp.id}/waitlist", headers=_headers("parent-x"))
    assert response.status_code == 403

    for claims, expected in (
        ({"sub": "staff-1", "admin": True}, 403),
        ({"sub": "staff-1", "is_admin": "yes"}, 403),
        ({"sub": "staff-1", "is_admin": True}, 200),
    ):
        token = create_access_token(data=claims)
        response = await client.get(
            f"/api/v1/admin/camps/{camp.id}/waitlist",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == expected, claims


@pytest.mark.asyncio
async def test_admin_queue_management(client: AsyncClient, seed, join, store, admin_headers):
    camp = seed.camp(capacity=1)
    first = await join(camp)
    second = await join(camp)

    listing = await client.get(f"/api/v1/admin/camps/{camp.id}/waitlist", headers=admin_headers)
    assert [row["entry_id"] for row in listing.json()] == [first.id, second.id]

    full = await client.post(f"/api/v1/admin/waitlist/{second.id}/offer", headers=admin_headers)
    assert full.status_code == 409

    store.set_capacity(camp.id, 2)
    offered = await client.post(f"/api/v1/admin/waitlist/{second.id}/offer", headers=admin_headers)
    assert offered.status_code == 200
    assert offered.json()["entry_id"] == second.id
    assert offered.json()["offer_count"] == 1

    removed = await client.delete(f"/api/v1/admin/waitlist/{first.id}", headers=admin_headers)
    assert removed.status_code == 200
    assert (await store.get_entry(second.id)).position == 1

    missing = await client.delete(f"/api/v1/admin/waitlist/{first.id}", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_spot_opened_and_cancel(client: AsyncClient, seed, join, store, admin_headers, clock):
    camp = seed.camp(capacity=1, confirmed=0)
    reservation = seed.reservation(camp)
    entry = await join(camp)

    noop = await client.post(f"/api/v1/admin/camps/{camp.id}/spot-opened", headers=admin_headers)
    assert noop.json() == {"offered": False, "offer": None}

    cancelled = await client.post(
        f"/api/v1/admin/registrations/{reservation.id}/cancel",
        json={"reason": "Schedule conflict"},
        headers=admin_headers,
    )
    assert cancelled.status_code == 200
    assert (await store.get_entry(entry.id)).has_live_offer(clock())

    second = await join(camp)
    store.set_capacity(camp.id, 3)
    # One live offer at a time per camp
    again = await client.post(f"/api/v1/admin/camps/{camp.id}/spot-opened", headers=admin_headers)
    assert again.json()["offered"] is False
    assert (await store.get_entry(second.id)).offer_sent_at is None


@pytest.mark.asyncio
async def test_payment_completion(client: AsyncClient, seed, join, store, offers, payments_headers):
    camp = seed.camp(capacity=1)
    entry = await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)

    url = f"/api/v1/payments/waitlist/{entry.id}/complete"
    unauthorized = await client.post(url, headers=_headers(entry.holder_id))
    assert unauthorized.status_code == 403

    response = await client.post(url, headers=payments_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    redelivered = await client.post(url, headers=payments_headers)
    assert redelivered.status_code == 200
    assert redelivered.json()["status"] == "unchanged"

    missing = await client.post("/api/v1/payments/waitlist/nope/complete", headers=payments_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cron_expire(client: AsyncClient, seed, join, store, offers, clock, cron_headers, sender):
    camp = seed.camp(capacity=1)
    await join(camp)
    await join(camp)
    store.set_capacity(camp.id, 2)
    await offers.spot_opened(camp.id)
    clock.advance(hours=49)

    denied = await client.post("/api/v1/cron/waitlist/expire", headers={"Authorization": "Bearer wrong"})
    assert denied.status_code == 401

    response = await client.post("/api/v1/cron/waitlist/expire", headers=cron_headers)
    assert response.status_code == 200
    data = response.json()
    assert (data["expired"], data["new_offers_sent"]) == (1, 1)
    assert data["notifications_dispatched"] == 5
    assert data["notifications_failed"] == 0


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient, seed, join):
    camp = seed.camp(capacity=1)
    await join(camp)

    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["outbox_pending"] == 1

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "waitlist_joins_total" in metrics.text
