"""
Locust Load Test Suite

Seeds one full camp (capacity 10, all seats confirmed) and a pool of
families directly in the database, then:

  locust -f locustfile.py --tags join      # Concurrent joins, positions must stay 1..N
  locust -f locustfile.py --tags offers    # spot-opened race, one live offer at most
  locust -f locustfile.py --tags edge      # Bad input
  locust -f locustfile.py                  # All tests

Requires the API running against the same DATABASE_URL.
"""

import asyncio
import random
import uuid
from datetime import date, timedelta

from locust import HttpUser, task, between, tag, events

from campwaitlist.core.security import create_access_token
from campwaitlist.db.session import AsyncSessionLocal, engine
from campwaitlist.models import Camp, Camper, Registration, User

CAPACITY = 10
FAMILY_POOL = 2000

# Shared state
CAMP_ID = None
FAMILIES = []  # (holder_id, camper_id)
JOINED = []  # entry ids


async def _seed() -> tuple[str, list[tuple[str, str]]]:
    run = uuid.uuid4().hex[:8]
    async with AsyncSessionLocal() as session:
        camp = Camp(
            tenant_id="load-test",
            name=f"Load Test Camp {run}",
            slug=f"load-test-{run}",
            start_date=date.today() + timedelta(days=60),
            end_date=date.today() + timedelta(days=64),
            capacity=CAPACITY,
            price_cents=45000,
            status="registration_open",
        )
        session.add(camp)
        await session.flush()

        families = []
        for i in range(FAMILY_POOL + CAPACITY):
            parent = User(email=f"load_{run}_{i}@test.com", first_name="Load", last_name=str(i))
            session.add(parent)
            await session.flush()
            camper = Camper(parent_id=parent.id, first_name="Kid", last_name=str(i))
            session.add(camper)
            await session.flush()
            if i < CAPACITY:
                session.add(Registration(
                    tenant_id=camp.tenant_id,
                    camp_id=camp.id,
                    camper_id=camper.id,
                    parent_id=parent.id,
                    status="confirmed",
                    base_price_cents=45000,
                    total_price_cents=45000,
                ))
            else:
                families.append((parent.id, camper.id))
        await session.commit()
    await engine.dispose()
    return camp.id, families


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: one full camp and a pool of families to join it."""
    global CAMP_ID
    print("\n" + "="*60)
    print(f"SETUP: Seeding full camp ({CAPACITY} seats) and {FAMILY_POOL} families...")
    print("="*60)
    CAMP_ID, families = asyncio.run(_seed())
    FAMILIES.extend(families)
    random.shuffle(FAMILIES)
    print(f"\n✓ Camp {CAMP_ID} ready\n")


def _bearer(claims: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data=claims)}"}


class JoinStormUser(HttpUser):
    """
    TEST 1: Concurrency - every user joins the same full camp

    Run: locust -f locustfile.py --tags join -u 200 -r 50 --run-time 30s

    After test, verify positions are contiguous:
      SELECT waitlist_position FROM registrations
      WHERE camp_id = X AND status = 'waitlisted' ORDER BY 1;
    Should be exactly 1..N
    """
    wait_time = between(0, 0.1)

    @tag("join")
    @task
    def join_full_camp(self):
        if not CAMP_ID or not FAMILIES:
            return
        holder_id, camper_id = FAMILIES.pop()

        with self.client.post("/api/v1/waitlist/join",
            json={"camp_id": CAMP_ID, "camper_id": camper_id},
            headers=_bearer({"sub": holder_id}),
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                JOINED.append(resp.json()["entry_id"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Duplicate or seat freed meanwhile
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class SpotOpenedRaceUser(HttpUser):
    """
    TEST 2: spot-opened race - admins and cancellations hit the same camp

    Run: locust -f locustfile.py --tags offers -u 50 -r 25 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM registrations
      WHERE camp_id = X AND status = 'waitlisted' AND offer_expires_at > now();
    Should be ≤ 1
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.headers = _bearer({"sub": "load-admin", "is_admin": True})

    @tag("offers")
    @task(5)
    def spot_opened(self):
        if not CAMP_ID:
            return
        self.client.post(f"/api/v1/admin/camps/{CAMP_ID}/spot-opened",
            headers=self.headers,
            name="/api/v1/admin/camps/{id}/spot-opened")

    @tag("offers")
    @task(1)
    def view_queue(self):
        if not CAMP_ID:
            return
        self.client.get(f"/api/v1/admin/camps/{CAMP_ID}/waitlist",
            headers=self.headers,
            name="/api/v1/admin/camps/{id}/waitlist")

    @tag("offers")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = _bearer({"sub": f"edge-{uuid.uuid4().hex[:8]}"})

    @tag("edge")
    @task
    def unknown_offer_token(self):
        with self.client.post(f"/api/v1/waitlist/offers/{uuid.uuid4()}/accept",
            name="/api/v1/waitlist/offers/{token}/accept",
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_camp(self):
        with self.client.post("/api/v1/waitlist/join",
            json={"camp_id": str(uuid.uuid4()), "camper_id": str(uuid.uuid4())},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def negative_price(self):
        with self.client.post("/api/v1/waitlist/join",
            json={"camp_id": CAMP_ID or "x", "camper_id": "x", "discount_cents": -100},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/waitlist/join",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/waitlist/join",
            json={"camp_id": "x", "camper_id": "x"},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")

    @tag("edge")
    @task
    def bad_cron_secret(self):
        with self.client.post("/api/v1/cron/waitlist/expire",
            headers={"Authorization": "Bearer wrong"},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")
