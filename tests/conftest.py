"""
Pytest fixtures: in-memory queue store and outbox, a controllable clock,
recording notification sender, fake checkout, and an HTTP client wired to
them through dependency overrides.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from campwaitlist.api.deps import get_clock
from campwaitlist.core.config import Settings, get_settings
from campwaitlist.core.security import create_access_token
from campwaitlist.infrastructure.outbox import InMemoryOutbox
from campwaitlist.main import app
from campwaitlist.services.interfaces.memory_store import InMemoryQueueStore
from campwaitlist.services.interfaces.notifications import NotificationSender
from campwaitlist.services.interfaces.payments import CheckoutInitiator, CheckoutSession
from campwaitlist.services.interfaces.queue_store import (
    CampSnapshot,
    EntryStatus,
    Person,
    Pricing,
    WaitlistEntry,
)
from campwaitlist.services.notification_service import Notifier
from campwaitlist.services.offer_service import OfferService
from campwaitlist.services.store_factory import (
    get_checkout_initiator,
    get_notification_sender,
    get_outbox,
    get_queue_store,
)
from campwaitlist.services.sweep_service import ExpirySweeper
from campwaitlist.services.waitlist_service import WaitlistService

T0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
TENANT_ID = "tenant-1"


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSender(NotificationSender):
    def __init__(self):
        self.sent: list[dict] = []
        self.failing = False

    async def send(self, kind, recipient, context, payload) -> bool:
        if self.failing:
            return False
        self.sent.append({"kind": kind, "recipient": recipient, "context": context, "payload": payload})
        return True

    def kinds(self) -> list[str]:
        return [m["kind"] for m in self.sent]


class FakeCheckout(CheckoutInitiator):
    def __init__(self):
        self.calls: list[dict] = []
        self.error: Optional[Exception] = None

    async def create_checkout(
        self, camp_id, entry_id, success_url, cancel_url, amount_cents, description, expires_at=None
    ):
        if self.error is not None:
            raise self.error
        self.calls.append({
            "camp_id": camp_id,
            "entry_id": entry_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "amount_cents": amount_cents,
            "expires_at": expires_at,
        })
        return CheckoutSession(
            checkout_url=f"https://checkout.test/pay/{entry_id}",
            session_id=f"cs_test_{len(self.calls)}",
        )


class Seeder:
    """Creates camps, families and reservations directly in the store."""

    def __init__(self, store: InMemoryQueueStore, clock: FakeClock):
        self.store = store
        self.clock = clock
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def camp(
        self,
        capacity: Optional[int] = 1,
        confirmed: Optional[int] = None,
        start_in_days: int = 30,
        **overrides,
    ) -> CampSnapshot:
        n = self._next()
        start = self.clock().date() + timedelta(days=start_in_days)
        camp = CampSnapshot(
            id=f"camp-{n}",
            tenant_id=TENANT_ID,
            name=f"Lakeside Camp {n}",
            slug=f"lakeside-camp-{n}",
            start_date=start,
            end_date=start + timedelta(days=4),
            capacity=capacity,
            price_cents=45000,
            location_name="Lakeside Park",
            city="Austin",
            state="TX",
            **overrides,
        )
        self.store.add_camp(camp)
        if confirmed is None:
            confirmed = capacity or 0
        for _ in range(confirmed):
            self.reservation(camp)
        return camp

    def family(self) -> tuple[Person, Person]:
        n = self._next()
        holder = self.store.add_person(
            Person(id=f"parent-{n}", first_name=f"Parent{n}", last_name="Smith", email=f"parent{n}@example.com")
        )
        camper = self.store.add_person(Person(id=f"camper-{n}", first_name=f"Kid{n}", last_name="Smith"))
        return holder, camper

    def reservation(self, camp: CampSnapshot, status: EntryStatus = EntryStatus.CONFIRMED) -> WaitlistEntry:
        holder, camper = self.family()
        return self.store.add_entry(
            WaitlistEntry(
                id=str(uuid.uuid4()),
                camp_id=camp.id,
                tenant_id=camp.tenant_id,
                camper_id=camper.id,
                holder_id=holder.id,
                status=status,
                pricing=Pricing(base_price_cents=camp.price_cents),
            )
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_URL="https://camps.test",
        QUEUE_STORE_BACKEND="memory",
        OUTBOX_BACKEND="memory",
        OUTBOX_MAX_ATTEMPTS=3,
        OFFER_WINDOW_HOURS=48,
    )


@pytest.fixture
def store() -> InMemoryQueueStore:
    return InMemoryQueueStore()


@pytest.fixture
def seed(store: InMemoryQueueStore, clock: FakeClock) -> Seeder:
    return Seeder(store, clock)


@pytest.fixture
def outbox() -> InMemoryOutbox:
    return InMemoryOutbox()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def checkout() -> FakeCheckout:
    return FakeCheckout()


@pytest.fixture
def notifier(outbox, settings) -> Notifier:
    return Notifier(outbox, settings)


@pytest.fixture
def offers(store, notifier, checkout, settings, clock) -> OfferService:
    return OfferService(store, notifier, checkout, settings, clock=clock)


@pytest.fixture
def waitlist(store, offers, notifier, settings) -> WaitlistService:
    return WaitlistService(store, offers, notifier, settings)


@pytest.fixture
def sweeper(store, offers, notifier, outbox, sender, settings) -> ExpirySweeper:
    return ExpirySweeper(store, offers, notifier, outbox, sender, settings)


@pytest.fixture
def join(seed: Seeder, waitlist: WaitlistService):
    """Join the waitlist of a camp with a freshly seeded family."""

    async def _join(camp: CampSnapshot) -> WaitlistEntry:
        holder, camper = seed.family()
        return await waitlist.join(camp.id, camper.id, holder.id)

    return _join


@pytest_asyncio.fixture(scope="function")
async def client(store, outbox, sender, checkout, settings, clock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with every backend replaced by its in-memory fixture."""
    app.dependency_overrides[get_queue_store] = lambda: store
    app.dependency_overrides[get_outbox] = lambda: outbox
    app.dependency_overrides[get_notification_sender] = lambda: sender
    app.dependency_overrides[get_checkout_initiator] = lambda: checkout
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def bearer(claims: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data=claims)}"}


@pytest.fixture
def admin_headers() -> dict:
    return bearer({"sub": "admin-1", "is_admin": True})


@pytest.fixture
def payments_headers() -> dict:
    return bearer({"sub": "stripe-webhook", "service": "payments"})


@pytest.fixture
def cron_headers() -> dict:
    return {"Authorization": f"Bearer {get_settings().CRON_SECRET}"}
