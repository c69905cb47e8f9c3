"""
Tests for the notification outbox drain and the concrete senders.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import stripe

from campwaitlist.infrastructure.email import (
    LoggingNotificationSender,
    ResendNotificationSender,
    render_subject,
    render_text,
)
from campwaitlist.infrastructure.payments import StripeCheckoutInitiator
from campwaitlist.services.interfaces.notifications import Notification
from campwaitlist.services.interfaces.payments import CheckoutError
from campwaitlist.services.notification_service import dispatch_outbox


def _notification(kind="join_confirmation", **payload):
    return Notification(
        kind=kind,
        recipient="parent@example.com",
        context={"camp_name": "Lakeside Camp", "camp_dates": "Jun 1 - Jun 5, 2026", "location": "Lakeside Park"},
        payload={"holder_first_name": "Dana", "camper_first_name": "Sam", "position": 3,
                 "offer_window_hours": 48, **payload},
    )


@pytest.mark.asyncio
async def test_dispatch_delivers_pending_messages(outbox, sender):
    await outbox.enqueue(_notification())
    await outbox.enqueue(_notification())

    result = await dispatch_outbox(outbox, sender, max_attempts=3, batch_size=10)

    assert (result.dispatched, result.failed, result.dead_lettered) == (2, 0, 0)
    assert len(sender.sent) == 2
    assert await outbox.pending_count() == 0


@pytest.mark.asyncio
async def test_failed_message_is_retried_then_dead_lettered(outbox, sender):
    sender.failing = True
    await outbox.enqueue(_notification())

    for attempt in range(1, 3):
        result = await dispatch_outbox(outbox, sender, max_attempts=3, batch_size=10)
        assert result.failed == 1
        assert outbox.pending[0].attempts == attempt

    result = await dispatch_outbox(outbox, sender, max_attempts=3, batch_size=10)
    assert result.dead_lettered == 1
    assert await outbox.pending_count() == 0
    assert outbox.dead[0].attempts == 3


@pytest.mark.asyncio
async def test_sender_exception_counts_as_failure(outbox):
    class Exploding(LoggingNotificationSender):
        async def send(self, kind, recipient, context, payload):
            raise RuntimeError("provider SDK bug")

    await outbox.enqueue(_notification())
    result = await dispatch_outbox(outbox, Exploding(), max_attempts=5, batch_size=10)

    assert result.failed == 1
    assert await outbox.pending_count() == 1


@pytest.mark.asyncio
async def test_dispatch_respects_batch_size(outbox, sender):
    for _ in range(5):
        await outbox.enqueue(_notification())

    result = await dispatch_outbox(outbox, sender, max_attempts=3, batch_size=2)

    assert result.dispatched == 2
    assert await outbox.pending_count() == 3


def test_notification_survives_serialization():
    original = _notification(kind="offer_expired")
    restored = Notification.from_json(original.to_json())
    assert restored == original


def test_render_offer_issued():
    note = _notification(
        kind="offer_issued",
        price="$450.00",
        offer_expires_at="May 3, 2026 12:00 PM UTC",
        accept_url="https://camps.test/waitlist/offer/abc",
        decline_url="https://camps.test/waitlist/offer/abc?action=decline",
    )
    text = render_text(note.kind, note.context, note.payload)

    assert render_subject(note.kind, note.context) == "A spot opened up at Lakeside Camp!"
    assert text.startswith("Hi Dana,")
    assert "$450.00" in text
    assert "https://camps.test/waitlist/offer/abc?action=decline" in text


def test_render_nearby_alternatives():
    note = _notification(
        kind="nearby_alternatives",
        camps=[{"name": "Pine Camp", "dates": "Jul 1 - Jul 5, 2026", "location": "Pine Park",
                "spots_left": 4, "register_url": "https://camps.test/register/pine"}],
    )
    text = render_text(note.kind, note.context, note.payload)
    assert "Pine Camp" in text and "4 spots left" in text


@pytest.mark.asyncio
async def test_resend_sender_posts_email():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    resend = ResendNotificationSender("re_test", "Camps <no-reply@camps.test>", "https://resend.test/emails", client)
    note = _notification()

    assert await resend.send(note.kind, note.recipient, note.context, note.payload) is True

    body = json.loads(requests[0].content)
    assert requests[0].headers["Authorization"] == "Bearer re_test"
    assert body["to"] == ["parent@example.com"]
    assert body["subject"] == "You're on the waitlist for Lakeside Camp!"
    assert "#3" in body["text"]
    await resend.aclose()


@pytest.mark.asyncio
async def test_resend_sender_reports_provider_error():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    resend = ResendNotificationSender("re_test", "no-reply@camps.test", "https://resend.test/emails", client)
    note = _notification()

    assert await resend.send(note.kind, note.recipient, note.context, note.payload) is False
    await resend.aclose()


@pytest.mark.asyncio
async def test_stripe_checkout_without_key():
    with pytest.raises(CheckoutError):
        await StripeCheckoutInitiator("").create_checkout(
            "camp-1", "reg-1", "https://s", "https://c", 45000, "Lakeside Camp - Sam"
        )


@pytest.mark.asyncio
async def test_stripe_checkout_session(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return stripe.checkout.Session.construct_from({"id": "cs_123", "url": "https://stripe.test/cs_123"}, "sk")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    session = await StripeCheckoutInitiator("sk_test").create_checkout(
        "camp-1", "reg-1", "https://s", "https://c", 45000, "Lakeside Camp - Sam"
    )

    assert (session.session_id, session.checkout_url) == ("cs_123", "https://stripe.test/cs_123")
    assert captured["metadata"]["registration_id"] == "reg-1"
    assert captured["line_items"][0]["price_data"]["unit_amount"] == 45000
    assert "expires_at" not in captured


@pytest.mark.asyncio
async def test_stripe_session_closes_with_the_offer(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return stripe.checkout.Session.construct_from({"id": "cs_9", "url": "https://stripe.test/cs_9"}, "sk")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    initiator = StripeCheckoutInitiator("sk_test")
    now = datetime.now(timezone.utc)

    offer_ends = now + timedelta(hours=2)
    await initiator.create_checkout(
        "camp-1", "reg-1", "https://s", "https://c", 45000, "Lakeside Camp - Sam", expires_at=offer_ends
    )
    assert captured["expires_at"] == int(offer_ends.timestamp())

    # Stripe caps a session at 24 hours; a longer offer gets the cap
    await initiator.create_checkout(
        "camp-1", "reg-1", "https://s", "https://c", 45000, "Lakeside Camp - Sam",
        expires_at=now + timedelta(hours=40),
    )
    assert captured["expires_at"] <= int((datetime.now(timezone.utc) + timedelta(hours=24)).timestamp())
    assert captured["expires_at"] >= int((now + timedelta(hours=24)).timestamp())


@pytest.mark.asyncio
async def test_stripe_error_becomes_checkout_error(monkeypatch):
    def failing_create(**kwargs):
        raise stripe.APIConnectionError("Network unreachable")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)
    with pytest.raises(CheckoutError):
        await StripeCheckoutInitiator("sk_test").create_checkout(
            "camp-1", "reg-1", "https://s", "https://c", 45000, "Lakeside Camp - Sam"
        )
