"""
Tests for the structlog processors.
"""

from campwaitlist.core.logging import add_service_info, mask_sensitive


def test_offer_tokens_are_masked():
    event = mask_sensitive(None, "info", {
        "event": "offer_issued",
        "offer_token": "8f14e45f-ceea-467f-a0e6-bf3d0a7c1b2e",
        "entry_id": "reg-1",
    })

    assert event["offer_token"] == "8f14***"
    assert event["entry_id"] == "reg-1"


def test_empty_values_are_left_alone():
    event = mask_sensitive(None, "info", {"event": "x", "token": None})
    assert event["token"] is None


def test_service_info_does_not_override_bound_values():
    event = add_service_info(None, "info", {"event": "x", "environment": "staging"})

    assert event["environment"] == "staging"
    assert event["service"] == "Camp Waitlist API"
