"""Tests for notification templates and webhook signatures"""

import hashlib
import hmac
from datetime import datetime
from types import SimpleNamespace

import pytest

from app.models.resource import ResourceKind
from app.services.notifications import LoggingNotificationDispatcher, render_template, reservation_payload
from app.webhooks.opentable import verify_signature


def lane_reservation():
    return SimpleNamespace(
        id="r-1",
        resource_kind=ResourceKind.LANE,
        party_size=4,
        start_at=datetime(2025, 1, 1, 20, 0),
        end_at=datetime(2025, 1, 1, 21, 0),
        guest_phone=None,
    )


def test_warning_template_names_end_time():
    payload = reservation_payload(lane_reservation(), SimpleNamespace(name="Strike & Fork"), "Lane 3")

    message = render_template("session_warning", payload)

    assert "Lane 3" in message
    assert "Strike & Fork" in message
    assert "09:00 PM" in message


def test_unknown_template():
    with pytest.raises(ValueError):
        render_template("birthday", {})


async def test_logging_dispatcher_renders():
    payload = reservation_payload(lane_reservation(), SimpleNamespace(name="Strike & Fork"))

    await LoggingNotificationDispatcher().notify("diner-1", "session_expired", payload)


def test_verify_signature():
    body = b'{"reservationId": "OT-1"}'
    digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

    assert verify_signature(body, digest, "secret")
    assert verify_signature(body, f"sha256={digest}", "secret")
    assert not verify_signature(body, digest, "other")
    assert not verify_signature(body, None, "secret")
