"""API tests through the FastAPI app"""

import hashlib
import hmac
import json
from datetime import datetime

import pytest

from app.config import settings


def reservation_body(venue, start="2025-01-01T18:00:00", party_size=2, **extra):
    body = {"venue_id": str(venue.id), "start": start, "party_size": party_size}
    body.update(extra)
    return body


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_get_availability(client, venue):
    response = await client.get(
        "/availability",
        params={"venue_id": str(venue.id), "date": "2025-01-01", "party_size": 2},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["available"] is True
    assert data["reason"] is None
    assert data["slots"][0]["start"] == "2025-01-01T12:00:00"
    assert data["slots"][0]["confidence"] == "high"


async def test_closed_day_reports_reason(client, venue):
    response = await client.get(
        "/availability",
        params={"venue_id": str(venue.id), "date": "2025-01-05", "party_size": 2},
    )

    assert response.status_code == 200
    assert response.json()["available"] is False
    assert response.json()["reason"] == "closed"


async def test_check_slot_rejects_unaligned_start(client, venue):
    response = await client.get(
        "/availability/check",
        params={"venue_id": str(venue.id), "start": "2025-01-01T18:05:00", "party_size": 2},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


async def test_unknown_venue_is_404(client):
    response = await client.get(
        "/availability",
        params={"venue_id": "00000000-0000-0000-0000-000000000000", "date": "2025-01-01", "party_size": 2},
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_create_reservation(client, venue, diner_user, diner_headers):
    response = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["owner_id"] == str(diner_user.id)
    assert data["end_at"] == "2025-01-01T19:30:00"
    assert data["source_system"] == "lineup"


async def test_create_requires_token(client, venue):
    response = await client.post("/reservations", json=reservation_body(venue))

    assert response.status_code == 401


async def test_unaligned_start_is_400(client, venue, diner_headers):
    response = await client.post(
        "/reservations",
        json=reservation_body(venue, start="2025-01-01T18:10:00"),
        headers=diner_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


async def test_double_booked_lane_is_409(client, venue, lanes, diner_headers):
    body = reservation_body(venue, party_size=4, kind="lane", resource_id=str(lanes[0].id))

    first = await client.post("/reservations", json=body, headers=diner_headers)
    second = await client.post("/reservations", json=body, headers=diner_headers)

    assert first.status_code == 201
    assert first.json()["session_state"] == "active"
    assert second.status_code == 409
    assert second.json()["error"] == "slot_unavailable"


async def test_diners_cannot_book_for_other_channels(client, venue, diner_headers):
    response = await client.post(
        "/reservations",
        json=reservation_body(venue, source_system="phone"),
        headers=diner_headers,
    )

    assert response.status_code == 403


async def test_staff_books_on_behalf_of_guest(client, venue, staff_headers):
    response = await client.post(
        "/reservations",
        json=reservation_body(venue, source_system="phone", owner_id="guest-7", guest_name="Walk Up"),
        headers=staff_headers,
    )

    assert response.status_code == 201
    assert response.json()["owner_id"] == "guest-7"


async def test_other_diner_cannot_read_reservation(client, venue, diner_headers, make_user, headers_for):
    created = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)
    stranger = await make_user("stranger@example.com")

    response = await client.get(f"/reservations/{created.json()['id']}", headers=headers_for(stranger))

    assert response.status_code == 403
    assert response.json()["error"] == "unauthorized"


async def test_cancel_inside_cutoff_is_409_with_deadline(client, venue, diner_headers):
    created = await client.post(
        "/reservations",
        json=reservation_body(venue, start="2025-01-01T13:30:00"),
        headers=diner_headers,
    )

    response = await client.post(f"/reservations/{created.json()['id']}/cancel", headers=diner_headers)

    assert response.status_code == 409
    assert response.json()["error"] == "cutoff_exceeded"
    assert response.json()["deadline"] == "2025-01-01T11:30:00"


async def test_cancel_and_list(client, venue, diner_headers):
    created = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)
    reservation_id = created.json()["id"]

    active = await client.get("/reservations/me/active", headers=diner_headers)
    assert [r["id"] for r in active.json()] == [reservation_id]

    response = await client.post(
        f"/reservations/{reservation_id}/cancel",
        json={"reason": "Plans changed"},
        headers=diner_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Plans changed"

    again = await client.post(f"/reservations/{reservation_id}/cancel", headers=diner_headers)
    assert again.status_code == 409
    assert again.json()["error"] == "already_terminal"

    assert (await client.get("/reservations/me/active", headers=diner_headers)).json() == []
    past = await client.get("/reservations/me/past", headers=diner_headers)
    assert [r["id"] for r in past.json()] == [reservation_id]


async def test_reschedule(client, venue, diner_headers):
    created = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)

    response = await client.post(
        f"/reservations/{created.json()['id']}/reschedule",
        json={"start": "2025-01-01T19:00:00", "party_size": 3},
        headers=diner_headers,
    )

    assert response.status_code == 200
    assert response.json()["start_at"] == "2025-01-01T19:00:00"
    assert response.json()["party_size"] == 3


async def test_staff_marks_arrival(client, venue, diner_headers, staff_headers):
    created = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)
    reservation_id = created.json()["id"]

    refused = await client.post(f"/reservations/{reservation_id}/arrive", headers=diner_headers)
    assert refused.status_code == 403

    arrived = await client.post(f"/reservations/{reservation_id}/arrive", headers=staff_headers)
    assert arrived.status_code == 200
    assert arrived.json()["status"] == "arrived"

    completed = await client.post(f"/reservations/{reservation_id}/complete", headers=staff_headers)
    assert completed.json()["status"] == "completed"


async def test_venue_reservations_are_staff_only(client, venue, diner_headers, staff_headers):
    await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)

    as_staff = await client.get(f"/venues/{venue.id}/reservations", headers=staff_headers)
    assert as_staff.status_code == 200
    assert as_staff.json()["total"] == 1

    as_diner = await client.get(f"/venues/{venue.id}/reservations", headers=diner_headers)
    assert as_diner.status_code == 403


async def test_staff_takes_lane_out_of_service(client, venue, lanes, staff_headers):
    response = await client.put(
        f"/venues/{venue.id}/resources/{lanes[0].id}/status",
        json={"status": "out_of_service"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "out_of_service"

    resources = await client.get(f"/venues/{venue.id}/resources", headers=staff_headers)
    statuses = {r["id"]: r["status"] for r in resources.json()}
    assert statuses[str(lanes[0].id)] == "out_of_service"


async def test_admin_creates_venue(client, admin_headers, diner_headers):
    body = {
        "name": "Pin Palace",
        "hours_json": {"friday": {"open": "18:00", "close": "02:00"}},
        "seating_capacity": 40,
    }

    refused = await client.post("/venues", json=body, headers=diner_headers)
    assert refused.status_code == 403

    response = await client.post("/venues", json=body, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["name"] == "Pin Palace"


async def test_actor_lists_staff_venues(client, venue, staff_headers):
    response = await client.get("/auth/me/actor", headers=staff_headers)

    assert response.status_code == 200
    assert response.json()["staff_venue_ids"] == [str(venue.id)]


async def test_extension_through_api(client, venue, diner_headers, scheduler, clock, dispatcher):
    created = await client.post(
        "/reservations",
        json=reservation_body(venue, start="2025-01-01T20:00:00", party_size=4, kind="lane"),
        headers=diner_headers,
    )
    reservation_id = created.json()["id"]

    early = await client.post(f"/reservations/{reservation_id}/extend", json={"minutes": 30}, headers=diner_headers)
    assert early.status_code == 409
    assert early.json()["error"] == "invalid_state"

    clock.set(datetime(2025, 1, 1, 20, 46))
    await scheduler.sweep()

    response = await client.post(f"/reservations/{reservation_id}/extend", json={"minutes": 30}, headers=diner_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["request"]["status"] == "approved"
    assert data["reservation"]["end_at"] == "2025-01-01T21:30:00"
    assert data["reservation"]["session_state"] == "active"
    assert dispatcher.templates == ["session_warning", "extension_approved"]


def opentable_body():
    return json.dumps({
        "eventType": "reservation.created",
        "data": {
            "reservationId": "OT-77",
            "reservationDateTime": "2025-01-01T23:00:00Z",
            "partySize": 2,
            "dinerName": "Grace Hopper",
        },
    }).encode()


async def test_opentable_webhook(client, venue, staff_headers):
    response = await client.post(
        f"/webhooks/opentable/{venue.id}",
        content=opentable_body(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True

    listed = await client.get(f"/venues/{venue.id}/reservations", params={"source_system": "opentable"}, headers=staff_headers)
    assert listed.json()["items"][0]["id"] == response.json()["reservation_id"]
    assert listed.json()["items"][0]["start_at"] == "2025-01-01T18:00:00"


async def test_opentable_webhook_checks_signature(client, venue, monkeypatch):
    monkeypatch.setattr(settings, "opentable_webhook_secret", "shh")
    body = opentable_body()

    forged = await client.post(
        f"/webhooks/opentable/{venue.id}",
        content=body,
        headers={"Content-Type": "application/json", "X-OpenTable-Signature": "sha256=deadbeef"},
    )
    assert forged.status_code == 401

    signature = hmac.new(b"shh", body, hashlib.sha256).hexdigest()
    signed = await client.post(
        f"/webhooks/opentable/{venue.id}",
        content=body,
        headers={"Content-Type": "application/json", "X-OpenTable-Signature": f"sha256={signature}"},
    )
    assert signed.status_code == 200


async def test_opentable_webhook_rejects_bad_json(client, venue):
    response = await client.post(f"/webhooks/opentable/{venue.id}", content=b"not json")

    assert response.status_code == 400


@pytest.mark.parametrize("start", ["2025-01-01T23:00:00Z", "2025-01-01T18:00:00-05:00"])
async def test_create_with_utc_offset_start(client, venue, diner_headers, start):
    response = await client.post("/reservations", json=reservation_body(venue, start=start), headers=diner_headers)

    assert response.status_code == 201
    assert response.json()["start_at"] == "2025-01-01T18:00:00"
    assert response.json()["end_at"] == "2025-01-01T19:30:00"


async def test_reschedule_with_utc_offset_start(client, venue, diner_headers):
    created = await client.post("/reservations", json=reservation_body(venue), headers=diner_headers)

    response = await client.post(
        f"/reservations/{created.json()['id']}/reschedule",
        json={"start": "2025-01-02T01:00:00Z"},
        headers=diner_headers,
    )

    assert response.status_code == 200
    assert response.json()["start_at"] == "2025-01-01T20:00:00"


@pytest.mark.parametrize("start", ["2025-01-01T23:00:00Z", "2025-01-01T18:00:00-05:00"])
async def test_check_slot_with_utc_offset_start(client, venue, start):
    response = await client.get(
        "/availability/check",
        params={"venue_id": str(venue.id), "start": start, "party_size": 2},
    )

    assert response.status_code == 200
    assert response.json()["available"] is True
    assert response.json()["slot"]["start"] == "2025-01-01T18:00:00"


async def test_alternatives_endpoint(client, venue):
    response = await client.get(
        "/availability/alternatives",
        params={"venue_id": str(venue.id), "start": "2025-01-01T18:00:00", "party_size": 2, "window_minutes": 15},
    )

    assert response.status_code == 200
    assert [slot["start"] for slot in response.json()["slots"]] == [
        "2025-01-01T17:45:00",
        "2025-01-01T18:15:00",
    ]


async def test_availability_range_endpoint(client, venue):
    response = await client.get(
        "/availability/range",
        params={"venue_id": str(venue.id), "start_date": "2025-01-04", "end_date": "2025-01-05", "party_size": 2},
    )

    assert response.status_code == 200
    days = response.json()["days"]
    assert [day["date"] for day in days] == ["2025-01-04", "2025-01-05"]
    assert days[0]["available"] is True
    assert days[1]["reason"] == "closed"


async def test_availability_range_rejects_reversed_dates(client, venue):
    response = await client.get(
        "/availability/range",
        params={"venue_id": str(venue.id), "start_date": "2025-01-05", "end_date": "2025-01-04", "party_size": 2},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert response.json()["first_day"] == "2025-01-05"
