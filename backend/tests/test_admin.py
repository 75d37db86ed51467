import pytest

from backend.booking.core.crypto import get_cipher
from backend.booking.services.hours_config import default_opening_hours
from backend.tests.helpers import reservation_body, upcoming


pytestmark = pytest.mark.asyncio

API = "/api/v1"


async def _create(client, **overrides) -> str:
    response = await client.post(f"{API}/reservations", json=reservation_body(**overrides))
    assert response.status_code == 201, response.text
    return response.json()["reservationId"]


# ── Opening hours ────────────────────────────────────────────────────────


async def test_public_opening_hours(client):
    response = await client.get(f"{API}/opening-hours")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=30"
    body = response.json()
    assert body["timezone"] == "Europe/Berlin"
    assert body["reservationsEnabled"] is True
    assert body["week"]["mon"] == {"closed": True, "intervals": []}
    assert len(body["weekdayFlags"]) == 7
    assert body["areas"]["innen"] == {"enabled": True, "capacity": 60}


async def test_write_requires_bearer_token(client):
    document = default_opening_hours().to_document()

    missing = await client.post(f"{API}/opening-hours", json=document)
    malformed = await client.post(f"{API}/opening-hours", json=document, headers={"Authorization": "Basic abc"})
    wrong = await client.post(f"{API}/opening-hours", json=document, headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert malformed.status_code == 401
    assert wrong.status_code == 403


async def test_write_validates_document(client, admin_headers):
    document = default_opening_hours().to_document()
    document["slot"]["stepMinutes"] = 3

    response = await client.post(f"{API}/opening-hours", json=document, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["issues"][0]["field"] == "slot.stepMinutes"


async def test_write_persists_and_clears_caches(client, admin_headers):
    tuesday = upcoming(1)
    params = {"date": tuesday, "area": "aussen"}
    assert (await client.get(f"{API}/availability", params=params)).json()["closed"] is False

    document = default_opening_hours().to_document()
    document["areas"]["aussen"]["enabled"] = False
    document["exceptions"][upcoming(2)] = {"closed": True, "intervals": []}

    response = await client.post(f"{API}/opening-hours", json=document, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["areas"]["aussen"]["enabled"] is False
    assert (await client.get(f"{API}/availability", params=params)).json()["closed"] is True
    wednesday = await client.get(f"{API}/availability", params={"date": upcoming(2), "area": "innen"})
    assert wednesday.json() == {"closed": True, "slots": [], "date": upcoming(2), "area": "innen"}
    assert (await client.get(f"{API}/opening-hours")).json()["areas"]["aussen"]["enabled"] is False


async def test_write_without_delivery_keeps_stored_delivery(client, admin_headers):
    document = default_opening_hours().to_document()
    document["lieferung"] = {"windows": [{"start": "17:00", "end": "21:00"}], "minOrder": 20, "fee": 3}
    assert (await client.post(f"{API}/opening-hours", json=document, headers=admin_headers)).status_code == 200

    update = default_opening_hours().to_document()
    del update["lieferung"]
    del update["abholung"]
    update["slot"]["stepMinutes"] = 15
    response = await client.post(f"{API}/opening-hours", json=update, headers=admin_headers)

    assert response.status_code == 200
    public = (await client.get(f"{API}/opening-hours")).json()
    assert public["slot"]["stepMinutes"] == 15
    assert public["lieferung"]["windows"] == [{"start": "17:00", "end": "21:00"}]
    assert public["lieferung"]["minOrder"] == 20
    assert public["abholung"] is None


# ── Reservations ─────────────────────────────────────────────────────────


async def test_admin_endpoints_require_token(client):
    assert (await client.get(f"{API}/admin/reservations")).status_code == 401
    wrong = await client.get(f"{API}/admin/reservations", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 403


async def test_admin_lookup_by_email_and_date(client, admin_headers):
    first = await _create(client, userId="guest-a")
    await _create(client, userId="guest-b", email="bob@example.com", time="19:30")

    by_email = await client.get(
        f"{API}/admin/reservations",
        params={"email": "anna.schmidt@example.com"},
        headers=admin_headers,
    )
    assert by_email.status_code == 200
    rows = by_email.json()
    assert [row["id"] for row in rows] == [first]
    assert rows[0]["firstName"] == "Anna"
    assert rows[0]["phone"] == "+49 30 1234567"
    assert rows[0]["ipHash"] == get_cipher().hash_value("127.0.0.1")

    by_date = await client.get(
        f"{API}/admin/reservations",
        params={"dateIndex": upcoming(1)},
        headers=admin_headers,
    )
    assert len(by_date.json()) == 2


async def test_admin_status_transitions(client, admin_headers):
    reservation_id = await _create(client)
    url = f"{API}/admin/reservations/{reservation_id}/status"

    rejected = await client.post(url, json={"status": "rejected", "reason": "Closed for a private event"}, headers=admin_headers)
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejectionReason"] == "Closed for a private event"

    again = await client.post(url, json={"status": "accepted"}, headers=admin_headers)
    assert again.status_code == 400
    assert "rejected" in again.json()["error"]

    public = await client.get(f"{API}/reservations/{reservation_id}")
    assert public.json()["status"] == "rejected"


async def test_cancelled_reservation_releases_seats(client, admin_headers):
    date = upcoming(1)
    reservation_id = await _create(client, people=60, userId="big-party")
    params = {"date": date, "area": "innen"}
    assert {s["time"]: s["remaining"] for s in (await client.get(f"{API}/availability", params=params)).json()["slots"]}["19:00"] == 0

    await client.post(
        f"{API}/admin/reservations/{reservation_id}/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )

    slots = (await client.get(f"{API}/availability", params=params)).json()["slots"]
    assert {s["time"]: s["remaining"] for s in slots}["19:00"] == 60


async def test_status_update_for_unknown_reservation(client, admin_headers):
    response = await client.post(
        f"{API}/admin/reservations/missing/status",
        json={"status": "accepted"},
        headers=admin_headers,
    )
    assert response.status_code == 404
