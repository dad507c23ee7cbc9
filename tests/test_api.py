from datetime import timedelta

from conftest import login
from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.status import BookingStatus


def _book(client, headers, listing, stay, **extra):
    body = {
        "property_id": listing.id,
        "check_in": stay[0].isoformat(),
        "check_out": stay[1].isoformat(),
        "guests": 2,
        "adults": 2,
    }
    body.update(extra)
    return client.post("/bookings", json=body, headers=headers)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_register_and_login(client):
    resp = client.post("/auth/register", json={"email": "New@Example.com", "password": "long-enough-pw", "as_host": True})
    assert resp.status_code == 201

    resp = client.post("/auth/login", json={"email": "new@example.com", "password": "long-enough-pw"})
    assert resp.status_code == 200

    me = client.get("/auth/me").get_json()
    assert me["email"] == "new@example.com"
    assert me["is_host"] is True


def test_register_rejects_short_password(client):
    resp = client.post("/auth/register", json={"email": "a@example.com", "password": "short"})
    assert resp.status_code == 400


def test_booking_requires_login(client, listing, stay):
    assert _book(client, {}, listing, stay).status_code == 401


def test_writes_require_csrf_header(client, guest, listing, stay):
    login(client, guest.email)
    resp = _book(client, {}, listing, stay)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "CSRF validation failed"


def test_create_and_fetch_booking(client, guest, listing, stay):
    headers = login(client, guest.email)

    resp = _book(client, headers, listing, stay)
    assert resp.status_code == 201
    booking = resp.get_json()
    assert booking["status"] == BookingStatus.AWAITING_PAYMENT.value
    assert booking["total_price"] == "389.60"

    resp = client.get(f"/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["payments"] == []

    listed = client.get("/bookings/me").get_json()
    assert [b["id"] for b in listed["items"]] == [booking["id"]]

    assert AuditLog.query.filter_by(action="BOOKING_CREATE", entity_id=booking["id"]).count() == 1


def test_conflicting_booking_returns_409(client, guest, second_guest, listing, stay):
    _book(client, login(client, guest.email), listing, stay)

    other = client.application.test_client()
    resp = _book(other, login(other, second_guest.email), listing, (stay[0] + timedelta(days=1), stay[1]))

    assert resp.status_code == 409
    body = resp.get_json()
    assert body["error"] == "Property is not available for selected dates"
    assert body["conflicts"][0]["check_in"] == stay[0].isoformat()


def test_invalid_dates_rejected(client, guest, listing, stay):
    headers = login(client, guest.email)
    assert _book(client, headers, listing, stay, check_in="2026-13-45").status_code == 400
    assert _book(client, headers, listing, (stay[1], stay[0])).status_code == 400


def test_other_host_cannot_cancel(client, guest, other_host, listing, stay):
    booking = _book(client, login(client, guest.email), listing, stay).get_json()

    intruder = client.application.test_client()
    resp = intruder.patch(f"/bookings/{booking['id']}", json={"action": "cancel"},
                          headers=login(intruder, other_host.email))

    assert resp.status_code == 403
    assert db.session.get(Booking, booking["id"]).status == BookingStatus.AWAITING_PAYMENT.value


def test_unknown_booking_looks_like_forbidden(client, guest):
    login(client, guest.email)
    resp = client.get("/bookings/does-not-exist")
    assert resp.status_code == 403


def test_payment_flow_over_http(client, guest, listing, stay):
    headers = login(client, guest.email)
    booking = _book(client, headers, listing, stay).get_json()

    resp = client.post("/payments/start", json={"booking_id": booking["id"], "gateway": "stripe"}, headers=headers)
    assert resp.status_code == 201
    started = resp.get_json()
    assert started["client_secret"] == "secret"

    resp = client.post("/payments/confirm", json={"payment_id": started["payment_id"]}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == BookingStatus.CONFIRMED.value


def test_unknown_gateway_rejected(client, guest, listing, stay):
    headers = login(client, guest.email)
    booking = _book(client, headers, listing, stay).get_json()

    resp = client.post("/payments/start", json={"booking_id": booking["id"], "gateway": "cash"}, headers=headers)
    assert resp.status_code == 400
    assert sorted(resp.get_json()["supported"]) == ["paypal", "sadad", "stripe"]


def test_illegal_transition_reports_current_status(client, guest, host, listing, stay):
    booking = _book(client, login(client, guest.email), listing, stay).get_json()

    host_client = client.application.test_client()
    resp = host_client.patch(f"/bookings/{booking['id']}", json={"action": "complete"},
                             headers=login(host_client, host.email))

    assert resp.status_code == 400
    assert resp.get_json()["current_status"] == BookingStatus.AWAITING_PAYMENT.value


def test_host_manages_calendar(client, host, listing, stay):
    headers = login(client, host.email)
    day = stay[0].isoformat()

    resp = client.post(f"/properties/{listing.id}/block", json={"dates": [day]}, headers=headers)
    assert resp.status_code == 200

    resp = client.get(f"/properties/{listing.id}/availability",
                      query_string={"check_in": stay[0].isoformat(), "check_out": stay[1].isoformat()})
    body = resp.get_json()
    assert body["has_conflict"] is True
    assert body["blocked_dates"] == [day]

    cal = client.get(f"/properties/{listing.id}/calendar",
                     query_string={"start": day, "end": stay[1].isoformat()}).get_json()
    assert cal["days"][0] == {"date": day, "available": False, "blocked_by_host": True}


def test_quote_matches_booking_price(client, guest, listing, stay):
    login(client, guest.email)
    resp = client.get(f"/properties/{listing.id}/quote",
                      query_string={"check_in": stay[0].isoformat(), "check_out": stay[1].isoformat()})
    assert resp.get_json()["total_price"] == "389.60"


def test_guest_cannot_create_property(client, guest):
    headers = login(client, guest.email)
    resp = client.post("/properties", json={"title": "Shed", "nightly_rate": "10"}, headers=headers)
    assert resp.status_code == 403
