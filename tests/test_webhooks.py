import hashlib
import hmac
import json
import time

import pytest

from gateways.sadad import SadadGateway, generate_checksum
from gateways.stripe_gateway import StripeGateway
from models import db
from models.payment import Payment
from models.status import BookingStatus
from services.bookings import BookingRequest, create_booking
from services.payments import initiate_payment

CRON = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def booking(guest, listing, stay, now):
    return create_booking(
        BookingRequest(guest=guest, property_id=listing.id, check_in=stay[0], check_out=stay[1]), now=now
    )


def _stripe_signature(payload: bytes, secret: str) -> str:
    ts = int(time.time())
    signed = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signed}"


def _sadad_form(gw, order_id, code="1", amount="389.60"):
    data = {
        "ORDERID": order_id,
        "RESPCODE": code,
        "RESPMSG": "Txn Success" if code == "1" else "Txn Failed",
        "TXNAMOUNT": amount,
        "transaction_number": "SD123456",
    }
    form = dict(data)
    form["checksumhash"] = generate_checksum(
        {"postData": data, "secretKey": gw.secret_key}, gw.secret_key, gw.merchant_id
    )
    return form


@pytest.fixture
def stripe_gw(app):
    app.config["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
    gw = StripeGateway(app.config)
    app.extensions["payment_gateways"]["stripe"] = gw
    return gw


@pytest.fixture
def sadad_gw(app):
    gw = SadadGateway(app.config)
    app.extensions["payment_gateways"]["sadad"] = gw
    return gw


def test_stripe_webhook_rejects_bad_signature(client, stripe_gw):
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()
    resp = client.post("/webhooks/stripe", data=payload,
                       headers={"Stripe-Signature": "t=1,v1=deadbeef", "Content-Type": "application/json"})
    assert resp.status_code == 400


def test_stripe_webhook_acknowledges_unknown_intent(client, stripe_gw):
    payload = json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_unknown", "object": "payment_intent"}},
    }).encode()
    resp = client.post("/webhooks/stripe", data=payload, headers={
        "Stripe-Signature": _stripe_signature(payload, "whsec_test"),
        "Content-Type": "application/json",
    })
    assert resp.status_code == 200
    assert resp.get_json() == {"received": True}


def test_paypal_webhook_confirms_approved_order(client, booking, guest, gateways, now):
    payment, _ = initiate_payment(booking.id, guest, "paypal", now=now)
    gateways["paypal"].verify_webhook = lambda headers, event: True

    resp = client.post("/webhooks/paypal", json={
        "event_type": "CHECKOUT.ORDER.APPROVED",
        "resource": {"id": payment.external_ref},
    })

    assert resp.status_code == 200
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value


def test_paypal_webhook_rejects_unverified(client, gateways):
    gateways["paypal"].verify_webhook = lambda headers, event: False
    resp = client.post("/webhooks/paypal", json={"event_type": "CHECKOUT.ORDER.APPROVED", "resource": {}})
    assert resp.status_code == 400


def test_sadad_callback_confirms_booking(client, booking, guest, sadad_gw, now):
    payment, order = initiate_payment(booking.id, guest, "sadad", now=now)
    assert order.payload["fields"]["ORDER_ID"] == payment.external_ref

    resp = client.post("/webhooks/sadad", data=_sadad_form(sadad_gw, payment.external_ref))

    assert resp.status_code == 200
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value
    assert db.session.get(Payment, payment.id).gateway_transaction_id == "SD123456"


def test_sadad_callback_with_tampered_amount(client, booking, guest, sadad_gw, now):
    payment, _ = initiate_payment(booking.id, guest, "sadad", now=now)
    form = _sadad_form(sadad_gw, payment.external_ref)
    form["TXNAMOUNT"] = "1.00"

    resp = client.post("/webhooks/sadad", data=form)

    assert resp.status_code == 400
    db.session.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value


def test_sadad_failure_callback_is_acknowledged(client, booking, guest, sadad_gw, now):
    payment, _ = initiate_payment(booking.id, guest, "sadad", now=now)

    resp = client.post("/webhooks/sadad", data=_sadad_form(sadad_gw, payment.external_ref, code="0"))

    assert resp.status_code == 200
    db.session.refresh(payment)
    assert payment.status == "FAILED"
    db.session.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value


def test_cron_requires_secret(client):
    assert client.post("/cron/expire-holds").status_code == 401
    assert client.post("/cron/expire-holds", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_cron_unconfigured(app, client):
    app.config["CRON_SECRET"] = None
    assert client.post("/cron/expire-holds", headers=CRON).status_code == 503


def test_cron_sweep(client, booking):
    resp = client.post("/cron/expire-holds", headers=CRON)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    # hold is still live
    assert body["expired_count"] == 0


def test_cron_advance_stays(client):
    resp = client.get("/cron/advance-stays", headers=CRON)
    assert resp.status_code == 200
    assert resp.get_json() == {"checked_in": [], "completed": [], "errors": []}
