"""Provider notifications. Authenticity is checked here; state comes from the gateway.

Once a notification is authentic it is always acknowledged with 200 so the
provider stops retrying; processing errors are logged and audited instead.
"""
import logging

import stripe
from flask import Blueprint, request, jsonify

from gateways.base import get_gateway
from services.errors import BookingError
from services.payments import confirm_payment
from utils.audit import log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

STRIPE_EVENTS = ("payment_intent.succeeded", "payment_intent.payment_failed", "payment_intent.canceled")
PAYPAL_EVENTS = ("CHECKOUT.ORDER.APPROVED", "CHECKOUT.ORDER.COMPLETED", "PAYMENT.CAPTURE.COMPLETED",
                 "PAYMENT.CAPTURE.DENIED")


def _reconcile(source: str, reference: str, payload=None):
    if not reference:
        logger.warning("%s notification without a payment reference", source)
        return
    try:
        outcome = confirm_payment(reference=reference, payload=payload)
    except BookingError as exc:
        logger.error("%s notification for %s not applied: %s", source, reference, exc.message)
        log_event("WEBHOOK_PROCESSING_FAILED", entity="payment", metadata={
            "source": source, "reference": reference, "error": exc.message,
        })
        return
    logger.info("%s notification for %s: %s", source, reference, outcome.message)


@webhook_bp.post("/stripe")
def stripe_webhook():
    gateway = get_gateway("stripe")
    try:
        event = gateway.parse_webhook(request.data, request.headers.get("Stripe-Signature"))
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400
    except BookingError as exc:
        logger.error("Stripe webhook rejected: %s", exc.message)
        return jsonify(error=exc.message), 500

    event_type = event["type"]
    if event_type in STRIPE_EVENTS:
        intent = event["data"]["object"]
        _reconcile("stripe", intent["id"])
    else:
        logger.debug("Ignoring Stripe event %s", event_type)

    return jsonify(received=True), 200


@webhook_bp.post("/paypal")
def paypal_webhook():
    event = request.get_json(silent=True)
    if not event:
        return jsonify(error="Invalid payload"), 400

    gateway = get_gateway("paypal")
    try:
        authentic = gateway.verify_webhook(request.headers, event)
    except BookingError as exc:
        logger.error("PayPal webhook verification failed: %s", exc.message)
        return jsonify(error=exc.message), 500
    if not authentic:
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event.get("event_type")
    resource = event.get("resource") or {}
    if event_type in PAYPAL_EVENTS:
        if event_type.startswith("PAYMENT.CAPTURE."):
            related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
            order_id = related.get("order_id")
        else:
            order_id = resource.get("id")
        _reconcile("paypal", order_id)
    else:
        logger.debug("Ignoring PayPal event %s", event_type)

    return jsonify(received=True), 200


@webhook_bp.post("/sadad")
def sadad_callback():
    gateway = get_gateway("sadad")
    try:
        data = gateway.verify_callback(request.form)
    except BookingError as exc:
        logger.warning("Sadad callback rejected: %s", exc.message)
        log_event("WEBHOOK_SIGNATURE_INVALID", metadata={"source": "sadad", "order_id": request.form.get("ORDERID")})
        return jsonify(error="Invalid checksumhash"), 400

    _reconcile("sadad", data["ORDERID"], payload=request.form)
    return jsonify(received=True), 200
