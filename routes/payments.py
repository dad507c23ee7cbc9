from flask import Blueprint, request, jsonify, g

from services.payments import confirm_payment, initiate_payment
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/start")
@login_required
def start_payment():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("booking_id")
    method = data.get("gateway") or data.get("method")
    if not booking_id:
        return jsonify(error="booking_id required"), 400
    if not method:
        return jsonify(error="gateway required"), 400

    payment, order = initiate_payment(str(booking_id), g.user, method)
    return jsonify(
        payment_id=payment.id,
        booking_id=payment.booking_id,
        gateway=payment.method,
        reference=order.reference,
        amount=str(payment.amount),
        currency=payment.currency,
        **order.payload,
    ), 201


@payments_bp.post("/confirm")
@login_required
def confirm():
    """Client-triggered check after the guest returns from the provider."""
    data = request.get_json(silent=True) or {}
    payment_id = data.get("payment_id")
    reference = data.get("order_ref") or data.get("reference")
    if not payment_id and not reference:
        return jsonify(error="payment_id or order_ref required"), 400
    try:
        payment_id = int(payment_id) if payment_id else None
    except (TypeError, ValueError):
        return jsonify(error="payment_id must be an integer"), 400

    outcome = confirm_payment(reference=reference, payment_id=payment_id, actor=g.user)
    return jsonify(
        booking=outcome.booking.to_dict(),
        payment=outcome.payment.to_dict(),
        message=outcome.message,
    ), 200
