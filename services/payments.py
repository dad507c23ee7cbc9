"""Payment reconciliation across the card, PayPal and Sadad gateways.

A Payment row is one attempt. It is created PENDING when the gateway order is
opened and only becomes PAID after the gateway itself says so; the booking is
left alone until then. Confirmation re-reads the booking under a row lock so a
payment that lands after the hold was expired is refunded, not confirmed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from gateways.base import GatewayOrder, get_gateway
from models import db
from models.booking import Booking
from models.payment import Payment
from models.status import AttemptStatus, BookingStatus, PAYABLE_STATUSES, PaymentStatus
from models.transaction import Transaction
from services import lifecycle
from services.bookings import expire_hold
from services.errors import (
    AlreadyExpiredError,
    AuthorizationError,
    GatewayError,
    NotFoundError,
    StatusConflictError,
)
from services.pricing import round2
from services.refunds import issue_refund
from utils.audit import log_event
from utils.notify import notify_booking

logger = logging.getLogger(__name__)

PAYABLE = {s.value for s in PAYABLE_STATUSES}


@dataclass
class Confirmation:
    booking: Booking
    payment: Payment
    message: Optional[str] = None


def _ensure_payable(booking: Booking) -> None:
    if booking.payment_status == PaymentStatus.PAID.value:
        raise StatusConflictError(
            "Booking already paid",
            current_status=booking.status,
            payment_status=booking.payment_status,
        )
    if booking.status not in PAYABLE:
        raise StatusConflictError(
            f"Booking cannot be paid. Current status: {booking.status}",
            current_status=booking.status,
            payment_status=booking.payment_status,
        )


def _mark_failed(payment: Payment, booking: Booking, reason: str) -> None:
    payment.status = AttemptStatus.FAILED.value
    payment.failure_reason = (reason or "")[:255]
    if booking.payment_status != PaymentStatus.PAID.value:
        booking.payment_status = PaymentStatus.FAILED.value


def initiate_payment(booking_id: str, guest, method: str, now: Optional[datetime] = None):
    """Open a gateway order for the guest's booking. Returns (payment, GatewayOrder)."""
    now = now or datetime.utcnow()
    gateway = get_gateway(method)

    booking = Booking.query.filter_by(id=booking_id).with_for_update().first()
    if booking is None or guest is None or booking.guest_id != guest.id:
        raise AuthorizationError()

    _ensure_payable(booking)

    if lifecycle.is_expirable(booking, now):
        expire_hold(booking, now)
        db.session.commit()
        log_event("HOLD_EXPIRED", entity="booking", entity_id=booking.id, metadata={"lazy": True})
        notify_booking(booking, BookingStatus.EXPIRED.value)
        raise AlreadyExpiredError(
            "Booking hold expired. Please create a new booking.",
            current_status=booking.status,
        )

    payment = Payment(
        booking_id=booking.id,
        method=gateway.name,
        amount=booking.total_price,
        currency=booking.currency,
        status=AttemptStatus.PENDING.value,
    )
    db.session.add(payment)
    db.session.commit()

    try:
        order: GatewayOrder = gateway.create_order(booking, payment)
    except GatewayError as exc:
        _mark_failed(payment, booking, exc.message)
        db.session.commit()
        log_event("PAYMENT_ORDER_FAILED", user_id=guest.id, entity="payment", entity_id=payment.id,
                  metadata={"method": gateway.name, "error": exc.message})
        raise

    payment.external_ref = order.reference
    db.session.commit()

    log_event("PAYMENT_ORDER_CREATED", user_id=guest.id, entity="payment", entity_id=payment.id,
              metadata={"method": gateway.name, "external_ref": order.reference, "booking_id": booking.id})
    return payment, order


def find_payment(reference: Optional[str] = None, payment_id: Optional[int] = None) -> Optional[Payment]:
    if payment_id is not None:
        return db.session.get(Payment, payment_id)
    if reference:
        return Payment.query.filter_by(external_ref=reference).first()
    return None


def _lock_attempt(payment: Payment):
    """Re-read the booking and the attempt under row locks, booking first."""
    booking = (
        Booking.query.filter_by(id=payment.booking_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    payment = (
        Payment.query.filter_by(id=payment.id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    return booking, payment


def _paid_by_other_attempt(booking: Booking, payment: Payment) -> bool:
    if booking.payment_status != PaymentStatus.PAID.value:
        return False
    other = (
        Payment.query
        .filter(Payment.booking_id == booking.id, Payment.id != payment.id,
                Payment.status == AttemptStatus.PAID.value)
        .first()
    )
    return other is not None


def _already_confirmed(booking: Booking, payment: Payment) -> Confirmation:
    db.session.commit()
    return Confirmation(booking=booking, payment=payment, message="Payment already confirmed")


def confirm_payment(reference: Optional[str] = None, payment_id: Optional[int] = None,
                    actor=None, payload=None, now: Optional[datetime] = None) -> Confirmation:
    """Ask the gateway for the authoritative state of an attempt and apply it.

    ``actor`` is the logged-in guest when the client triggers the check; it is
    None for webhooks and callbacks, whose authenticity the route verified.
    A webhook and a client check for the same attempt may race; whichever
    takes the locks second sees the attempt PAID and writes nothing.
    """
    now = now or datetime.utcnow()
    payment = find_payment(reference, payment_id)

    if actor is not None:
        if payment is None or payment.booking.guest_id != actor.id:
            raise AuthorizationError()
    elif payment is None:
        raise NotFoundError("Payment not found", reference=reference)

    booking = payment.booking
    if payment.status == AttemptStatus.PAID.value:
        return Confirmation(booking=booking, payment=payment, message="Payment already confirmed")
    if not payment.external_ref:
        raise StatusConflictError("Payment order was never opened", current_status=booking.status)

    gateway = get_gateway(payment.method)
    try:
        result = gateway.capture_or_sync(payment, payload)
    except GatewayError as exc:
        booking, payment = _lock_attempt(payment)
        if payment.status == AttemptStatus.PAID.value:
            return _already_confirmed(booking, payment)
        _mark_failed(payment, booking, exc.message)
        db.session.commit()
        log_event("PAYMENT_VERIFY_FAILED", entity="payment", entity_id=payment.id,
                  metadata={"method": payment.method, "error": exc.message})
        raise

    if result.status == AttemptStatus.PENDING:
        return Confirmation(booking=booking, payment=payment, message=result.message or "Payment pending")

    # the gateway call can be slow: the sweeper or a concurrent confirm may have moved things since
    booking, payment = _lock_attempt(payment)
    if payment.status == AttemptStatus.PAID.value:
        return _already_confirmed(booking, payment)

    if result.status == AttemptStatus.FAILED:
        _mark_failed(payment, booking, result.message)
        db.session.commit()
        log_event("PAYMENT_FAILED", entity="payment", entity_id=payment.id,
                  metadata={"method": payment.method, "reason": result.message, "booking_id": booking.id})
        logger.info("Payment %s for booking %s failed: %s", payment.id, booking.id, result.message)
        return Confirmation(booking=booking, payment=payment, message=result.message)

    if result.amount is not None and round2(result.amount) != round2(payment.amount):
        _mark_failed(payment, booking, f"Amount mismatch: expected {payment.amount}, got {result.amount}")
        payment.refund_required = True
        payment.gateway_transaction_id = result.transaction_id
        db.session.commit()
        logger.error("Payment %s amount mismatch (%s vs %s)", payment.id, result.amount, payment.amount)
        log_event("PAYMENT_AMOUNT_MISMATCH", entity="payment", entity_id=payment.id,
                  metadata={"expected": str(payment.amount), "received": str(result.amount)})
        raise StatusConflictError("Paid amount does not match booking total", current_status=booking.status)

    duplicate = _paid_by_other_attempt(booking, payment)

    payment.status = AttemptStatus.PAID.value
    payment.paid_at = now
    payment.gateway_transaction_id = result.transaction_id
    db.session.add(Transaction(
        booking_id=booking.id,
        payment_id=payment.id,
        user_id=booking.guest_id,
        type="RESERVATION",
        amount=round2(result.amount if result.amount is not None else payment.amount),
        currency=result.currency or payment.currency,
        payment_method=payment.method,
        gateway_transaction_id=result.transaction_id,
        description=f"{payment.method} payment for booking {booking.id}",
    ))

    if duplicate or booking.status not in PAYABLE or booking.payment_status == PaymentStatus.PAID.value:
        payment.refund_required = True
        db.session.commit()
        logger.warning("Late payment %s for booking %s in status %s; refunding", payment.id, booking.id, booking.status)
        log_event("PAYMENT_LATE_REFUND_REQUIRED", entity="payment", entity_id=payment.id,
                  metadata={"booking_id": booking.id, "booking_status": booking.status})
        issue_refund(booking, payment.amount, reason="Booking no longer available", payment=payment)
        if duplicate:
            raise StatusConflictError(
                "Booking already paid, duplicate payment will be refunded",
                current_status=booking.status,
                payment_status=booking.payment_status,
            )
        raise AlreadyExpiredError(
            "Booking no longer available, payment will be refunded",
            current_status=booking.status,
            payment_status=booking.payment_status,
        )

    target = lifecycle.next_status(lifecycle.CONFIRM, booking.status)
    booking.status = target.value
    booking.payment_status = PaymentStatus.PAID.value
    booking.confirmed_at = now
    db.session.commit()

    log_event("PAYMENT_PAID", entity="payment", entity_id=payment.id,
              metadata={"booking_id": booking.id, "method": payment.method,
                        "gateway_transaction_id": result.transaction_id})
    logger.info("Booking %s confirmed by %s payment %s", booking.id, payment.method, payment.id)
    notify_booking(booking, BookingStatus.CONFIRMED.value)
    return Confirmation(booking=booking, payment=payment, message="Booking confirmed")


def verify_booking_payment(booking_id: str, actor) -> Confirmation:
    """Re-check the newest open attempt for a booking with its gateway."""
    booking = db.session.get(Booking, booking_id)
    if lifecycle.actor_role(booking, actor) is None:
        raise AuthorizationError()

    latest = (
        Payment.query
        .filter(Payment.booking_id == booking.id, Payment.external_ref.isnot(None))
        .order_by(Payment.id.desc())
        .first()
    )
    if latest is None or latest.status != AttemptStatus.PENDING.value:
        return Confirmation(booking=booking, payment=latest, message="Nothing to verify")
    return confirm_payment(payment_id=latest.id)
