from datetime import timedelta
from decimal import Decimal

import pytest

from gateways.base import GatewayResult
from models import db
from models.payment import Payment
from models.status import AttemptStatus, BookingStatus, PaymentStatus
from models.transaction import Transaction
from services.bookings import BookingRequest, create_booking, transition_booking
from services.errors import AlreadyExpiredError, AuthorizationError, GatewayError, StatusConflictError
from services.payments import confirm_payment, initiate_payment, verify_booking_payment
from services.sweeper import sweep_expired_holds


@pytest.fixture
def booking(guest, listing, stay, now):
    return create_booking(
        BookingRequest(guest=guest, property_id=listing.id, check_in=stay[0], check_out=stay[1]), now=now
    )


def test_successful_payment_confirms_booking(booking, guest, now):
    payment, order = initiate_payment(booking.id, guest, "stripe", now=now)
    assert payment.status == AttemptStatus.PENDING.value
    assert payment.amount == booking.total_price
    assert order.reference == payment.external_ref

    outcome = confirm_payment(payment_id=payment.id, actor=guest, now=now)

    assert outcome.booking.status == BookingStatus.CONFIRMED.value
    assert outcome.booking.payment_status == PaymentStatus.PAID.value
    assert outcome.payment.status == AttemptStatus.PAID.value
    ledger = Transaction.query.filter_by(booking_id=booking.id).all()
    assert [(t.type, t.amount) for t in ledger] == [("RESERVATION", Decimal("389.60"))]


def test_failed_attempt_keeps_hold_and_allows_other_gateway(booking, guest, gateways, now):
    gateways["stripe"].results.append(GatewayResult(status=AttemptStatus.FAILED, message="card_declined"))
    stripe_attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)

    outcome = confirm_payment(payment_id=stripe_attempt.id, now=now)
    assert outcome.payment.status == AttemptStatus.FAILED.value
    assert outcome.payment.failure_reason == "card_declined"
    assert outcome.booking.status == BookingStatus.AWAITING_PAYMENT.value

    paypal_attempt, _ = initiate_payment(booking.id, guest, "paypal", now=now + timedelta(minutes=2))
    outcome = confirm_payment(payment_id=paypal_attempt.id, now=now + timedelta(minutes=3))

    assert outcome.booking.status == BookingStatus.CONFIRMED.value
    assert Payment.query.filter_by(booking_id=booking.id).count() == 2


def test_order_creation_failure_marks_attempt_failed(booking, guest, gateways, now):
    gateways["paypal"].fail_create = True

    with pytest.raises(GatewayError):
        initiate_payment(booking.id, guest, "paypal", now=now)

    attempt = Payment.query.filter_by(booking_id=booking.id).one()
    assert attempt.status == AttemptStatus.FAILED.value
    db.session.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value


def test_pending_result_changes_nothing(booking, guest, gateways, now):
    gateways["sadad"].results.append(GatewayResult(status=AttemptStatus.PENDING, message="Waiting"))
    attempt, _ = initiate_payment(booking.id, guest, "sadad", now=now)

    outcome = confirm_payment(payment_id=attempt.id, now=now)

    assert outcome.payment.status == AttemptStatus.PENDING.value
    assert outcome.booking.status == BookingStatus.AWAITING_PAYMENT.value


def test_starting_payment_after_hold_lapsed(booking, guest, now):
    with pytest.raises(AlreadyExpiredError):
        initiate_payment(booking.id, guest, "stripe", now=now + timedelta(minutes=16))

    db.session.refresh(booking)
    assert booking.status == BookingStatus.EXPIRED.value
    assert Payment.query.count() == 0


def test_payment_landing_after_expiry_is_refunded(booking, guest, gateways, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    sweep_expired_holds(now + timedelta(minutes=20))

    with pytest.raises(AlreadyExpiredError):
        confirm_payment(payment_id=attempt.id, now=now + timedelta(minutes=21))

    db.session.refresh(booking)
    db.session.refresh(attempt)
    assert booking.status == BookingStatus.EXPIRED.value
    assert attempt.status == AttemptStatus.PAID.value
    assert gateways["stripe"].refunds == [(attempt.id, attempt.amount)]
    assert attempt.refund_required is False
    types = sorted(t.type for t in Transaction.query.filter_by(booking_id=booking.id))
    assert types == ["REFUND", "RESERVATION"]


def test_failed_refund_leaves_refund_flag(booking, guest, gateways, now):
    gateways["stripe"].fail_refund = True
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    sweep_expired_holds(now + timedelta(minutes=20))

    with pytest.raises(AlreadyExpiredError):
        confirm_payment(payment_id=attempt.id, now=now + timedelta(minutes=21))

    db.session.refresh(attempt)
    assert attempt.refund_required is True


def test_cannot_pay_twice(booking, guest, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    confirm_payment(payment_id=attempt.id, now=now)

    with pytest.raises(StatusConflictError, match="already paid"):
        initiate_payment(booking.id, guest, "paypal", now=now)


def test_confirm_is_idempotent(booking, guest, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    confirm_payment(payment_id=attempt.id, now=now)

    again = confirm_payment(reference=attempt.external_ref, now=now)

    assert again.message == "Payment already confirmed"
    assert Transaction.query.filter_by(booking_id=booking.id).count() == 1


def test_webhook_landing_during_client_confirm(booking, guest, gateways, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    gw = gateways["stripe"]
    sync = gw.capture_or_sync
    webhook = []

    def capture_or_sync(payment, payload=None):
        # the webhook for the same attempt arrives while the client waits on the gateway
        if not webhook:
            webhook.append(confirm_payment(reference=payment.external_ref, now=now))
        return sync(payment, payload)

    gw.capture_or_sync = capture_or_sync

    outcome = confirm_payment(payment_id=attempt.id, actor=guest, now=now)

    assert webhook[0].message == "Booking confirmed"
    assert outcome.message == "Payment already confirmed"
    assert outcome.booking.status == BookingStatus.CONFIRMED.value
    assert outcome.payment.refund_required is False
    assert gw.refunds == []
    ledger = Transaction.query.filter_by(booking_id=booking.id).all()
    assert [t.type for t in ledger] == ["RESERVATION"]


def test_second_gateway_paying_same_booking_is_refunded(booking, guest, gateways, now):
    card, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    wallet, _ = initiate_payment(booking.id, guest, "paypal", now=now)
    confirm_payment(payment_id=card.id, now=now)

    with pytest.raises(StatusConflictError, match="duplicate"):
        confirm_payment(payment_id=wallet.id, now=now)

    assert gateways["paypal"].refunds == [(wallet.id, wallet.amount)]
    assert gateways["stripe"].refunds == []
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value


def test_amount_mismatch_is_not_confirmed(booking, guest, gateways, now):
    gateways["stripe"].results.append(GatewayResult(status=AttemptStatus.PAID, amount=Decimal("10.00")))
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)

    with pytest.raises(StatusConflictError):
        confirm_payment(payment_id=attempt.id, now=now)

    db.session.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value
    assert db.session.get(Payment, attempt.id).refund_required is True


def test_only_the_guest_may_pay(booking, second_guest, host, now):
    with pytest.raises(AuthorizationError):
        initiate_payment(booking.id, second_guest, "stripe", now=now)
    with pytest.raises(AuthorizationError):
        initiate_payment(booking.id, host, "stripe", now=now)


def test_confirm_checks_actor(booking, guest, second_guest, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    with pytest.raises(AuthorizationError):
        confirm_payment(payment_id=attempt.id, actor=second_guest, now=now)


def test_verify_rechecks_latest_attempt(booking, guest, host, now):
    initiate_payment(booking.id, guest, "stripe", now=now)

    outcome = verify_booking_payment(booking.id, host)

    assert outcome.booking.status == BookingStatus.CONFIRMED.value


def test_paid_cancellation_refunds_by_policy(booking, guest, gateways, now):
    attempt, _ = initiate_payment(booking.id, guest, "stripe", now=now)
    confirm_payment(payment_id=attempt.id, now=now)

    # MODERATE, a month out: full refund
    cancelled = transition_booking(booking.id, guest, "cancel", now=now)

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.payment_status == PaymentStatus.REFUNDED.value
    assert cancelled.refund_amount == Decimal("389.60")
    assert gateways["stripe"].refunds == [(attempt.id, Decimal("389.60"))]
