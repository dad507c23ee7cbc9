import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from gateways.base import get_gateway
from models import db
from models.payment import Payment
from models.status import AttemptStatus
from models.transaction import Transaction
from services.errors import GatewayError, ValidationError
from utils.audit import log_event

logger = logging.getLogger(__name__)


def _latest_paid_payment(booking) -> Optional[Payment]:
    return (
        Payment.query
        .filter_by(booking_id=booking.id, status=AttemptStatus.PAID.value)
        .order_by(Payment.paid_at.desc(), Payment.id.desc())
        .first()
    )


def issue_refund(booking, amount: Decimal, reason: str, payment: Optional[Payment] = None) -> Optional[Transaction]:
    """Send money back through the gateway that took it.

    Runs after the status change has been committed. A gateway failure is
    logged and audited for manual reconciliation and never raised.
    """
    payment = payment or _latest_paid_payment(booking)
    if payment is None or not amount or amount <= 0:
        return None

    try:
        refund = get_gateway(payment.method).refund(payment, amount)
    except (GatewayError, ValidationError) as exc:
        logger.error("Refund of %s for booking %s via %s failed: %s", amount, booking.id, payment.method, exc)
        log_event(
            "REFUND_FAILED",
            entity="payment",
            entity_id=payment.id,
            metadata={"booking_id": booking.id, "amount": str(amount), "error": str(exc)},
        )
        return None

    row = Transaction(
        booking_id=booking.id,
        payment_id=payment.id,
        user_id=booking.guest_id,
        type="REFUND",
        amount=refund.amount,
        currency=payment.currency,
        payment_method=payment.method,
        gateway_transaction_id=refund.transaction_id,
        description=reason,
    )
    payment.refund_required = False
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Refund %s for booking %s succeeded but was not recorded", refund.transaction_id, booking.id)
        return None

    log_event("REFUND_ISSUED", entity="payment", entity_id=payment.id,
              metadata={"booking_id": booking.id, "amount": str(refund.amount), "refund_id": refund.transaction_id})
    return row
