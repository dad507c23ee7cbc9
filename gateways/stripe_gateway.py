from decimal import Decimal

import stripe

from gateways.base import GatewayOrder, GatewayRefund, GatewayResult, PaymentGateway, read_with_retry
from models.status import AttemptStatus, PaymentMethod
from services.errors import GatewayError
from services.pricing import round2

PENDING_STATES = {"processing", "requires_action", "requires_confirmation", "requires_capture"}


def to_minor_units(amount) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def _field(obj, name):
    try:
        return obj[name]
    except (KeyError, TypeError):
        return None


class StripeGateway(PaymentGateway):
    name = PaymentMethod.STRIPE.value

    def _api_key(self):
        key = self.config.get("STRIPE_SECRET_KEY")
        if not key:
            raise GatewayError("Stripe secret key missing (STRIPE_SECRET_KEY)")
        return key

    def create_order(self, booking, payment) -> GatewayOrder:
        api_key = self._api_key()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=api_key,
                amount=to_minor_units(payment.amount),
                currency=payment.currency.lower(),
                automatic_payment_methods={"enabled": True},
                description=f"Booking {booking.id}",
                metadata={
                    "booking_id": booking.id,
                    "payment_id": str(payment.id),
                    "guest_id": str(booking.guest_id),
                },
                # a retried create for the same attempt returns the same intent
                idempotency_key=f"booking-{booking.id}-payment-{payment.id}",
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe order creation failed: {exc}", gateway=self.name)

        return GatewayOrder(
            reference=intent["id"],
            payload={"client_secret": _field(intent, "client_secret"), "status": intent["status"]},
        )

    def capture_or_sync(self, payment, payload=None) -> GatewayResult:
        api_key = self._api_key()
        try:
            intent = read_with_retry(
                lambda: stripe.PaymentIntent.retrieve(payment.external_ref, api_key=api_key),
                stripe.APIConnectionError,
                f"Stripe retrieve {payment.external_ref}",
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe verification failed: {exc}", gateway=self.name)

        status = intent["status"]
        if status == "succeeded":
            received = _field(intent, "amount_received") or intent["amount"]
            return GatewayResult(
                status=AttemptStatus.PAID,
                amount=round2(Decimal(received) / 100),
                currency=(intent["currency"] or "").upper(),
                transaction_id=_field(intent, "latest_charge") or intent["id"],
            )
        if status == "canceled":
            return GatewayResult(status=AttemptStatus.FAILED, message="Payment intent canceled")

        error = _field(intent, "last_payment_error")
        if status == "requires_payment_method" and error:
            return GatewayResult(status=AttemptStatus.FAILED, message=_field(error, "message") or "Card declined")
        if status in PENDING_STATES or status == "requires_payment_method":
            return GatewayResult(status=AttemptStatus.PENDING, message=f"Stripe status {status}")
        return GatewayResult(status=AttemptStatus.FAILED, message=f"Unexpected Stripe status {status}")

    def refund(self, payment, amount) -> GatewayRefund:
        api_key = self._api_key()
        cents = to_minor_units(amount)
        try:
            refund = stripe.Refund.create(
                api_key=api_key,
                payment_intent=payment.external_ref,
                amount=cents,
                idempotency_key=f"refund-{payment.id}-{cents}",
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe refund failed: {exc}", gateway=self.name)
        return GatewayRefund(transaction_id=refund["id"], amount=round2(amount))

    def parse_webhook(self, payload: bytes, sig_header: str):
        secret = self.config.get("STRIPE_WEBHOOK_SECRET")
        if not secret:
            raise GatewayError("Webhook secret not configured")
        return stripe.Webhook.construct_event(payload, sig_header, secret)
