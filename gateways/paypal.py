import logging
from decimal import Decimal

import requests

from gateways.base import GatewayOrder, GatewayRefund, GatewayResult, PaymentGateway, read_with_retry
from models.status import AttemptStatus, PaymentMethod
from services.errors import GatewayError
from services.pricing import round2

logger = logging.getLogger(__name__)

LIVE_URL = "https://api-m.paypal.com"
SANDBOX_URL = "https://api-m.sandbox.paypal.com"

TRANSPORT_ERRORS = (requests.ConnectionError, requests.Timeout)


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 over plain REST."""
    name = PaymentMethod.PAYPAL.value

    @property
    def base_url(self):
        return LIVE_URL if self.config.get("PAYPAL_MODE") == "live" else SANDBOX_URL

    def _access_token(self) -> str:
        client_id = self.config.get("PAYPAL_CLIENT_ID")
        client_secret = self.config.get("PAYPAL_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise GatewayError("PayPal credentials not configured")
        try:
            resp = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(client_id, client_secret),
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(f"PayPal authentication failed: {exc}", gateway=self.name)
        if not resp.ok:
            raise GatewayError(f"PayPal authentication failed ({resp.status_code})", gateway=self.name)
        return resp.json()["access_token"]

    def _call(self, method: str, path: str, json=None, request_id=None):
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        if request_id:
            # PayPal dedupes writes carrying the same request id
            headers["PayPal-Request-Id"] = request_id
        try:
            resp = requests.request(method, f"{self.base_url}{path}", json=json, headers=headers, timeout=self.timeout)
        except TRANSPORT_ERRORS:
            raise
        except requests.RequestException as exc:
            raise GatewayError(f"PayPal request failed: {exc}", gateway=self.name)
        if not resp.ok:
            raise GatewayError(f"PayPal returned status {resp.status_code}", gateway=self.name)
        return resp.json()

    def create_order(self, booking, payment) -> GatewayOrder:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": booking.id,
                "custom_id": str(payment.id),
                "description": f"Booking {booking.id}",
                "amount": {"currency_code": payment.currency, "value": f"{round2(payment.amount):.2f}"},
            }],
        }
        try:
            order = self._call("POST", "/v2/checkout/orders", json=body, request_id=f"order-{payment.id}")
        except TRANSPORT_ERRORS as exc:
            raise GatewayError(f"PayPal unreachable: {exc}", gateway=self.name)

        approve_url = next(
            (link["href"] for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return GatewayOrder(reference=order["id"], payload={"approve_url": approve_url, "status": order.get("status")})

    def _get_order(self, order_id: str) -> dict:
        try:
            return read_with_retry(
                lambda: self._call("GET", f"/v2/checkout/orders/{order_id}"),
                TRANSPORT_ERRORS,
                f"PayPal order lookup {order_id}",
            )
        except TRANSPORT_ERRORS as exc:
            raise GatewayError(f"PayPal unreachable: {exc}", gateway=self.name)

    def capture_or_sync(self, payment, payload=None) -> GatewayResult:
        order = self._get_order(payment.external_ref)
        status = order.get("status")

        if status == "APPROVED":
            try:
                order = self._call(
                    "POST",
                    f"/v2/checkout/orders/{payment.external_ref}/capture",
                    json={},
                    request_id=f"capture-{payment.id}",
                )
            except TRANSPORT_ERRORS as exc:
                # not retried here: the next sync reads the order state instead
                raise GatewayError(f"PayPal capture did not complete: {exc}", gateway=self.name)
            status = order.get("status")

        if status == "COMPLETED":
            return self._result_from_capture(order)
        if status == "VOIDED":
            return GatewayResult(status=AttemptStatus.FAILED, message="PayPal order voided")
        return GatewayResult(status=AttemptStatus.PENDING, message=f"PayPal order status {status}")

    def _result_from_capture(self, order: dict) -> GatewayResult:
        captures = []
        for unit in order.get("purchase_units", []):
            captures.extend((unit.get("payments") or {}).get("captures") or [])
        if not captures:
            return GatewayResult(status=AttemptStatus.PENDING, message="PayPal order has no capture yet")

        capture = captures[0]
        capture_status = capture.get("status")
        if capture_status == "COMPLETED":
            return GatewayResult(
                status=AttemptStatus.PAID,
                amount=round2(Decimal(capture["amount"]["value"])),
                currency=capture["amount"]["currency_code"],
                transaction_id=capture["id"],
            )
        if capture_status in ("DECLINED", "FAILED"):
            return GatewayResult(status=AttemptStatus.FAILED, message=f"PayPal capture {capture_status.lower()}")
        return GatewayResult(status=AttemptStatus.PENDING, message=f"PayPal capture status {capture_status}")

    def refund(self, payment, amount) -> GatewayRefund:
        if not payment.gateway_transaction_id:
            raise GatewayError("PayPal capture id missing; cannot refund", gateway=self.name)
        body = {"amount": {"value": f"{round2(amount):.2f}", "currency_code": payment.currency}}
        try:
            data = self._call(
                "POST",
                f"/v2/payments/captures/{payment.gateway_transaction_id}/refund",
                json=body,
                request_id=f"refund-{payment.id}-{round2(amount)}",
            )
        except TRANSPORT_ERRORS as exc:
            raise GatewayError(f"PayPal refund did not complete: {exc}", gateway=self.name)
        return GatewayRefund(transaction_id=data["id"], amount=round2(amount))

    def verify_webhook(self, headers, event: dict) -> bool:
        webhook_id = self.config.get("PAYPAL_WEBHOOK_ID")
        if not webhook_id:
            raise GatewayError("PayPal webhook id not configured")
        body = {
            "auth_algo": headers.get("PAYPAL-AUTH-ALGO"),
            "cert_url": headers.get("PAYPAL-CERT-URL"),
            "transmission_id": headers.get("PAYPAL-TRANSMISSION-ID"),
            "transmission_sig": headers.get("PAYPAL-TRANSMISSION-SIG"),
            "transmission_time": headers.get("PAYPAL-TRANSMISSION-TIME"),
            "webhook_id": webhook_id,
            "webhook_event": event,
        }
        try:
            data = read_with_retry(
                lambda: self._call("POST", "/v1/notifications/verify-webhook-signature", json=body),
                TRANSPORT_ERRORS,
                "PayPal webhook verification",
            )
        except TRANSPORT_ERRORS as exc:
            raise GatewayError(f"PayPal unreachable: {exc}", gateway=self.name)
        return data.get("verification_status") == "SUCCESS"
