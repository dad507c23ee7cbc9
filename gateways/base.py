import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from flask import current_app

from models.status import AttemptStatus
from services.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    """What the client needs to finish paying on the provider's side."""
    reference: str
    payload: dict = field(default_factory=dict)


@dataclass
class GatewayResult:
    """Authoritative payment state as reported by the provider."""
    status: AttemptStatus
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None


@dataclass
class GatewayRefund:
    transaction_id: str
    amount: Decimal


class PaymentGateway:
    name = None

    def __init__(self, config):
        self.config = config
        self.timeout = config.get("GATEWAY_TIMEOUT_SECONDS", 10)

    def create_order(self, booking, payment) -> GatewayOrder:
        raise NotImplementedError

    def capture_or_sync(self, payment, payload=None) -> GatewayResult:
        raise NotImplementedError

    def refund(self, payment, amount: Decimal) -> GatewayRefund:
        raise GatewayError(f"Refunds are not supported for {self.name}")


def read_with_retry(fn, retry_on, what: str):
    """Run an idempotent read; on a transport error try exactly once more."""
    try:
        return fn()
    except retry_on as exc:
        logger.warning("%s failed (%s), retrying once", what, exc)
        return fn()


def build_gateways(config) -> dict:
    from gateways.paypal import PayPalGateway
    from gateways.sadad import SadadGateway
    from gateways.stripe_gateway import StripeGateway

    return {
        gw.name: gw
        for gw in (StripeGateway(config), PayPalGateway(config), SadadGateway(config))
    }


def get_gateway(method: str) -> PaymentGateway:
    gateways = current_app.extensions.get("payment_gateways", {})
    gateway = gateways.get((method or "").lower())
    if gateway is None:
        raise ValidationError(f"Unsupported payment method {method}", supported=sorted(gateways))
    return gateway
