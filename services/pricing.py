"""Price snapshot, hold window and cancellation-policy money math."""

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from models.status import BookingStatus, CancellationPolicy
from services.errors import ValidationError

SERVICE_FEE_RATE = Decimal("0.10")
TAX_RATE = Decimal("0.12")
PLATFORM_COMMISSION_RATE = Decimal("0.15")

CENT = Decimal("0.01")

# days before check-in
CANCELLATION_DEADLINE_DAYS = {
    CancellationPolicy.FLEXIBLE: 1,
    CancellationPolicy.MODERATE: 5,
    CancellationPolicy.STRICT: 14,
    CancellationPolicy.SUPER_STRICT: 30,
}

# (min days before check-in, share refunded); first match wins
REFUND_BANDS = {
    CancellationPolicy.FLEXIBLE: [(1, Decimal("1"))],
    CancellationPolicy.MODERATE: [(5, Decimal("1")), (1, Decimal("0.5"))],
    CancellationPolicy.STRICT: [(14, Decimal("1")), (7, Decimal("0.5"))],
    CancellationPolicy.SUPER_STRICT: [(30, Decimal("1")), (14, Decimal("0.5"))],
}


def round2(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return round2(Decimal(str(value)))


@dataclass(frozen=True)
class PriceBreakdown:
    nights: int
    nightly_rate: Decimal
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    tax_amount: Decimal
    total_price: Decimal
    platform_commission: Decimal
    host_earnings: Decimal

    def as_json(self):
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


def whole_nights(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def price_booking(property, check_in: date, check_out: date, guests: int = 1) -> PriceBreakdown:
    """Compute the immutable price snapshot for a stay.

    Every derived amount is rounded half-up to cents as soon as it is
    produced, so the parts always add up to the total exactly.
    """
    nights = whole_nights(check_in, check_out)
    if nights < 1:
        raise ValidationError("Check-out date must be after check-in date")
    if guests is not None and guests < 1:
        raise ValidationError("At least one guest is required")

    nightly_rate = to_money(property.nightly_rate)
    cleaning_fee = to_money(property.cleaning_fee)

    subtotal = round2(nightly_rate * nights)
    service_fee = round2(subtotal * SERVICE_FEE_RATE)
    tax_amount = round2((subtotal + service_fee) * TAX_RATE)
    total_price = subtotal + cleaning_fee + service_fee + tax_amount
    platform_commission = round2(subtotal * PLATFORM_COMMISSION_RATE)
    host_earnings = subtotal - platform_commission

    return PriceBreakdown(
        nights=nights,
        nightly_rate=nightly_rate,
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        tax_amount=tax_amount,
        total_price=total_price,
        platform_commission=platform_commission,
        host_earnings=host_earnings,
    )


def initial_hold(instant_book: bool, config, now: Optional[datetime] = None):
    """Return (initial status, hold_expires_at) for a new booking."""
    now = now or datetime.utcnow()
    if instant_book:
        minutes = config.get("HOLD_DURATION_MINUTES", 15)
        return BookingStatus.AWAITING_PAYMENT, now + timedelta(minutes=minutes)
    hours = config.get("REQUEST_APPROVAL_WINDOW_HOURS", 24)
    return BookingStatus.REQUESTED, now + timedelta(hours=hours)


def parse_policy(value) -> CancellationPolicy:
    try:
        return CancellationPolicy(value or CancellationPolicy.FLEXIBLE.value)
    except ValueError:
        return CancellationPolicy.FLEXIBLE


def cancellation_deadline(policy, check_in: date) -> date:
    return check_in - timedelta(days=CANCELLATION_DEADLINE_DAYS[parse_policy(policy)])


def refund_for_cancellation(policy, total_price, check_in: date, today: Optional[date] = None) -> Decimal:
    today = today or datetime.utcnow().date()
    days_until = (check_in - today).days
    total = to_money(total_price)
    for min_days, share in REFUND_BANDS[parse_policy(policy)]:
        if days_until >= min_days:
            return round2(total * share)
    return Decimal("0.00")
