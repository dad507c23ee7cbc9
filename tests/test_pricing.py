from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from models.status import BookingStatus, CancellationPolicy
from services import pricing
from services.errors import ValidationError


def _prop(rate="100", cleaning="20"):
    return SimpleNamespace(nightly_rate=Decimal(rate), cleaning_fee=Decimal(cleaning))


def test_three_night_stay_breakdown():
    price = pricing.price_booking(_prop(), date(2026, 3, 1), date(2026, 3, 4))

    assert price.nights == 3
    assert price.subtotal == Decimal("300.00")
    assert price.service_fee == Decimal("30.00")
    assert price.tax_amount == Decimal("39.60")
    assert price.total_price == Decimal("389.60")
    assert price.platform_commission == Decimal("45.00")
    assert price.host_earnings == Decimal("255.00")


def test_each_step_rounds_half_up():
    price = pricing.price_booking(_prop(rate="33.35", cleaning="0"), date(2026, 3, 1), date(2026, 3, 2))

    # 3.335 -> 3.34, (33.35 + 3.34) * 0.12 = 4.4028 -> 4.40
    assert price.service_fee == Decimal("3.34")
    assert price.tax_amount == Decimal("4.40")
    assert price.total_price == price.subtotal + price.cleaning_fee + price.service_fee + price.tax_amount
    assert price.platform_commission + price.host_earnings == price.subtotal


def test_as_json_renders_money_as_strings():
    out = pricing.price_booking(_prop(), date(2026, 3, 1), date(2026, 3, 4)).as_json()
    assert out["total_price"] == "389.60"
    assert out["nights"] == 3


@pytest.mark.parametrize("check_out", [date(2026, 3, 1), date(2026, 2, 27)])
def test_rejects_empty_or_inverted_range(check_out):
    with pytest.raises(ValidationError):
        pricing.price_booking(_prop(), date(2026, 3, 1), check_out)


def test_rejects_zero_guests():
    with pytest.raises(ValidationError):
        pricing.price_booking(_prop(), date(2026, 3, 1), date(2026, 3, 2), guests=0)


def test_initial_hold_depends_on_instant_book():
    now = datetime(2026, 1, 1, 12, 0)
    config = {"HOLD_DURATION_MINUTES": 15, "REQUEST_APPROVAL_WINDOW_HOURS": 24}

    status, expires = pricing.initial_hold(True, config, now)
    assert status == BookingStatus.AWAITING_PAYMENT
    assert expires == now + timedelta(minutes=15)

    status, expires = pricing.initial_hold(False, config, now)
    assert status == BookingStatus.REQUESTED
    assert expires == now + timedelta(hours=24)


def test_cancellation_deadline_per_policy():
    check_in = date(2026, 6, 30)
    assert pricing.cancellation_deadline("FLEXIBLE", check_in) == date(2026, 6, 29)
    assert pricing.cancellation_deadline("STRICT", check_in) == date(2026, 6, 16)
    assert pricing.cancellation_deadline("unknown", check_in) == date(2026, 6, 29)


@pytest.mark.parametrize(
    "policy, days_before, expected",
    [
        (CancellationPolicy.FLEXIBLE, 1, "389.60"),
        (CancellationPolicy.FLEXIBLE, 0, "0.00"),
        (CancellationPolicy.MODERATE, 5, "389.60"),
        (CancellationPolicy.MODERATE, 2, "194.80"),
        (CancellationPolicy.STRICT, 10, "194.80"),
        (CancellationPolicy.STRICT, 6, "0.00"),
        (CancellationPolicy.SUPER_STRICT, 20, "194.80"),
    ],
)
def test_refund_bands(policy, days_before, expected):
    check_in = date(2026, 6, 30)
    today = check_in - timedelta(days=days_before)
    assert pricing.refund_for_cancellation(policy, Decimal("389.60"), check_in, today) == Decimal(expected)
