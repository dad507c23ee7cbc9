from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, Enum):
    """Booking-level payment status."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class AttemptStatus(str, Enum):
    """Status of a single gateway attempt (Payment row)."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    SADAD = "sadad"


class CancelledBy(str, Enum):
    SYSTEM = "SYSTEM"
    GUEST = "GUEST"
    HOST = "HOST"
    ADMIN = "ADMIN"


class CancellationPolicy(str, Enum):
    FLEXIBLE = "FLEXIBLE"
    MODERATE = "MODERATE"
    STRICT = "STRICT"
    SUPER_STRICT = "SUPER_STRICT"


# Bookings in these states hold their nights against the property calendar.
LIVE_STATUSES = frozenset({
    BookingStatus.AWAITING_PAYMENT,
    BookingStatus.REQUESTED,
    BookingStatus.APPROVED,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
})

PAYABLE_STATUSES = frozenset({
    BookingStatus.AWAITING_PAYMENT,
    BookingStatus.PENDING,
    BookingStatus.REQUESTED,
    BookingStatus.APPROVED,
})

# Pre-payment states a lapsed hold can be expired from.
EXPIRABLE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.REQUESTED,
    BookingStatus.APPROVED,
    BookingStatus.AWAITING_PAYMENT,
})


def values(statuses):
    return [s.value for s in statuses]
