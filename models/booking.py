import uuid
from datetime import datetime
from models.db import db


def _new_booking_id():
    return uuid.uuid4().hex


def _money(value):
    return str(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value else None


class Booking(db.Model):
    __tablename__ = "bookings"

    # opaque id so booking ids cannot be enumerated
    id = db.Column(db.String(32), primary_key=True, default=_new_booking_id)

    guest_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    host_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=False, index=True)

    check_in = db.Column(db.Date, nullable=False)
    check_out = db.Column(db.Date, nullable=False)
    number_of_nights = db.Column(db.Integer, nullable=False)

    number_of_guests = db.Column(db.Integer, nullable=False, default=1)
    adults = db.Column(db.Integer, nullable=False, default=1)
    children = db.Column(db.Integer, nullable=False, default=0)
    infants = db.Column(db.Integer, nullable=False, default=0)
    special_requests = db.Column(db.Text, nullable=True)

    # price snapshot, written once at creation
    currency = db.Column(db.String(10), nullable=False, default="USD")
    nightly_rate = db.Column(db.Numeric(10, 2), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    cleaning_fee = db.Column(db.Numeric(10, 2), nullable=False)
    service_fee = db.Column(db.Numeric(10, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    platform_commission = db.Column(db.Numeric(10, 2), nullable=False)
    host_earnings = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(db.String(20), nullable=False, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="PENDING")
    hold_expires_at = db.Column(db.DateTime, nullable=True, index=True)

    approved_at = db.Column(db.DateTime, nullable=True)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    checked_in_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.String(10), nullable=True)  # SYSTEM, GUEST, HOST, ADMIN
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancellation_policy_type = db.Column(db.String(20), nullable=False, default="FLEXIBLE")
    cancellation_deadline = db.Column(db.Date, nullable=True)
    refund_amount = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    payments = db.relationship("Payment", back_populates="booking", order_by="Payment.id")
    guest_user = db.relationship("User", foreign_keys=[guest_id])
    host_user = db.relationship("User", foreign_keys=[host_id])

    __table_args__ = (
        db.CheckConstraint("check_out > check_in", name="ck_booking_range"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "guest_id": self.guest_id,
            "host_id": self.host_id,
            "property_id": self.property_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "number_of_nights": self.number_of_nights,
            "number_of_guests": self.number_of_guests,
            "adults": self.adults,
            "children": self.children,
            "infants": self.infants,
            "currency": self.currency,
            "nightly_rate": _money(self.nightly_rate),
            "subtotal": _money(self.subtotal),
            "cleaning_fee": _money(self.cleaning_fee),
            "service_fee": _money(self.service_fee),
            "tax_amount": _money(self.tax_amount),
            "total_price": _money(self.total_price),
            "platform_commission": _money(self.platform_commission),
            "host_earnings": _money(self.host_earnings),
            "status": self.status,
            "payment_status": self.payment_status,
            "hold_expires_at": _iso(self.hold_expires_at),
            "approved_at": _iso(self.approved_at),
            "confirmed_at": _iso(self.confirmed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "cancellation_policy_type": self.cancellation_policy_type,
            "cancellation_deadline": _iso(self.cancellation_deadline),
            "refund_amount": _money(self.refund_amount),
            "created_at": _iso(self.created_at),
        }
