from datetime import datetime
from models.db import db

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)

    method = db.Column(db.String(20), nullable=False)  # stripe, paypal, sadad
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="USD")

    status = db.Column(db.String(20), nullable=False, default="PENDING")  # PENDING, PAID, FAILED
    # PaymentIntent id / PayPal order id / Sadad ORDER_ID
    external_ref = db.Column(db.String(255), nullable=True, unique=True, index=True)
    gateway_transaction_id = db.Column(db.String(255), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    # set when money arrived for a booking that could no longer be confirmed
    refund_required = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    booking = db.relationship("Booking", back_populates="payments")

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "method": self.method,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "external_ref": self.external_ref,
            "gateway_transaction_id": self.gateway_transaction_id,
            "failure_reason": self.failure_reason,
            "refund_required": self.refund_required,
        }
