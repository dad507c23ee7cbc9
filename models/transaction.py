from datetime import datetime
from models.db import db

class Transaction(db.Model):
    """Append-only money ledger. Rows are inserted, never updated."""
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    type = db.Column(db.String(20), nullable=False)  # RESERVATION, REFUND
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)
    gateway_transaction_id = db.Column(db.String(255), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
