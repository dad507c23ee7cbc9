from datetime import datetime
from models.db import db

class Property(db.Model):
    __tablename__ = "properties"

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    city = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True)

    nightly_rate = db.Column(db.Numeric(10, 2), nullable=False)
    cleaning_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(10), nullable=False, default="USD")
    max_guests = db.Column(db.Integer, nullable=False, default=1)

    cancellation_policy = db.Column(db.String(20), nullable=False, default="FLEXIBLE")
    # instant_book=False means bookings start as REQUESTED and wait for the host
    instant_book = db.Column(db.Boolean, default=True, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "title": self.title,
            "city": self.city,
            "country": self.country,
            "nightly_rate": str(self.nightly_rate),
            "cleaning_fee": str(self.cleaning_fee),
            "currency": self.currency,
            "max_guests": self.max_guests,
            "cancellation_policy": self.cancellation_policy,
            "instant_book": self.instant_book,
            "status": self.status,
        }
