from datetime import datetime
from models.db import db

class Availability(db.Model):
    """Per-property calendar flag. Rows only exist for dates that were touched."""
    __tablename__ = "availability"

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    available = db.Column(db.Boolean, default=True, nullable=False)
    # True when the host closed the date by hand (no booking behind it)
    blocked_by_host = db.Column(db.Boolean, default=False, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("property_id", "date", name="uq_availability_property_date"),
    )


class NightClaim(db.Model):
    """One row per night held by a live booking."""
    __tablename__ = "night_claims"

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=False)
    night = db.Column(db.Date, nullable=False)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)

    __table_args__ = (
        # Hard business-rule: a night can be held by one live booking only (prevents double booking)
        db.UniqueConstraint("property_id", "night", name="uq_night_claim_once"),
    )
