from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    """Append-only trail of security and booking events."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # None for SYSTEM, webhook and cron events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. BOOKING_CREATE, HOLD_EXPIRED, PAYMENT_PAID
    entity = db.Column(db.String(80), nullable=True)  # booking, payment, property
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )
