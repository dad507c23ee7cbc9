import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.booking import Booking
from models.status import BookingStatus, EXPIRABLE_STATUSES, PaymentStatus, values
from services import lifecycle
from services.bookings import expire_hold
from services.errors import BookingError
from utils.audit import log_event
from utils.notify import notify_booking

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired_count: int = 0
    released_booking_ids: List[str] = field(default_factory=list)
    results: List[dict] = field(default_factory=list)

    def as_json(self):
        return {
            "success": True,
            "processed": len(self.results),
            "expired_count": self.expired_count,
            "released_booking_ids": self.released_booking_ids,
            "results": self.results,
        }


def sweep_expired_holds(now: Optional[datetime] = None) -> SweepResult:
    """Expire every unpaid hold whose window has lapsed.

    Each booking is its own unit of work: re-read under lock, re-checked,
    expired, nights released, committed. One failure is recorded and the
    sweep moves on. Running it again right away finds nothing to do.
    """
    now = now or datetime.utcnow()
    result = SweepResult()

    candidate_ids = [
        row.id for row in Booking.query.with_entities(Booking.id).filter(
            Booking.hold_expires_at < now,
            Booking.status.in_(values(EXPIRABLE_STATUSES)),
            Booking.payment_status != PaymentStatus.PAID.value,
        ).all()
    ]
    logger.info("Found %d expired holds", len(candidate_ids))

    for booking_id in candidate_ids:
        try:
            booking = Booking.query.filter_by(id=booking_id).with_for_update().populate_existing().first()
            if booking is None or not lifecycle.is_expirable(booking, now):
                # paid or moved on since the candidate query
                continue
            released = expire_hold(booking, now)
            db.session.commit()
        except (SQLAlchemyError, BookingError) as exc:
            db.session.rollback()
            logger.error("Error expiring booking %s: %s", booking_id, exc)
            result.results.append({"id": booking_id, "status": "error", "error": str(exc)})
            continue

        result.expired_count += 1
        result.released_booking_ids.append(booking_id)
        result.results.append({
            "id": booking_id,
            "status": "expired",
            "released_dates": [d.isoformat() for d in released],
        })
        log_event("HOLD_EXPIRED", entity="booking", entity_id=booking_id,
                  metadata={"property_id": booking.property_id, "released": len(released)})
        notify_booking(booking, BookingStatus.EXPIRED.value)

    logger.info("Sweep done: %d expired, %d errors", result.expired_count,
                sum(1 for r in result.results if r["status"] == "error"))
    return result
