import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from models import db
from models.availability import Availability, NightClaim
from models.booking import Booking
from models.status import LIVE_STATUSES, values

logger = logging.getLogger(__name__)


@dataclass
class ConflictCheck:
    has_conflict: bool
    conflicting_bookings: List[Booking] = field(default_factory=list)
    blocked_dates: List[date] = field(default_factory=list)

    def ranges(self):
        return [
            {"booking_id": b.id, "check_in": b.check_in.isoformat(), "check_out": b.check_out.isoformat()}
            for b in self.conflicting_bookings
        ]


def ranges_overlap(a_in: date, a_out: date, b_in: date, b_out: date) -> bool:
    # half-open [in, out): checking in on another stay's checkout day is fine
    return a_in < b_out and b_in < a_out


def nights_in(check_in: date, check_out: date):
    d = check_in
    while d < check_out:
        yield d
        d += timedelta(days=1)


def find_conflicts(property_id: int, check_in: date, check_out: date, exclude_booking_id: Optional[str] = None):
    q = Booking.query.filter(
        Booking.property_id == property_id,
        Booking.status.in_(values(LIVE_STATUSES)),
        Booking.check_in < check_out,
        Booking.check_out > check_in,
    )
    if exclude_booking_id:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.order_by(Booking.check_in.asc()).all()


def host_blocked_dates(property_id: int, check_in: date, check_out: date):
    rows = Availability.query.filter(
        Availability.property_id == property_id,
        Availability.date >= check_in,
        Availability.date < check_out,
        Availability.blocked_by_host.is_(True),
    ).all()
    return sorted(r.date for r in rows)


def check_conflict(property_id: int, check_in: date, check_out: date) -> ConflictCheck:
    conflicts = find_conflicts(property_id, check_in, check_out)
    blocked = host_blocked_dates(property_id, check_in, check_out)
    return ConflictCheck(
        has_conflict=bool(conflicts or blocked),
        conflicting_bookings=conflicts,
        blocked_dates=blocked,
    )


def _calendar_row(property_id: int, day: date) -> Availability:
    row = Availability.query.filter_by(property_id=property_id, date=day).first()
    if not row:
        row = Availability(property_id=property_id, date=day, available=True)
        db.session.add(row)
    return row


def claim_nights(booking: Booking) -> None:
    """Insert the per-night claims for a live booking and mark the calendar.

    The unique constraint on (property_id, night) turns a concurrent overlapping
    insert into an IntegrityError even if both transactions passed the check.
    """
    for night in nights_in(booking.check_in, booking.check_out):
        db.session.add(NightClaim(property_id=booking.property_id, night=night, booking_id=booking.id))
        _calendar_row(booking.property_id, night).available = False
    db.session.flush()


def release_nights(booking: Booking) -> List[date]:
    """Drop the booking's claims and reopen dates no other live booking covers."""
    NightClaim.query.filter_by(booking_id=booking.id).delete(synchronize_session=False)

    still_claimed = {
        c.night for c in NightClaim.query.filter(
            NightClaim.property_id == booking.property_id,
            NightClaim.night >= booking.check_in,
            NightClaim.night < booking.check_out,
        ).all()
    }

    released = []
    for night in nights_in(booking.check_in, booking.check_out):
        if night in still_claimed:
            continue
        row = Availability.query.filter_by(property_id=booking.property_id, date=night).first()
        if row and not row.blocked_by_host:
            row.available = True
            released.append(night)
    db.session.flush()
    logger.debug("Released %d nights for booking %s", len(released), booking.id)
    return released


def set_host_block(property_id: int, days, blocked: bool) -> List[date]:
    changed = []
    for day in days:
        claimed = NightClaim.query.filter_by(property_id=property_id, night=day).first()
        row = _calendar_row(property_id, day)
        row.blocked_by_host = blocked
        row.available = not blocked and claimed is None
        changed.append(day)
    return changed


def calendar(property_id: int, start: date, end: date):
    rows = {
        r.date: r for r in Availability.query.filter(
            Availability.property_id == property_id,
            Availability.date >= start,
            Availability.date < end,
        ).all()
    }
    out = []
    for day in nights_in(start, end):
        row = rows.get(day)
        out.append({
            "date": day.isoformat(),
            "available": row.available if row else True,
            "blocked_by_host": row.blocked_by_host if row else False,
        })
    return out
