"""Booking creation and status transitions."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.booking import Booking
from models.property import Property
from models.status import BookingStatus, CancelledBy, PaymentStatus
from services import availability, lifecycle, pricing
from services.errors import AuthorizationError, ConflictError, NotFoundError, StatusConflictError, ValidationError
from services.refunds import issue_refund
from utils.audit import log_event
from utils.notify import notify_booking

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Payment hold expired"


@dataclass
class BookingRequest:
    guest: object
    property_id: int
    check_in: date
    check_out: date
    guests: int = 1
    adults: int = 1
    children: int = 0
    infants: int = 0
    special_requests: Optional[str] = None


def _validate(req: BookingRequest, today: date) -> None:
    if req.check_in >= req.check_out:
        raise ValidationError("Check-out date must be after check-in date")
    if req.check_in < today:
        raise ValidationError("Check-in date cannot be in the past")
    for name in ("guests", "adults", "children", "infants"):
        if getattr(req, name) < 0:
            raise ValidationError(f"{name} cannot be negative")
    if req.adults < 1 or req.guests < 1:
        raise ValidationError("At least one adult is required")


def expire_hold(booking: Booking, now: datetime) -> list:
    """Move a lapsed hold to EXPIRED and give its nights back. Caller commits."""
    lifecycle.next_status(lifecycle.EXPIRE, booking.status)
    booking.status = BookingStatus.EXPIRED.value
    booking.cancelled_at = now
    booking.cancelled_by = CancelledBy.SYSTEM.value
    booking.cancellation_reason = EXPIRED_REASON
    return availability.release_nights(booking)


def create_booking(req: BookingRequest, now: Optional[datetime] = None) -> Booking:
    now = now or datetime.utcnow()
    _validate(req, now.date())

    # lock the property row so two guests racing for it serialize here
    prop = Property.query.filter_by(id=req.property_id).with_for_update().first()
    if not prop:
        raise NotFoundError("Property not found")
    if prop.status != "ACTIVE":
        raise ValidationError("Property is not available for booking")
    if req.guests > prop.max_guests:
        raise ValidationError(f"Property can accommodate maximum {prop.max_guests} guests")
    if prop.owner_user_id == req.guest.id:
        raise ValidationError("You cannot book your own property")

    price = pricing.price_booking(prop, req.check_in, req.check_out, req.guests)

    lapsed = []
    conflicts = []
    for other in availability.find_conflicts(prop.id, req.check_in, req.check_out):
        if lifecycle.is_expirable(other, now):
            expire_hold(other, now)
            lapsed.append(other)
        else:
            conflicts.append(other)

    if conflicts:
        db.session.rollback()
        raise ConflictError(
            "Property is not available for selected dates",
            conflicts=[
                {"check_in": b.check_in.isoformat(), "check_out": b.check_out.isoformat()}
                for b in conflicts
            ],
        )

    blocked = availability.host_blocked_dates(prop.id, req.check_in, req.check_out)
    if blocked:
        db.session.rollback()
        raise ConflictError(
            "Property is not available for selected dates",
            blocked_dates=[d.isoformat() for d in blocked],
        )

    status, hold_expires_at = pricing.initial_hold(prop.instant_book, current_app.config, now)
    policy = pricing.parse_policy(prop.cancellation_policy)

    booking = Booking(
        guest_id=req.guest.id,
        host_id=prop.owner_user_id,
        property_id=prop.id,
        check_in=req.check_in,
        check_out=req.check_out,
        number_of_nights=price.nights,
        number_of_guests=req.guests,
        adults=req.adults,
        children=req.children,
        infants=req.infants,
        special_requests=req.special_requests,
        currency=prop.currency,
        nightly_rate=price.nightly_rate,
        subtotal=price.subtotal,
        cleaning_fee=price.cleaning_fee,
        service_fee=price.service_fee,
        tax_amount=price.tax_amount,
        total_price=price.total_price,
        platform_commission=price.platform_commission,
        host_earnings=price.host_earnings,
        status=status.value,
        payment_status=PaymentStatus.PENDING.value,
        hold_expires_at=hold_expires_at,
        cancellation_policy_type=policy.value,
        cancellation_deadline=pricing.cancellation_deadline(policy, req.check_in),
    )
    db.session.add(booking)

    try:
        db.session.flush()
        availability.claim_nights(booking)
        db.session.commit()
    except IntegrityError:
        # uq_night_claim_once: someone else claimed one of these nights first
        db.session.rollback()
        log_event("BOOKING_FAIL_ALREADY_BOOKED", user_id=req.guest.id, entity="property", entity_id=prop.id)
        raise ConflictError(
            "Property is not available for selected dates",
            check_in=req.check_in.isoformat(),
            check_out=req.check_out.isoformat(),
        )

    for other in lapsed:
        log_event("HOLD_EXPIRED", entity="booking", entity_id=other.id, metadata={"lazy": True})
        notify_booking(other, BookingStatus.EXPIRED.value)

    log_event(
        "BOOKING_CREATE",
        user_id=req.guest.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"property_id": prop.id, "status": booking.status, "total_price": str(booking.total_price)},
    )
    logger.info("Booking %s created for property %s (%s)", booking.id, prop.id, booking.status)
    return booking


def get_booking_for(booking_id: str, user) -> Booking:
    """Booking visible to its guest, its host, or an admin."""
    booking = db.session.get(Booking, booking_id)
    if lifecycle.actor_role(booking, user) is None:
        raise AuthorizationError()
    return booking


def transition_booking(booking_id: str, actor, action: str, reason: Optional[str] = None,
                       now: Optional[datetime] = None) -> Booking:
    """Apply a host/guest/admin action to a booking."""
    now = now or datetime.utcnow()
    if action == "decline":
        action = lifecycle.REJECT
    if action not in lifecycle.USER_ACTIONS:
        raise ValidationError(f"Unknown action {action}")

    booking = Booking.query.filter_by(id=booking_id).with_for_update().first()
    role = lifecycle.authorize(booking, lifecycle.actor_role(booking, actor), action)
    target = lifecycle.next_status(action, booking.status)

    refund = None
    if action == lifecycle.APPROVE:
        hours = current_app.config.get("APPROVED_PAYMENT_WINDOW_HOURS", 48)
        booking.approved_at = now
        booking.hold_expires_at = now + timedelta(hours=hours)

    elif action == lifecycle.REJECT:
        booking.cancelled_at = now
        booking.cancelled_by = role.value
        booking.cancellation_reason = reason or "Declined by host"
        availability.release_nights(booking)

    elif action == lifecycle.CANCEL:
        booking.cancelled_at = now
        booking.cancelled_by = role.value
        booking.cancellation_reason = reason or f"Cancelled by {role.value.lower()}"
        if booking.payment_status == PaymentStatus.PAID.value:
            refund = pricing.refund_for_cancellation(
                booking.cancellation_policy_type, booking.total_price, booking.check_in, now.date()
            )
            booking.refund_amount = refund
            if refund >= booking.total_price:
                booking.payment_status = PaymentStatus.REFUNDED.value
            elif refund > 0:
                booking.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value
        availability.release_nights(booking)

    elif action == lifecycle.CHECK_IN:
        if now.date() < booking.check_in:
            raise StatusConflictError("Check-in date has not been reached", current_status=booking.status)
        booking.checked_in_at = now

    elif action == lifecycle.COMPLETE:
        if now.date() < booking.check_out:
            raise StatusConflictError("Check-out date has not been reached", current_status=booking.status)
        booking.completed_at = now
        availability.release_nights(booking)

    elif action == lifecycle.EXPIRE:
        if booking.payment_status == PaymentStatus.PAID.value:
            raise StatusConflictError(
                "Paid bookings must be cancelled, not expired",
                current_status=booking.status,
                payment_status=booking.payment_status,
            )
        booking.cancelled_at = now
        booking.cancelled_by = role.value
        booking.cancellation_reason = reason or EXPIRED_REASON
        availability.release_nights(booking)

    booking.status = target.value
    db.session.commit()

    log_event(
        f"BOOKING_{action.upper()}",
        user_id=actor.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"status": booking.status, "reason": reason, "refund_amount": str(refund) if refund else None},
    )
    if target in (BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.EXPIRED):
        notify_booking(booking, target.value)
    if refund:
        issue_refund(booking, refund, reason="Guest cancellation" if role == CancelledBy.GUEST else "Booking cancelled")
    return booking


def advance_stays(today: Optional[date] = None) -> dict:
    """Timer-driven: CONFIRMED -> CHECKED_IN on arrival, CHECKED_IN -> COMPLETED on departure."""
    now = datetime.utcnow()
    today = today or now.date()
    result = {"checked_in": [], "completed": [], "errors": []}

    arriving = [b.id for b in Booking.query.filter(
        Booking.status == BookingStatus.CONFIRMED.value, Booking.check_in <= today
    ).all()]
    departing = [b.id for b in Booking.query.filter(
        Booking.status == BookingStatus.CHECKED_IN.value, Booking.check_out <= today
    ).all()]

    for action, ids, bucket in ((lifecycle.CHECK_IN, arriving, "checked_in"),
                                (lifecycle.COMPLETE, departing, "completed")):
        for booking_id in ids:
            try:
                booking = Booking.query.filter_by(id=booking_id).with_for_update().first()
                target = lifecycle.next_status(action, booking.status)
                if action == lifecycle.CHECK_IN:
                    booking.checked_in_at = now
                else:
                    booking.completed_at = now
                    availability.release_nights(booking)
                booking.status = target.value
                db.session.commit()
                result[bucket].append(booking_id)
            except (SQLAlchemyError, StatusConflictError) as exc:
                db.session.rollback()
                logger.error("Could not %s booking %s: %s", action, booking_id, exc)
                result["errors"].append({"id": booking_id, "status": "error", "error": str(exc)})

    logger.info("Advanced stays: %d checked in, %d completed", len(result["checked_in"]), len(result["completed"]))
    return result
