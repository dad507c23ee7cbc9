"""Booking state machine: the transition table and who may fire each action."""

from datetime import datetime
from typing import Optional

from models.status import (
    BookingStatus as S,
    CancelledBy,
    EXPIRABLE_STATUSES,
    PAYABLE_STATUSES,
    PaymentStatus,
)
from services.errors import AuthorizationError, InvalidTransitionError

APPROVE = "approve"
REJECT = "reject"
CANCEL = "cancel"
CHECK_IN = "check_in"
COMPLETE = "complete"
CONFIRM = "confirm"
EXPIRE = "expire"

USER_ACTIONS = (APPROVE, REJECT, CANCEL, CHECK_IN, COMPLETE, EXPIRE)

# (action, current status) -> next status. Anything missing is not a legal move.
TRANSITIONS = {
    (APPROVE, S.REQUESTED): S.APPROVED,
    (REJECT, S.REQUESTED): S.REJECTED,
    (REJECT, S.APPROVED): S.REJECTED,
    (CHECK_IN, S.CONFIRMED): S.CHECKED_IN,
    (COMPLETE, S.CHECKED_IN): S.COMPLETED,
}
for _status in (S.PENDING, S.AWAITING_PAYMENT, S.REQUESTED, S.APPROVED, S.CONFIRMED, S.CHECKED_IN):
    TRANSITIONS[(CANCEL, _status)] = S.CANCELLED
for _status in PAYABLE_STATUSES:
    TRANSITIONS[(CONFIRM, _status)] = S.CONFIRMED
for _status in EXPIRABLE_STATUSES:
    TRANSITIONS[(EXPIRE, _status)] = S.EXPIRED

# Admin may fire any user action, including a forced EXPIRE; CONFIRM is only reachable from gateway reconciliation.
ALLOWED_ACTORS = {
    APPROVE: {CancelledBy.HOST, CancelledBy.ADMIN},
    REJECT: {CancelledBy.HOST, CancelledBy.ADMIN},
    CANCEL: {CancelledBy.GUEST, CancelledBy.HOST, CancelledBy.ADMIN},
    CHECK_IN: {CancelledBy.HOST, CancelledBy.ADMIN, CancelledBy.SYSTEM},
    COMPLETE: {CancelledBy.HOST, CancelledBy.ADMIN, CancelledBy.SYSTEM},
    EXPIRE: {CancelledBy.SYSTEM, CancelledBy.ADMIN},
    CONFIRM: {CancelledBy.SYSTEM},
}


def actor_role(booking, user) -> Optional[CancelledBy]:
    if user is None or booking is None:
        return None
    if user.is_admin:
        return CancelledBy.ADMIN
    if booking.host_id == user.id:
        return CancelledBy.HOST
    if booking.guest_id == user.id:
        return CancelledBy.GUEST
    return None


def authorize(booking, role: Optional[CancelledBy], action: str) -> CancelledBy:
    if booking is None or role is None or role not in ALLOWED_ACTORS.get(action, ()):
        raise AuthorizationError()
    return role


def next_status(action: str, current) -> S:
    try:
        current = S(current)
    except ValueError:
        raise InvalidTransitionError(f"Unknown booking status {current}", current_status=current, action=action)
    target = TRANSITIONS.get((action, current))
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {action.replace('_', ' ')} booking with status {current.value}",
            current_status=current.value,
            action=action,
        )
    return target


def is_expirable(booking, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return (
        booking.status in {s.value for s in EXPIRABLE_STATUSES}
        and booking.payment_status != PaymentStatus.PAID.value
        and booking.hold_expires_at is not None
        and booking.hold_expires_at < now
    )
