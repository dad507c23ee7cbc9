import logging

from models.user import User
from utils.emailer import send_email

logger = logging.getLogger(__name__)

SUBJECTS = {
    "CONFIRMED": "Your booking is confirmed",
    "EXPIRED": "Your booking hold has expired",
    "CANCELLED": "A booking was cancelled",
    "REJECTED": "A booking request was declined",
}


def _body(booking, event: str) -> str:
    lines = [
        f"Booking {booking.id}",
        f"Stay: {booking.check_in.isoformat()} to {booking.check_out.isoformat()} ({booking.number_of_nights} nights)",
        f"Status: {event}",
        f"Total: {booking.total_price} {booking.currency}",
    ]
    if event in ("CANCELLED", "REJECTED", "EXPIRED") and booking.cancellation_reason:
        lines.append(f"Reason: {booking.cancellation_reason}")
    if booking.refund_amount:
        lines.append(f"Refund: {booking.refund_amount} {booking.currency}")
    return "\n".join(lines)


def notify_booking(booking, event: str) -> None:
    """Tell guest and host about a status change. Fire-and-forget."""
    subject = SUBJECTS.get(event)
    if not subject:
        return
    try:
        recipients = User.query.filter(User.id.in_([booking.guest_id, booking.host_id])).all()
        body = _body(booking, event)
        for user in recipients:
            ok, err = send_email(user.email, subject, body)
            if not ok:
                logger.info("Notification %s for booking %s not sent to %s: %s", event, booking.id, user.email, err)
    except Exception:
        logger.exception("Notification %s for booking %s failed", event, booking.id)
