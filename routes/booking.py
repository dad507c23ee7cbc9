from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from security.rbac import require_roles
from services.bookings import BookingRequest, create_booking, get_booking_for, transition_booking
from services.payments import verify_booking_payment
from utils.auth_context import login_required
from utils.dates import parse_date

booking_bp = Blueprint("booking", __name__)

REQUIRED_FIELDS = ("property_id", "check_in", "check_out", "guests", "adults")
PAGE_SIZE_MAX = 100


def _int_field(data, name, default=0):
    value = data.get(name, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")


def _paginate(q):
    page = max(request.args.get("page", default=1, type=int), 1)
    limit = min(max(request.args.get("limit", default=20, type=int), 1), PAGE_SIZE_MAX)
    total = q.count()
    rows = q.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [b.to_dict() for b in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


# ---------- GUESTS: book a stay (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create():
    data = request.get_json(silent=True) or {}
    for field in REQUIRED_FIELDS:
        if data.get(field) in (None, ""):
            return jsonify(error=f"{field} is required"), 400

    try:
        check_in = parse_date(data["check_in"])
        check_out = parse_date(data["check_out"])
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    try:
        req = BookingRequest(
            guest=g.user,
            property_id=_int_field(data, "property_id"),
            check_in=check_in,
            check_out=check_out,
            guests=_int_field(data, "guests", 1),
            adults=_int_field(data, "adults", 1),
            children=_int_field(data, "children", 0),
            infants=_int_field(data, "infants", 0),
            special_requests=(data.get("special_requests") or "").strip() or None,
        )
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    booking = create_booking(req)
    return jsonify(booking.to_dict()), 201


@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    q = Booking.query.filter_by(guest_id=g.user.id)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status.upper())
    return jsonify(_paginate(q)), 200


@booking_bp.get("/host/bookings")
@require_roles("HOST")
def host_bookings():
    q = Booking.query.filter_by(host_id=g.user.id)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status.upper())
    return jsonify(_paginate(q)), 200


@booking_bp.get("/bookings/<booking_id>")
@login_required
def get_booking(booking_id: str):
    booking = get_booking_for(booking_id, g.user)
    out = booking.to_dict()
    out["payments"] = [p.to_dict() for p in booking.payments]
    return jsonify(out), 200


# ---------- HOST / GUEST / ADMIN: approve, reject, cancel, check in, complete ----------
@booking_bp.patch("/bookings/<booking_id>")
@login_required
def transition(booking_id: str):
    data = request.get_json(silent=True) or {}
    action = (data.get("action") or "").strip().lower()
    if not action:
        return jsonify(error="action is required"), 400
    reason = (data.get("reason") or "").strip() or None

    booking = transition_booking(booking_id, g.user, action, reason=reason)
    return jsonify(booking=booking.to_dict(), message=f"Booking {booking.status.lower()}"), 200


@booking_bp.get("/bookings/<booking_id>/verify")
@login_required
def verify(booking_id: str):
    outcome = verify_booking_payment(booking_id, g.user)
    return jsonify(
        booking=outcome.booking.to_dict(),
        payment=outcome.payment.to_dict() if outcome.payment else None,
        message=outcome.message,
    ), 200
