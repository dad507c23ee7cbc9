from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g

from models import db
from models.property import Property
from models.status import CancellationPolicy
from security.rbac import require_roles
from services import availability
from services.pricing import price_booking, to_money
from services.errors import ValidationError
from utils.audit import log_event
from utils.auth_context import login_required
from utils.dates import date_window, parse_date

property_bp = Blueprint("property", __name__, url_prefix="/properties")

MAX_CALENDAR_DAYS = 366


def _money_field(data, name, required=False):
    raw = data.get(name)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{name} is required")
        return Decimal("0.00")
    try:
        value = to_money(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")
    return value


def _owned_property(property_id: int):
    prop = db.session.get(Property, property_id)
    if not prop or (prop.owner_user_id != g.user.id and not g.user.is_admin):
        return None
    return prop


def _range_args(source):
    try:
        check_in = parse_date(source.get("check_in"))
        check_out = parse_date(source.get("check_out"))
    except (TypeError, ValueError):
        raise ValidationError("check_in and check_out must be dates like 2026-01-20")
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")
    return check_in, check_out


# ---------- HOSTS: manage listings ----------
@property_bp.post("")
@require_roles("HOST")
def create_property():
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    if not title:
        return jsonify(error="title is required"), 400

    policy = (data.get("cancellation_policy") or CancellationPolicy.FLEXIBLE.value).upper()
    if policy not in {p.value for p in CancellationPolicy}:
        return jsonify(error="Unknown cancellation_policy"), 400

    try:
        max_guests = int(data.get("max_guests") or 1)
    except (TypeError, ValueError):
        return jsonify(error="max_guests must be an integer"), 400
    if max_guests < 1:
        return jsonify(error="max_guests must be at least 1"), 400

    prop = Property(
        owner_user_id=g.user.id,
        title=title,
        city=(data.get("city") or "").strip() or None,
        country=(data.get("country") or "").strip() or None,
        nightly_rate=_money_field(data, "nightly_rate", required=True),
        cleaning_fee=_money_field(data, "cleaning_fee"),
        currency=(data.get("currency") or "USD").upper(),
        max_guests=max_guests,
        cancellation_policy=policy,
        instant_book=bool(data.get("instant_book", True)),
    )
    db.session.add(prop)
    db.session.commit()

    log_event("PROPERTY_CREATE", user_id=g.user.id, entity="property", entity_id=prop.id)
    return jsonify(prop.to_dict()), 201


@property_bp.get("/me")
@require_roles("HOST")
def my_properties():
    rows = Property.query.filter_by(owner_user_id=g.user.id).order_by(Property.created_at.desc()).all()
    return jsonify([p.to_dict() for p in rows]), 200


@property_bp.get("/<int:property_id>")
@login_required
def get_property(property_id: int):
    prop = db.session.get(Property, property_id)
    if not prop or prop.status != "ACTIVE":
        return jsonify(error="Property not found"), 404
    return jsonify(prop.to_dict()), 200


@property_bp.post("/<int:property_id>/block")
@require_roles("HOST")
def block_dates(property_id: int):
    return _set_block(property_id, blocked=True)


@property_bp.post("/<int:property_id>/unblock")
@require_roles("HOST")
def unblock_dates(property_id: int):
    return _set_block(property_id, blocked=False)


def _set_block(property_id: int, blocked: bool):
    prop = _owned_property(property_id)
    if not prop:
        return jsonify(error="Property not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        days = sorted({parse_date(d) for d in data.get("dates") or []})
    except (TypeError, ValueError):
        return jsonify(error="dates must be a list like [\"2026-01-20\"]"), 400
    if not days:
        return jsonify(error="dates required"), 400

    changed = availability.set_host_block(prop.id, days, blocked)
    db.session.commit()

    log_event("CALENDAR_BLOCK" if blocked else "CALENDAR_UNBLOCK", user_id=g.user.id,
              entity="property", entity_id=prop.id, metadata={"dates": [d.isoformat() for d in changed]})
    return jsonify(dates=[d.isoformat() for d in changed], blocked=blocked), 200


# ---------- EVERYONE: calendar, conflict check, quote ----------
@property_bp.get("/<int:property_id>/calendar")
@login_required
def property_calendar(property_id: int):
    prop = db.session.get(Property, property_id)
    if not prop:
        return jsonify(error="Property not found"), 404
    try:
        start, end = date_window(request.args.get("start"), request.args.get("end"))
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
    if end <= start or (end - start).days > MAX_CALENDAR_DAYS:
        return jsonify(error=f"Window must be 1 to {MAX_CALENDAR_DAYS} days"), 400
    return jsonify(property_id=prop.id, days=availability.calendar(prop.id, start, end)), 200


@property_bp.get("/<int:property_id>/availability")
@login_required
def check_availability(property_id: int):
    prop = db.session.get(Property, property_id)
    if not prop:
        return jsonify(error="Property not found"), 404
    check_in, check_out = _range_args(request.args)

    result = availability.check_conflict(prop.id, check_in, check_out)
    return jsonify(
        has_conflict=result.has_conflict,
        conflicting_ranges=[
            {"check_in": r["check_in"], "check_out": r["check_out"]} for r in result.ranges()
        ],
        blocked_dates=[d.isoformat() for d in result.blocked_dates],
    ), 200


@property_bp.get("/<int:property_id>/quote")
@login_required
def quote(property_id: int):
    prop = db.session.get(Property, property_id)
    if not prop or prop.status != "ACTIVE":
        return jsonify(error="Property not found"), 404
    check_in, check_out = _range_args(request.args)
    guests = request.args.get("guests", default=1, type=int)
    return jsonify(price_booking(prop, check_in, check_out, guests).as_json()), 200
