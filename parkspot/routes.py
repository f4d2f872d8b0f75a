import logging
from datetime import datetime, timezone

import click
from flask import Blueprint, current_app, jsonify, request
from kombu.exceptions import OperationalError

from app_factory import cache, db
from parkspot import garage
from parkspot.auth import create_token, is_valid_email, roles_required, token_required
from parkspot.errors import ParkSpotError, ValidationError
from parkspot.ledger import BookingLedger
from parkspot.models import User, UserRole
from parkspot.persistence import commit
from parkspot.search import SpotFilters, filter_spots
from parkspot.spots import SpotRegistry, spot_to_dict
from parkspot.validator import EntryValidator

log = logging.getLogger(__name__)

bp = Blueprint("parkspot", __name__)


# --------------------
# HELPERS
# --------------------
def _registry():
    return SpotRegistry(db.session, cache)


def _ledger(registry=None):
    return BookingLedger.from_config(db.session, registry or _registry(), current_app.config)


def _iso(value):
    return value.isoformat() if value else None


def parse_when(value, label):
    """ISO-8601 string -> naive UTC datetime."""
    if not value:
        raise ValidationError(f"{label} is required")
    try:
        when = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{label} must be an ISO-8601 date and time") from None
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc).replace(tzinfo=None)
    return when


def booking_to_dict(b):
    return {
        "id": b.id,
        "spot_id": b.spot_id,
        "spot_name": b.spot.name,
        "spot_address": b.spot.address,
        "user_id": b.user_id,
        "vehicle_id": b.vehicle_id,
        "license_plate": b.vehicle.license_plate,
        "start_time": _iso(b.start_time),
        "end_time": _iso(b.end_time),
        "reserved_end_time": _iso(b.reserved_end_time),
        "actual_end_time": _iso(b.actual_end_time),
        "total_cost": float(b.total_cost),
        "status": b.status.value,
        "qr_code": b.qr_code,
        "pin": b.pin,
        "is_extended": b.is_extended,
        "extended_at": _iso(b.extended_at),
        "created_at": _iso(b.created_at),
    }


def vehicle_to_dict(v):
    return {
        "id": v.id,
        "make": v.make,
        "model": v.model,
        "license_plate": v.license_plate,
        "color": v.color,
    }


def review_to_dict(r):
    return {
        "id": r.id,
        "spot_id": r.spot_id,
        "user_name": r.user.name,
        "rating": r.rating,
        "comment": r.comment,
        "created_at": _iso(r.created_at),
    }


@bp.errorhandler(ParkSpotError)
def handle_parkspot_error(e):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


# ----------------------------------------------------------
# AUTH ROUTES
# ----------------------------------------------------------
@bp.route("/api/register", methods=["POST"])
def register():
    data = request.json or {}

    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not name or not email or not password:
        return jsonify({"error": "Missing fields"}), 400
    if not is_valid_email(email):
        return jsonify({"error": "Invalid email format"}), 400
    if len(password) < 6:
        return jsonify({"error": "Password must be at least 6 characters"}), 400

    try:
        role = UserRole.parse(data.get("role") or "CUSTOMER")
    except ValueError:
        return jsonify({"error": "Invalid role"}), 400
    if role == UserRole.ADMIN:
        return jsonify({"error": "Invalid role"}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "Email exists"}), 400

    user = User(name=name, email=email, phone=data.get("phone"), role=role)
    user.set_password(password)
    db.session.add(user)
    commit(db.session, "register user")

    return jsonify({"message": "Registered", "user_id": user.id}), 201


@bp.route("/api/login", methods=["POST"])
def login():
    data = request.json or {}
    email = (data.get("email") or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(data.get("password")):
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({"token": create_token(user), "role": user.role.value})


@bp.cli.command("create-admin")
@click.argument("email")
@click.argument("password")
@click.option("--name", default="Administrator")
def create_admin(email, password, name):
    """Create an ADMIN account."""
    user = User(name=name, email=email.lower(), role=UserRole.ADMIN)
    user.set_password(password)
    db.session.add(user)
    commit(db.session, "create admin")
    click.echo(f"Admin {user.email} created")


# ----------------------------------------------------------
# SPOT SEARCH (public)
# ----------------------------------------------------------
@bp.route("/api/spots", methods=["GET"])
def search_spots():
    listing = _registry().active_listing()
    filters = SpotFilters.from_args(request.args)
    return jsonify(filter_spots(listing, request.args.get("q", ""), filters))


@bp.route("/api/spots/<int:spot_id>", methods=["GET"])
def spot_detail(spot_id):
    return jsonify(spot_to_dict(_registry().get_spot(spot_id)))


# ----------------------------------------------------------
# OWNER SPOT CRUD
# ----------------------------------------------------------
@bp.route("/api/owner/spots", methods=["GET"])
@token_required
@roles_required("OWNER", "ADMIN")
def owner_spots(current_user):
    return jsonify([spot_to_dict(s) for s in _registry().owned_by(current_user)])


@bp.route("/api/owner/spots", methods=["POST"])
@token_required
@roles_required("OWNER", "ADMIN")
def create_spot(current_user):
    spot = _registry().create_spot(current_user, request.json or {})
    return jsonify(spot_to_dict(spot)), 201


@bp.route("/api/owner/spots/<int:spot_id>", methods=["PUT"])
@token_required
@roles_required("OWNER", "ADMIN")
def update_spot(current_user, spot_id):
    spot = _registry().update_spot(current_user, spot_id, request.json or {})
    return jsonify(spot_to_dict(spot))


@bp.route("/api/owner/spots/<int:spot_id>", methods=["DELETE"])
@token_required
@roles_required("OWNER", "ADMIN")
def delete_spot(current_user, spot_id):
    outcome = _registry().delete_spot(current_user, spot_id)
    return jsonify({"message": f"Spot {outcome}"})


# ----------------------------------------------------------
# VEHICLES
# ----------------------------------------------------------
@bp.route("/api/user/vehicles", methods=["GET"])
@token_required
def vehicles(current_user):
    return jsonify([vehicle_to_dict(v) for v in garage.list_vehicles(db.session, current_user)])


@bp.route("/api/user/vehicles", methods=["POST"])
@token_required
def add_vehicle(current_user):
    vehicle = garage.add_vehicle(db.session, current_user, request.json or {})
    return jsonify(vehicle_to_dict(vehicle)), 201


@bp.route("/api/user/vehicles/<int:vehicle_id>", methods=["DELETE"])
@token_required
def delete_vehicle(current_user, vehicle_id):
    garage.delete_vehicle(db.session, current_user, vehicle_id)
    return jsonify({"message": "Vehicle removed"})


# ----------------------------------------------------------
# BOOKINGS
# ----------------------------------------------------------
@bp.route("/api/bookings", methods=["POST"])
@token_required
def create_booking(current_user):
    data = request.json or {}
    booking = _ledger().create_booking(
        current_user,
        spot_id=data.get("spot_id"),
        vehicle_id=data.get("vehicle_id"),
        start_time=parse_when(data.get("start_time"), "Start time"),
        end_time=parse_when(data.get("end_time"), "End time"),
    )

    if current_app.config["SEND_BOOKING_EMAILS"]:
        from tasks import send_booking_confirmation
        try:
            send_booking_confirmation.delay(booking.id)
        except OperationalError:
            log.exception(f"Could not queue confirmation email for booking {booking.id}")

    return jsonify(booking_to_dict(booking)), 201


@bp.route("/api/bookings", methods=["GET"])
@token_required
def list_bookings(current_user):
    bookings = _ledger().list_bookings(
        current_user,
        status=request.args.get("status"),
        spot_id=request.args.get("spot_id", type=int),
    )
    return jsonify([booking_to_dict(b) for b in bookings])


@bp.route("/api/bookings/<int:booking_id>", methods=["GET"])
@token_required
def get_booking(current_user, booking_id):
    return jsonify(booking_to_dict(_ledger().get_visible_booking(current_user, booking_id)))


@bp.route("/api/bookings/<int:booking_id>/extend", methods=["POST"])
@token_required
def extend_booking(current_user, booking_id):
    return jsonify(booking_to_dict(_ledger().extend_booking(current_user, booking_id)))


@bp.route("/api/bookings/<int:booking_id>/cancel", methods=["POST"])
@token_required
def cancel_booking(current_user, booking_id):
    return jsonify(booking_to_dict(_ledger().cancel_booking(current_user, booking_id)))


@bp.route("/api/bookings/<int:booking_id>/complete", methods=["POST"])
@token_required
@roles_required("OWNER", "ADMIN")
def complete_booking(current_user, booking_id):
    return jsonify(booking_to_dict(_ledger().complete_booking(current_user, booking_id)))


# ----------------------------------------------------------
# ENTRY VALIDATION (attendant)
# ----------------------------------------------------------
@bp.route("/api/entry/validate", methods=["POST"])
@token_required
@roles_required("OWNER", "ADMIN")
def validate_entry(current_user):
    data = request.json or {}
    spot_id = data.get("spot_id")
    if spot_id not in (None, ""):
        try:
            spot_id = int(spot_id)
        except (TypeError, ValueError):
            raise ValidationError("spot_id must be numeric") from None
    else:
        spot_id = None

    validator = EntryValidator(db.session, _ledger())
    booking = validator.validate_entry(data.get("code"), spot_id=spot_id, attendant=current_user)
    return jsonify({
        "message": "Entry validated successfully!",
        "booking": booking_to_dict(booking),
    })


# ----------------------------------------------------------
# REVIEWS
# ----------------------------------------------------------
@bp.route("/api/spots/<int:spot_id>/reviews", methods=["GET"])
def spot_reviews(spot_id):
    _registry().get_spot(spot_id)
    return jsonify([review_to_dict(r) for r in garage.list_reviews(db.session, spot_id)])


@bp.route("/api/spots/<int:spot_id>/reviews", methods=["POST"])
@token_required
def add_review(current_user, spot_id):
    data = request.json or {}
    review = garage.add_review(
        db.session, _registry(), current_user, spot_id,
        rating=data.get("rating"), comment=data.get("comment"),
    )
    return jsonify(review_to_dict(review)), 201
