# parkspot/garage.py
import logging

from sqlalchemy import func

from parkspot.errors import NotFoundError, ValidationError
from parkspot.models import LIVE_STATUSES, Booking, Review, Vehicle
from parkspot.persistence import commit, run_query

log = logging.getLogger(__name__)


# ----------------------------------------------------------
# VEHICLES
# ----------------------------------------------------------
def list_vehicles(session, user):
    return run_query(session, "list vehicles", lambda: (
        session.query(Vehicle).filter_by(user_id=user.id).order_by(Vehicle.created_at.desc()).all()
    ))


def add_vehicle(session, user, data):
    make = (data.get("make") or "").strip()
    model = (data.get("model") or "").strip()
    plate = (data.get("license_plate") or "").strip().upper()
    if not make or not model or not plate:
        raise ValidationError("Make, model and license plate are required")

    vehicle = Vehicle(
        user_id=user.id,
        make=make,
        model=model,
        license_plate=plate,
        color=(data.get("color") or "").strip() or None,
    )
    session.add(vehicle)
    commit(session, "add vehicle")
    return vehicle


def delete_vehicle(session, user, vehicle_id):
    vehicle = session.get(Vehicle, vehicle_id)
    if vehicle is None or vehicle.user_id != user.id:
        raise NotFoundError("Vehicle not found")

    live = session.query(Booking).filter(
        Booking.vehicle_id == vehicle.id, Booking.status.in_(LIVE_STATUSES)
    ).count()
    if live:
        raise ValidationError("Vehicle has live bookings")
    if session.query(Booking).filter_by(vehicle_id=vehicle.id).count():
        raise ValidationError("Vehicle has booking history and can not be removed")

    session.delete(vehicle)
    commit(session, "delete vehicle")


# ----------------------------------------------------------
# REVIEWS
# ----------------------------------------------------------
def list_reviews(session, spot_id):
    return run_query(session, "list reviews", lambda: (
        session.query(Review).filter_by(spot_id=spot_id).order_by(Review.created_at.desc()).all()
    ))


def add_review(session, registry, user, spot_id, rating, comment=None):
    """Store a 1-5 star review and refresh the spot's rating aggregate."""
    spot = registry.get_spot(spot_id)

    try:
        rating = int(rating)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be a number from 1 to 5") from None
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be a number from 1 to 5")

    if session.query(Review).filter_by(spot_id=spot.id, user_id=user.id).first():
        raise ValidationError("You have already reviewed this parking spot")

    review = Review(spot_id=spot.id, user_id=user.id, rating=rating, comment=comment)
    session.add(review)
    session.flush()

    avg, count = session.query(func.avg(Review.rating), func.count(Review.id)) \
        .filter(Review.spot_id == spot.id).one()
    spot.rating = round(float(avg), 1)
    spot.review_count = count

    commit(session, "add review")
    registry.invalidate()
    log.info(f"Spot {spot.id} rated {rating} by user {user.id}, now {spot.rating}")
    return review
