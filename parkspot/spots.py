# parkspot/spots.py
import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import update

from parkspot.errors import ForbiddenError, NotFoundError, ValidationError
from parkspot.models import (
    LIVE_STATUSES, Booking, ParkingSpot, PriceType, Review, SpotStatus, UserRole,
)
from parkspot.persistence import commit, run_query

log = logging.getLogger(__name__)

SPOT_LISTING_CACHE_KEY = "spots:active"


def spot_to_dict(spot):
    return {
        "id": spot.id,
        "owner_id": spot.owner_id,
        "name": spot.name,
        "description": spot.description or "",
        "address": spot.address,
        "price": float(spot.price),
        "price_type": spot.price_type.value,
        "total_slots": spot.total_slots,
        "available_slots": spot.available_slots,
        "status": spot.status.value,
        "amenities": list(spot.amenities or []),
        "opening_hours": spot.opening_hours,
        "phone": spot.phone,
        "rating": spot.rating,
        "review_count": spot.review_count,
        "created_at": spot.created_at.isoformat() if spot.created_at else None,
    }


def _parse_price(value):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError("Price must be numeric") from None
    if price <= 0:
        raise ValidationError("Price must be > 0")
    return price


def _parse_slots(value):
    try:
        slots = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Slots must be numeric") from None
    if slots <= 0:
        raise ValidationError("Number of slots must be > 0")
    return slots


def _parse_amenities(value):
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(a, str) for a in value):
        raise ValidationError("Amenities must be a list of strings")
    # dedupe, keep order
    return list(dict.fromkeys(a.strip() for a in value if a.strip()))


def _parse_enum(enum_cls, value, label):
    try:
        return enum_cls.parse(value)
    except ValueError:
        raise ValidationError(f"Invalid {label}") from None


class SpotRegistry:
    """Owner-side spot management plus the cached public listing."""

    def __init__(self, session, cache):
        self.session = session
        self.cache = cache

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def active_listing(self):
        listing = self.cache.get(SPOT_LISTING_CACHE_KEY)
        if listing is not None:
            return listing

        spots = run_query(self.session, "list active spots", lambda: (
            self.session.query(ParkingSpot).filter_by(status=SpotStatus.ACTIVE)
            .order_by(ParkingSpot.created_at.desc(), ParkingSpot.id.desc())
            .all()
        ))
        listing = [spot_to_dict(s) for s in spots]
        self.cache.set(SPOT_LISTING_CACHE_KEY, listing)
        return listing

    def invalidate(self):
        self.cache.delete(SPOT_LISTING_CACHE_KEY)

    def get_spot(self, spot_id):
        spot = run_query(self.session, "load spot", lambda: self.session.get(ParkingSpot, spot_id))
        if spot is None:
            raise NotFoundError("Parking spot not found")
        return spot

    def owned_by(self, actor):
        query = self.session.query(ParkingSpot)
        if not actor.is_admin:
            query = query.filter_by(owner_id=actor.id)
        return run_query(self.session, "list owner spots",
                         lambda: query.order_by(ParkingSpot.id).all())

    # ------------------------------------------------------------------
    # owner CRUD
    # ------------------------------------------------------------------
    def _check_owner(self, actor, spot):
        if not actor.is_admin and spot.owner_id != actor.id:
            raise ForbiddenError("You do not own this parking spot")

    def create_spot(self, actor, data):
        if actor.role not in (UserRole.OWNER, UserRole.ADMIN):
            raise ForbiddenError("Only owners can list parking spots")

        required = ["name", "address", "price", "total_slots"]
        if any(data.get(k) in ("", None) for k in required):
            raise ValidationError("All fields are required")

        total = _parse_slots(data["total_slots"])
        spot = ParkingSpot(
            owner_id=actor.id,
            name=data["name"].strip(),
            description=data.get("description"),
            address=data["address"].strip(),
            price=_parse_price(data["price"]),
            price_type=_parse_enum(PriceType, data.get("price_type", "hour"), "price type"),
            total_slots=total,
            available_slots=total,
            status=_parse_enum(SpotStatus, data.get("status", "ACTIVE"), "status"),
            amenities=_parse_amenities(data.get("amenities")),
            opening_hours=data.get("opening_hours"),
            phone=data.get("phone"),
        )
        self.session.add(spot)
        commit(self.session, "create spot")
        self.invalidate()
        log.info(f"Spot {spot.id} created by user {actor.id}")
        return spot

    def update_spot(self, actor, spot_id, data):
        spot = self.get_spot(spot_id)
        self._check_owner(actor, spot)

        for key in ("name", "address", "description", "opening_hours", "phone"):
            if key in data and data[key] is not None:
                setattr(spot, key, data[key])

        if data.get("price") not in ("", None):
            spot.price = _parse_price(data["price"])
        if data.get("price_type") not in ("", None):
            spot.price_type = _parse_enum(PriceType, data["price_type"], "price type")
        if data.get("status") not in ("", None):
            spot.status = _parse_enum(SpotStatus, data["status"], "status")
        if "amenities" in data:
            spot.amenities = _parse_amenities(data["amenities"])

        # Handle change in total number of slots
        if data.get("total_slots") not in ("", None):
            new_total = _parse_slots(data["total_slots"])
            occupied = spot.total_slots - spot.available_slots
            if new_total < occupied:
                raise ValidationError("Cannot reduce slots below the number currently booked")
            spot.available_slots = new_total - occupied
            spot.total_slots = new_total

        commit(self.session, "update spot")
        self.invalidate()
        log.info(f"Spot {spot.id} updated by user {actor.id}")
        return spot

    def delete_spot(self, actor, spot_id):
        """
        Remove a spot. Spots with booking history are deactivated instead,
        because bookings are kept for reporting. Returns ``"deleted"`` or
        ``"deactivated"``.
        """
        spot = self.get_spot(spot_id)
        self._check_owner(actor, spot)

        live = self.session.query(Booking).filter(
            Booking.spot_id == spot.id, Booking.status.in_(LIVE_STATUSES)
        ).count()
        if live:
            raise ValidationError("Cannot delete, spot has live bookings")

        if self.session.query(Booking).filter_by(spot_id=spot.id).count():
            spot.status = SpotStatus.INACTIVE
            outcome = "deactivated"
        else:
            self.session.query(Review).filter_by(spot_id=spot.id).delete()
            self.session.delete(spot)
            outcome = "deleted"

        commit(self.session, "delete spot")
        self.invalidate()
        log.info(f"Spot {spot_id} {outcome} by user {actor.id}")
        return outcome

    # ------------------------------------------------------------------
    # slot counters, committed by the caller
    # ------------------------------------------------------------------
    def _shift_slots(self, spot, delta, guard, what):
        """
        Move ``available_slots`` by ``delta`` in one UPDATE, only where
        ``guard`` still holds in the database. Returns whether a row changed.
        """
        # pending booking changes are flushed by the caller's commit
        with self.session.no_autoflush:
            stmt = (
                update(ParkingSpot)
                .where(ParkingSpot.id == spot.id, guard)
                .values(
                    available_slots=ParkingSpot.available_slots + delta,
                    version=ParkingSpot.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            changed = run_query(self.session, what, lambda: self.session.execute(stmt).rowcount)
        self.session.expire(spot, ["available_slots", "version"])
        self.invalidate()
        return bool(changed)

    def reserve_slot(self, spot):
        if not self._shift_slots(spot, -1, ParkingSpot.available_slots > 0, "reserve slot"):
            raise ValidationError("No free slots at this parking spot")

    def release_slot(self, spot):
        self._shift_slots(spot, 1, ParkingSpot.available_slots < ParkingSpot.total_slots,
                          "release slot")
