# parkspot/ledger.py
import logging
from datetime import timedelta

from parkspot.codes import issue_credentials
from parkspot.errors import (
    AlreadyExtendedError, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError,
)
from parkspot.models import (
    LIVE_STATUSES, Booking, BookingStatus, ParkingSpot, SpotStatus, UserRole, Vehicle, utcnow,
)
from parkspot.persistence import commit, run_query
from parkspot.pricing import compute_total_cost

log = logging.getLogger(__name__)

MAX_ISSUE_ATTEMPTS = 10

CANCELLABLE = frozenset({BookingStatus.PENDING, BookingStatus.ACTIVE, BookingStatus.EXTENDED})
COMPLETABLE = frozenset({BookingStatus.ACTIVE, BookingStatus.EXTENDED})


def _as_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}") from None


class BookingLedger:
    """
    Creates bookings and moves them through their lifecycle:

        PENDING -> ACTIVE -> (EXTENDED) -> COMPLETED
        PENDING | ACTIVE | EXTENDED -> CANCELLED

    Every transition is one committed update of one booking row (plus the
    spot's slot counter where a slot is taken or given back).
    """

    def __init__(self, session, spots, extension_hours=1, grace_minutes=15):
        self.session = session
        self.spots = spots
        self.extension = timedelta(hours=extension_hours)
        self.grace = timedelta(minutes=grace_minutes)

    @classmethod
    def from_config(cls, session, spots, config):
        return cls(
            session,
            spots,
            extension_hours=config["BOOKING_EXTENSION_HOURS"],
            grace_minutes=config["RESERVATION_GRACE_MINUTES"],
        )

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_booking(self, booking_id):
        booking = run_query(self.session, "load booking",
                            lambda: self.session.get(Booking, booking_id))
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def get_visible_booking(self, actor, booking_id):
        booking = self.get_booking(booking_id)
        if not self._can_see(actor, booking):
            # same answer as a missing booking
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(self, actor, status=None, spot_id=None):
        query = self.session.query(Booking)
        if actor.role == UserRole.CUSTOMER:
            query = query.filter(Booking.user_id == actor.id)
        elif actor.role == UserRole.OWNER:
            query = query.join(ParkingSpot).filter(
                (ParkingSpot.owner_id == actor.id) | (Booking.user_id == actor.id)
            )

        if status:
            try:
                query = query.filter(Booking.status == BookingStatus.parse(status))
            except ValueError:
                raise ValidationError("Unknown booking status") from None
        if spot_id is not None:
            query = query.filter(Booking.spot_id == spot_id)

        return run_query(self.session, "list bookings", lambda: (
            query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()
        ))

    def _can_see(self, actor, booking):
        return (
            actor.is_admin
            or booking.user_id == actor.id
            or booking.spot.owner_id == actor.id
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    def create_booking(self, user, spot_id, vehicle_id, start_time, end_time):
        if vehicle_id in (None, ""):
            raise ValidationError("Please select a vehicle")
        if start_time is None or end_time is None:
            raise ValidationError("Start and end time are required")
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")

        spot_id = _as_id(spot_id, "parking spot")
        vehicle_id = _as_id(vehicle_id, "vehicle")

        try:
            spot = self.spots.get_spot(spot_id)
        except NotFoundError:
            raise ValidationError("Parking spot not found") from None
        if spot.status != SpotStatus.ACTIVE:
            raise ValidationError("Parking spot is not accepting bookings")

        vehicle = run_query(self.session, "load vehicle",
                            lambda: self.session.get(Vehicle, vehicle_id))
        if vehicle is None or vehicle.user_id != user.id:
            raise ValidationError("Vehicle not found")

        total_cost = compute_total_cost(spot.price, spot.price_type, start_time, end_time)
        if total_cost <= 0:
            raise ValidationError("Booking cost must be greater than zero")

        qr_code, pin = self._issue_unique_credentials()
        self.spots.reserve_slot(spot)

        booking = Booking(
            spot_id=spot.id,
            user_id=user.id,
            vehicle_id=vehicle.id,
            start_time=start_time,
            end_time=end_time,
            reserved_end_time=end_time + self.grace,
            total_cost=total_cost,
            status=BookingStatus.PENDING,
            qr_code=qr_code,
            pin=pin,
            is_extended=False,
        )
        self.session.add(booking)
        commit(self.session, "create booking")
        log.info(f"Booking {booking.id} created for user {user.id} at spot {spot.id} ({total_cost})")
        return booking

    def _issue_unique_credentials(self):
        """QR tokens are unique over all bookings, PINs over live ones."""
        for _ in range(MAX_ISSUE_ATTEMPTS):
            qr_code, pin = issue_credentials()
            clash = self.session.query(Booking).filter(
                (Booking.qr_code == qr_code)
                | ((Booking.pin == pin) & Booking.status.in_(LIVE_STATUSES))
            ).first()
            if clash is None:
                return qr_code, pin
            log.info("Credential collision on issue, drawing again")
        raise ValidationError("Could not issue an entry code, please retry")

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def extend_booking(self, user, booking_id, now=None):
        booking = self.get_booking(booking_id)
        self._check_booker(user, booking)

        if booking.is_extended:
            raise AlreadyExtendedError()
        if booking.status != BookingStatus.ACTIVE:
            raise InvalidTransitionError("Only an active booking can be extended")

        booking.end_time = booking.end_time + self.extension
        booking.reserved_end_time = booking.reserved_end_time + self.extension
        booking.is_extended = True
        booking.extended_at = now or utcnow()
        booking.status = BookingStatus.EXTENDED
        commit(self.session, "extend booking")
        log.info(f"Booking {booking.id} extended to {booking.end_time.isoformat()}")
        return booking

    def cancel_booking(self, user, booking_id):
        booking = self.get_booking(booking_id)
        self._check_booker(user, booking)

        if booking.status not in CANCELLABLE:
            raise InvalidTransitionError(
                f"A {booking.status.value.lower()} booking can not be cancelled"
            )

        booking.status = BookingStatus.CANCELLED
        self.spots.release_slot(booking.spot)
        commit(self.session, "cancel booking")
        log.info(f"Booking {booking.id} cancelled by user {user.id}")
        return booking

    def complete_booking(self, user, booking_id, now=None):
        booking = self.get_booking(booking_id)
        if not user.is_admin and booking.spot.owner_id != user.id:
            raise ForbiddenError("Only the spot owner can complete a booking")

        self._complete(booking, now or utcnow())
        commit(self.session, "complete booking")
        log.info(f"Booking {booking.id} completed by user {user.id}")
        return booking

    def activate(self, booking):
        """PENDING -> ACTIVE, used on first validated entry."""
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransitionError("Only a pending booking can be activated")
        booking.status = BookingStatus.ACTIVE
        commit(self.session, "activate booking")
        log.info(f"Booking {booking.id} activated on entry")
        return booking

    def sweep_overdue(self, now=None):
        """
        Close bookings whose reserved end time has passed: occupied ones are
        completed, never-entered ones are cancelled. Returns the counts.
        """
        now = now or utcnow()
        overdue = run_query(self.session, "find overdue bookings", lambda: (
            self.session.query(Booking).filter(
                Booking.status.in_(LIVE_STATUSES), Booking.reserved_end_time < now
            ).all()
        ))

        completed = cancelled = 0
        for booking in overdue:
            if booking.status == BookingStatus.PENDING:
                booking.status = BookingStatus.CANCELLED
                self.spots.release_slot(booking.spot)
                cancelled += 1
            else:
                self._complete(booking, now)
                completed += 1

        if overdue:
            commit(self.session, "sweep overdue bookings")
            log.info(f"Sweep closed {completed} completed and {cancelled} no-show bookings")
        return {"completed": completed, "cancelled": cancelled}

    def _complete(self, booking, now):
        if booking.status not in COMPLETABLE:
            raise InvalidTransitionError("Only an active booking can be completed")
        booking.status = BookingStatus.COMPLETED
        booking.actual_end_time = now
        self.spots.release_slot(booking.spot)

    def _check_booker(self, user, booking):
        if not user.is_admin and booking.user_id != user.id:
            raise ForbiddenError("You do not own this booking")
