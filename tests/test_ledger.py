from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from sqlalchemy import update

from app_factory import db
from parkspot.errors import (
    AlreadyExtendedError, ConflictError, ForbiddenError, InvalidTransitionError, ValidationError,
)
from parkspot.ledger import BookingLedger
from parkspot.models import LIVE_STATUSES, Booking, BookingStatus, ParkingSpot, PriceType, SpotStatus

from conftest import T0, make_spot, make_vehicle


def activate(ledger, booking):
    return ledger.activate(booking)


# ----------------------------------------------------------
# create
# ----------------------------------------------------------
def test_create_booking_is_pending_with_credentials(booking, spot):
    assert booking.status == BookingStatus.PENDING
    assert booking.qr_code.startswith("QR-")
    assert len(booking.pin) == 4
    assert booking.total_cost == Decimal("20.00")
    assert booking.is_extended is False
    assert spot.available_slots == 2


def test_reserved_end_time_is_never_before_end_time(booking):
    assert booking.reserved_end_time >= booking.end_time
    assert booking.reserved_end_time - booking.end_time == timedelta(minutes=15)


def test_read_back_keeps_issued_credentials(ledger, booking):
    qr_code, pin, cost = booking.qr_code, booking.pin, booking.total_cost
    db.session.expire_all()

    stored = ledger.get_booking(booking.id)
    assert (stored.qr_code, stored.pin, stored.total_cost) == (qr_code, pin, cost)


def test_day_rate_booking_rounds_up(ledger, customer, owner, vehicle):
    daily = make_spot(owner, name="Airport Long Stay", price=40, price_type=PriceType.DAY)
    booking = ledger.create_booking(customer, daily.id, vehicle.id, T0, T0 + timedelta(hours=25))
    assert booking.total_cost == Decimal("80.00")


def test_ids_may_arrive_as_strings(ledger, customer, spot, vehicle):
    booking = ledger.create_booking(customer, str(spot.id), str(vehicle.id), T0, T0 + timedelta(hours=1))
    assert booking.spot_id == spot.id


@pytest.mark.parametrize("hours", [0, -2])
def test_end_not_after_start_is_rejected(ledger, customer, spot, vehicle, hours):
    with pytest.raises(ValidationError):
        ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=hours))
    assert Booking.query.count() == 0


def test_missing_vehicle_is_rejected(ledger, customer, spot):
    with pytest.raises(ValidationError, match="vehicle"):
        ledger.create_booking(customer, spot.id, None, T0, T0 + timedelta(hours=1))


def test_someone_elses_vehicle_is_rejected(ledger, customer, other_customer, spot):
    theirs = make_vehicle(other_customer, plate="MH12XY9999")
    with pytest.raises(ValidationError):
        ledger.create_booking(customer, spot.id, theirs.id, T0, T0 + timedelta(hours=1))


@pytest.mark.parametrize("status", [SpotStatus.INACTIVE, SpotStatus.MAINTENANCE])
def test_spot_must_be_active(ledger, customer, owner, vehicle, status):
    closed = make_spot(owner, status=status)
    with pytest.raises(ValidationError):
        ledger.create_booking(customer, closed.id, vehicle.id, T0, T0 + timedelta(hours=1))


def test_unknown_spot_is_rejected(ledger, customer, vehicle):
    with pytest.raises(ValidationError):
        ledger.create_booking(customer, 9999, vehicle.id, T0, T0 + timedelta(hours=1))


def test_full_spot_is_rejected(ledger, customer, owner, vehicle):
    full = make_spot(owner, total_slots=1, available_slots=1)
    ledger.create_booking(customer, full.id, vehicle.id, T0, T0 + timedelta(hours=1))
    with pytest.raises(ValidationError, match="free slots"):
        ledger.create_booking(customer, full.id, vehicle.id, T0, T0 + timedelta(hours=1))


def test_last_slot_taken_by_another_writer_is_not_double_booked(ledger, customer, owner, vehicle):
    single = make_spot(owner, name="Single Bay", total_slots=1, available_slots=1)
    assert single.available_slots == 1

    # a competing booking takes the only slot behind this session's back
    db.session.execute(
        update(ParkingSpot)
        .where(ParkingSpot.id == single.id)
        .values(available_slots=0)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ValidationError, match="free slots"):
        ledger.create_booking(customer, single.id, vehicle.id, T0, T0 + timedelta(hours=1))

    db.session.expire_all()
    assert db.session.query(Booking).filter_by(spot_id=single.id).count() == 0
    assert db.session.get(ParkingSpot, single.id).available_slots == 0


# ----------------------------------------------------------
# extend
# ----------------------------------------------------------
def test_extend_pushes_both_deadlines_once(ledger, customer, booking):
    activate(ledger, booking)
    end, reserved = booking.end_time, booking.reserved_end_time

    extended = ledger.extend_booking(customer, booking.id)
    assert extended.status == BookingStatus.EXTENDED
    assert extended.is_extended is True
    assert extended.extended_at is not None
    assert extended.end_time == end + timedelta(hours=1)
    assert extended.reserved_end_time == reserved + timedelta(hours=1)
    assert extended.reserved_end_time >= extended.end_time


def test_second_extension_fails(ledger, customer, booking):
    activate(ledger, booking)
    ledger.extend_booking(customer, booking.id)
    end_after_first = booking.end_time

    with pytest.raises(AlreadyExtendedError):
        ledger.extend_booking(customer, booking.id)

    db.session.expire_all()
    stored = ledger.get_booking(booking.id)
    assert stored.is_extended is True
    assert stored.end_time == end_after_first


def test_pending_booking_can_not_be_extended(ledger, customer, booking):
    with pytest.raises(InvalidTransitionError):
        ledger.extend_booking(customer, booking.id)


def test_only_the_booker_can_extend(ledger, other_customer, booking):
    activate(ledger, booking)
    with pytest.raises(ForbiddenError):
        ledger.extend_booking(other_customer, booking.id)


# ----------------------------------------------------------
# cancel / complete
# ----------------------------------------------------------
def test_cancel_releases_slot(ledger, customer, booking, spot):
    assert spot.available_slots == 2
    cancelled = ledger.cancel_booking(customer, booking.id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert spot.available_slots == 3


def test_admin_may_cancel_any_booking(ledger, admin, booking):
    assert ledger.cancel_booking(admin, booking.id).status == BookingStatus.CANCELLED


def test_cancel_by_stranger_is_forbidden(ledger, other_customer, booking):
    with pytest.raises(ForbiddenError):
        ledger.cancel_booking(other_customer, booking.id)
    assert booking.status == BookingStatus.PENDING


def test_terminal_bookings_can_not_be_cancelled(ledger, customer, owner, booking):
    activate(ledger, booking)
    ledger.complete_booking(owner, booking.id)
    with pytest.raises(InvalidTransitionError):
        ledger.cancel_booking(customer, booking.id)
    assert booking.status == BookingStatus.COMPLETED


def test_cancel_twice_fails(ledger, customer, booking):
    ledger.cancel_booking(customer, booking.id)
    with pytest.raises(InvalidTransitionError):
        ledger.cancel_booking(customer, booking.id)


def test_complete_stamps_actual_end_and_frees_slot(ledger, owner, booking, spot):
    activate(ledger, booking)
    done = ledger.complete_booking(owner, booking.id, now=T0 + timedelta(hours=1))
    assert done.status == BookingStatus.COMPLETED
    assert done.actual_end_time == T0 + timedelta(hours=1)
    assert spot.available_slots == 3


def test_only_spot_owner_completes(ledger, other_owner, booking):
    activate(ledger, booking)
    with pytest.raises(ForbiddenError):
        ledger.complete_booking(other_owner, booking.id)


def test_pending_booking_can_not_be_completed(ledger, owner, booking):
    with pytest.raises(InvalidTransitionError):
        ledger.complete_booking(owner, booking.id)


# ----------------------------------------------------------
# sweep
# ----------------------------------------------------------
def test_sweep_completes_overdue_and_cancels_no_shows(ledger, customer, spot, vehicle):
    entered = ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=1))
    no_show = ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=1))
    later = ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=5))
    activate(ledger, entered)
    assert spot.available_slots == 0

    counts = ledger.sweep_overdue(now=T0 + timedelta(hours=2))

    assert counts == {"completed": 1, "cancelled": 1}
    assert entered.status == BookingStatus.COMPLETED
    assert entered.actual_end_time == T0 + timedelta(hours=2)
    assert no_show.status == BookingStatus.CANCELLED
    assert later.status == BookingStatus.PENDING
    assert spot.available_slots == 2


def test_sweep_with_nothing_overdue(ledger, booking):
    assert ledger.sweep_overdue(now=T0) == {"completed": 0, "cancelled": 0}


# ----------------------------------------------------------
# listing and concurrency
# ----------------------------------------------------------
def test_listing_is_scoped_by_role(ledger, customer, other_customer, owner, other_owner, admin,
                                   spot, vehicle):
    mine = ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=1))
    other_spot = make_spot(other_owner, name="Elsewhere")
    theirs = ledger.create_booking(
        other_customer, other_spot.id, make_vehicle(other_customer, "X1").id,
        T0, T0 + timedelta(hours=1),
    )

    assert ledger.list_bookings(customer) == [mine]
    assert ledger.list_bookings(owner) == [mine]
    assert ledger.list_bookings(other_owner) == [theirs]
    assert set(ledger.list_bookings(admin)) == {mine, theirs}
    assert ledger.list_bookings(admin, status="pending", spot_id=other_spot.id) == [theirs]


def test_listing_rejects_unknown_status(ledger, customer):
    with pytest.raises(ValidationError):
        ledger.list_bookings(customer, status="parked")


def test_concurrent_update_surfaces_as_conflict(ledger, customer, booking):
    activate(ledger, booking)
    assert booking.version == 2

    # another writer bumps the row behind this session's back
    db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(version=Booking.version + 1)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConflictError):
        ledger.extend_booking(customer, booking.id)

    db.session.expire_all()
    assert ledger.get_booking(booking.id).is_extended is False


def test_status_strings_normalize_to_one_enum():
    assert BookingStatus.parse("pending") is BookingStatus.PENDING
    assert BookingStatus.parse(" Extended ") is BookingStatus.EXTENDED
    assert BookingStatus.parse("active") in LIVE_STATUSES
    with pytest.raises(ValueError):
        BookingStatus.parse("parked")


def test_reads_go_through_the_given_session(registry, customer, booking):
    spy = mock.Mock(wraps=db.session)
    ledger = BookingLedger(spy, registry)

    assert ledger.list_bookings(customer) == [booking]
    assert ledger.get_booking(booking.id) is booking
    assert spy.query.called and spy.get.called
