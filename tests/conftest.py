from datetime import datetime, timedelta

import pytest

from app_factory import cache, create_app, db
from parkspot.auth import create_token
from parkspot.ledger import BookingLedger
from parkspot.models import ParkingSpot, PriceType, SpotStatus, User, UserRole, Vehicle
from parkspot.spots import SpotRegistry
from parkspot.validator import EntryValidator

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret-key-long-enough-for-hs256",
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "CACHE_TYPE": "SimpleCache",
    "MAIL_SUPPRESS_SEND": True,
    "MAIL_DEFAULT_SENDER": "no-reply@parkspot.test",
    "SEND_BOOKING_EMAILS": False,
    "BOOKING_EXTENSION_HOURS": 1,
    "RESERVATION_GRACE_MINUTES": 15,
}

# a fixed Monday morning, far enough ahead to never be "now"
T0 = datetime(2030, 1, 7, 9, 0)


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(name, role=UserRole.CUSTOMER):
    user = User(name=name, email=f"{name.lower()}@example.com", role=role)
    user.set_password("secret123")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def owner(app):
    return make_user("Olivia", UserRole.OWNER)


@pytest.fixture
def other_owner(app):
    return make_user("Oscar", UserRole.OWNER)


@pytest.fixture
def admin(app):
    return make_user("Ada", UserRole.ADMIN)


@pytest.fixture
def customer(app):
    return make_user("Casey")


@pytest.fixture
def other_customer(app):
    return make_user("Charlie")


def make_spot(owner, **overrides):
    fields = dict(
        owner_id=owner.id,
        name="Central Plaza Parking",
        address="12 Market Street",
        price=10,
        price_type=PriceType.HOUR,
        total_slots=3,
        available_slots=3,
        status=SpotStatus.ACTIVE,
        amenities=["EV Charging", "CCTV Security"],
    )
    fields.update(overrides)
    spot = ParkingSpot(**fields)
    db.session.add(spot)
    db.session.commit()
    return spot


@pytest.fixture
def spot(owner):
    return make_spot(owner)


def make_vehicle(user, plate="KA01AB1234"):
    vehicle = Vehicle(user_id=user.id, make="Honda", model="City", license_plate=plate, color="Blue")
    db.session.add(vehicle)
    db.session.commit()
    return vehicle


@pytest.fixture
def vehicle(customer):
    return make_vehicle(customer)


@pytest.fixture
def registry(app):
    return SpotRegistry(db.session, cache)


@pytest.fixture
def ledger(app, registry):
    return BookingLedger.from_config(db.session, registry, app.config)


@pytest.fixture
def validator(app, ledger):
    return EntryValidator(db.session, ledger)


@pytest.fixture
def booking(ledger, customer, spot, vehicle):
    return ledger.create_booking(customer, spot.id, vehicle.id, T0, T0 + timedelta(hours=2))


@pytest.fixture
def auth_header():
    def make(user):
        return {"Authorization": f"Bearer {create_token(user)}"}
    return make
