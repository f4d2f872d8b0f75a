# parkspot/models.py
import enum
from datetime import datetime, timezone

from app_factory import db


def utcnow():
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class _ParsableEnum(str, enum.Enum):
    @classmethod
    def parse(cls, value):
        """Normalize a raw string ('pending', 'PENDING', ' Pending ') to a member."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown {cls.__name__}: {value!r}") from None


class UserRole(_ParsableEnum):
    CUSTOMER = "CUSTOMER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"


class SpotStatus(_ParsableEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(_ParsableEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXTENDED = "EXTENDED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.ACTIVE, BookingStatus.EXTENDED)


class PriceType(enum.Enum):
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown price type: {value!r}") from None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    created_at = db.Column(db.DateTime, default=utcnow)

    vehicles = db.relationship("Vehicle", backref="owner", lazy=True)
    bookings = db.relationship("Booking", backref="user", lazy=True)

    def set_password(self, pwd):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(pwd)

    def check_password(self, pwd):
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, pwd or "")

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN


class Vehicle(db.Model):
    __tablename__ = "vehicles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    make = db.Column(db.String(60), nullable=False)
    model = db.Column(db.String(60), nullable=False)
    license_plate = db.Column(db.String(20), nullable=False)
    color = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class ParkingSpot(db.Model):
    __tablename__ = "parking_spots"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    price_type = db.Column(
        db.Enum(PriceType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PriceType.HOUR,
    )
    total_slots = db.Column(db.Integer, nullable=False)
    available_slots = db.Column(db.Integer, nullable=False)
    status = db.Column(db.Enum(SpotStatus), nullable=False, default=SpotStatus.ACTIVE)
    amenities = db.Column(db.JSON, nullable=False, default=list)
    opening_hours = db.Column(db.String(60), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    rating = db.Column(db.Float, nullable=False, default=0.0)
    review_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    version = db.Column(db.Integer, nullable=False)

    owner = db.relationship("User", backref="spots", lazy=True)
    bookings = db.relationship("Booking", backref="spot", lazy=True)
    reviews = db.relationship("Review", backref="spot", lazy=True)

    __table_args__ = (
        db.CheckConstraint("available_slots >= 0 AND available_slots <= total_slots",
                           name="ck_spot_slot_bounds"),
    )
    # slot counter updates bump this too, so a stale owner edit conflicts
    __mapper_args__ = {"version_id_col": version}


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    spot_id = db.Column(db.Integer, db.ForeignKey("parking_spots.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    reserved_end_time = db.Column(db.DateTime, nullable=False)
    actual_end_time = db.Column(db.DateTime, nullable=True)
    total_cost = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    qr_code = db.Column(db.String(40), unique=True, nullable=False)
    pin = db.Column(db.String(4), nullable=False, index=True)
    is_extended = db.Column(db.Boolean, nullable=False, default=False)
    extended_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    version = db.Column(db.Integer, nullable=False)

    vehicle = db.relationship("Vehicle", lazy=True)

    # UPDATEs carry "WHERE version = :old"; a lost race raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)
    spot_id = db.Column(db.Integer, db.ForeignKey("parking_spots.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("spot_id", "user_id", name="uq_review_spot_user"),
    )
