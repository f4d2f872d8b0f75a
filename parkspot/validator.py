# parkspot/validator.py
import logging

from parkspot.codes import looks_like_qr
from parkspot.errors import (
    AmbiguousCodeError, ExpiredError, NotFoundError, NotStartedError, ValidationError,
)
from parkspot.models import LIVE_STATUSES, Booking, BookingStatus, UserRole, utcnow
from parkspot.persistence import run_query

log = logging.getLogger(__name__)


class EntryValidator:
    """Checks a presented QR token or PIN at the gate."""

    def __init__(self, session, ledger):
        self.session = session
        self.ledger = ledger

    def find_live_booking(self, code):
        """
        Resolve ``code`` to the single live booking it belongs to, or None.

        QR tokens and PINs are searched separately; if the code hits more than
        one booking the match is rejected rather than guessed.
        """
        def lookup():
            live = Booking.status.in_(LIVE_STATUSES)
            bookings = self.session.query(Booking)
            by_qr = bookings.filter(live, Booking.qr_code == code).all()
            by_pin = bookings.filter(live, Booking.pin == code).all()
            return by_qr, by_pin

        by_qr, by_pin = run_query(self.session, "look up entry code", lookup)
        matches = {b.id: b for b in by_qr + by_pin}
        if len(matches) > 1:
            log.warning(f"Entry code matched {len(matches)} live bookings, rejecting")
            raise AmbiguousCodeError()
        return next(iter(matches.values()), None)

    def validate_entry(self, code, now=None, spot_id=None, attendant=None):
        code = (code or "").strip()
        if not code:
            raise ValidationError("Please enter a QR code or PIN")

        booking = self.find_live_booking(code)
        if booking is None or (spot_id is not None and booking.spot_id != spot_id):
            log.warning("Entry rejected: code matches no live booking")
            raise NotFoundError("Invalid QR code or PIN")

        # another owner's booking looks the same as no booking at all
        if attendant is not None and attendant.role != UserRole.ADMIN \
                and booking.spot.owner_id != attendant.id:
            log.warning(f"Entry rejected: user {attendant.id} does not own spot {booking.spot_id}")
            raise NotFoundError("Invalid QR code or PIN")

        now = now or utcnow()
        if now < booking.start_time:
            log.warning(f"Entry rejected for booking {booking.id}: not started")
            raise NotStartedError()
        if now > booking.reserved_end_time:
            log.warning(f"Entry rejected for booking {booking.id}: expired")
            raise ExpiredError()

        if booking.status == BookingStatus.PENDING:
            self.ledger.activate(booking)

        kind = "QR code" if looks_like_qr(code) else "PIN"
        log.info(f"Entry validated for booking {booking.id} by {kind}")
        return booking
