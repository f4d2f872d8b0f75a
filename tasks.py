# tasks.py
import logging

from flask import current_app

from app_factory import cache, db
from celery_app import celery
from mail_helper import send_booking_confirmation_email
from parkspot.ledger import BookingLedger
from parkspot.models import Booking
from parkspot.spots import SpotRegistry

log = logging.getLogger(__name__)


# ======================
# OVERDUE SWEEP (beat)
# ======================
@celery.task
def sweep_overdue_bookings():
    """
    Complete occupied bookings past their reserved end time and cancel
    no-shows, giving their slots back.
    """
    ledger = BookingLedger.from_config(db.session, SpotRegistry(db.session, cache), current_app.config)
    counts = ledger.sweep_overdue()
    return f"Completed {counts['completed']} and cancelled {counts['cancelled']} overdue bookings"


# ======================
# BOOKING CONFIRMATION
# ======================
@celery.task
def send_booking_confirmation(booking_id):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        log.warning(f"Booking {booking_id} vanished before its confirmation email was sent")
        return {"sent": False}

    send_booking_confirmation_email(booking)
    return {"sent": True, "booking_id": booking_id}
