from flask_mail import Message

from app_factory import mail


def send_email(to, subject, body, html=False):
    msg = Message(subject, recipients=[to])

    if html:
        msg.html = body
    else:
        msg.body = body

    mail.send(msg)


def booking_confirmation_body(booking):
    return f"""
Hi {booking.user.name},

Your parking at {booking.spot.name} is reserved.

  Address:  {booking.spot.address}
  From:     {booking.start_time:%Y-%m-%d %H:%M} UTC
  Until:    {booking.end_time:%Y-%m-%d %H:%M} UTC
  Vehicle:  {booking.vehicle.license_plate}
  Total:    ${booking.total_cost}

Show this QR code at the entrance: {booking.qr_code}
Or enter your PIN: {booking.pin}

Entry closes at {booking.reserved_end_time:%Y-%m-%d %H:%M} UTC.
"""


def send_booking_confirmation_email(booking):
    send_email(
        booking.user.email,
        f"Booking #{booking.id} confirmed: {booking.spot.name}",
        booking_confirmation_body(booking),
    )
