# parkspot/codes.py
import random
import string
import time

QR_PREFIX = "QR-"
_BASE36 = string.digits + string.ascii_lowercase
_SYSTEM_RANDOM = random.SystemRandom()


def issue_credentials(now=None, rng=None):
    """
    Return a fresh ``(qr_code, pin)`` pair for a new booking.

    The QR token is ``QR-<epoch millis>-<9 base36 chars>``; the PIN is a
    4-digit string for manual entry. A PIN never starts with ``QR-``, so the
    two credentials can not be mistaken for each other on lookup.
    """
    rng = rng or _SYSTEM_RANDOM
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(rng.choice(_BASE36) for _ in range(9))
    qr_code = f"{QR_PREFIX}{millis}-{suffix}"
    pin = str(rng.randint(1000, 9999))
    return qr_code, pin


def looks_like_qr(code: str) -> bool:
    return code.startswith(QR_PREFIX)
