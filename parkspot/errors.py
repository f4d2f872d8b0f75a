"""Error taxonomy for the booking and validation services.

Every error carries the HTTP status the blueprint answers with and a message
that is safe to show to the caller.
"""


class ParkSpotError(Exception):
    status_code = 400
    message = "Request failed"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(ParkSpotError):
    status_code = 400
    message = "Invalid input"


class AuthError(ParkSpotError):
    status_code = 401
    message = "Invalid or expired token"


class ForbiddenError(ParkSpotError):
    status_code = 403
    message = "Not allowed"


class NotFoundError(ParkSpotError):
    status_code = 404
    message = "Not found"


class AlreadyExtendedError(ParkSpotError):
    status_code = 409
    message = "Booking has already been extended"


class InvalidTransitionError(ParkSpotError):
    status_code = 409
    message = "Booking cannot change to that status"


class ConflictError(ParkSpotError):
    status_code = 409
    message = "Booking was modified concurrently, please retry"


class AmbiguousCodeError(ParkSpotError):
    status_code = 409
    message = "Code matches more than one booking"


class NotStartedError(ParkSpotError):
    status_code = 422
    message = "Booking has not started yet"


class ExpiredError(ParkSpotError):
    status_code = 422
    message = "Booking has expired"


class BackendError(ParkSpotError):
    status_code = 503
    message = "Service temporarily unavailable, please retry"
