"""Domain errors raised by the booking lifecycle services.

Each error knows the HTTP status it maps to and carries enough detail for
the client to recover (current status, conflicting ranges). The app-level
error handler renders them as ``{"error": message, **details}``.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, **self.details}


class ValidationError(BookingError):
    status_code = 400


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    status_code = 409


class AuthorizationError(BookingError):
    status_code = 403

    def __init__(self, message: str = "Booking not found or not authorized", **details):
        super().__init__(message, **details)


class StatusConflictError(BookingError):
    status_code = 400


class InvalidTransitionError(StatusConflictError):
    pass


class GatewayError(BookingError):
    status_code = 502


class AlreadyExpiredError(BookingError):
    status_code = 409
