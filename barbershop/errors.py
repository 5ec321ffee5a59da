# barbershop/errors.py


class BookingError(Exception):
    """Base class for errors raised by the booking services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookingError):
    status_code = 404


class InvalidStateError(BookingError):
    status_code = 409


class ConflictError(InvalidStateError):
    """A slot or record was claimed by someone else first."""

    status_code = 409


class ValidationError(BookingError):
    status_code = 422


class InvalidRangeError(ValidationError):
    status_code = 422


class ForbiddenError(BookingError):
    status_code = 403
