from fastapi import status


class BookingError(Exception):
    """
    Base class for every error raised by the booking core.

    Each subclass carries the HTTP status code the API layer should use,
    and a human-readable message that is safe to show to the caller.

    Attributes
    ----------
    message : str
        Human-readable reason.
    status_code : int
        HTTP status code used when the error reaches the API boundary.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed or out-of-policy input: bad times, headcount, duplicates."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(ValidationError):
    """A status change the booking state machine does not allow."""


class ConflictError(BookingError):
    """Time-range or capacity conflict against already stored holds."""
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(BookingError):
    """Unknown booking or catalog resource id."""
    status_code = status.HTTP_404_NOT_FOUND


class ConfigurationError(BookingError):
    """
    Stored settings are unusable (e.g. a non-positive slot interval).

    Indicates misconfiguration rather than bad input, so the API layer
    logs it and answers with a generic server-side failure.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
