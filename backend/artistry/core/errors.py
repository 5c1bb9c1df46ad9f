"""
Domain errors raised by the booking services.

Each error carries the HTTP status the API maps it to; services never raise
HTTPException themselves so they stay usable outside a request.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed or missing input. Never retried automatically."""
    status_code = 422

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class SlotOverlap(ValidationError):
    pass


class NotFound(BookingError):
    status_code = 404


class SlotUnavailable(BookingError):
    """Slot was withdrawn between query and submission: re-query and pick again."""
    status_code = 409


class SlotAlreadyReserved(BookingError):
    """Another confirmation already claimed the slot."""
    status_code = 409


class SlotInUse(BookingError):
    status_code = 409


class InvalidTransition(BookingError):
    status_code = 409


class StoreUnavailable(BookingError):
    """Database unreachable. Safe to retry with backoff."""
    status_code = 503
