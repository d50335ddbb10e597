class BookingError(Exception):
    """
    Base for every failure the booking core reports to callers.
    Subclasses fix the (kind, status_code) pair the HTTP layer renders.
    """
    kind = "booking_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class NotFound(BookingError):
    kind = "not_found"
    status_code = 404


class InvalidState(BookingError):
    kind = "invalid_state"
    status_code = 400


class Conflict(BookingError):
    kind = "conflict"
    status_code = 409


class TransactionFailure(BookingError):
    kind = "transaction_failure"
    status_code = 500


class ValidationError(BookingError):
    kind = "validation_error"
    status_code = 400
