class BookingError(Exception):
    """Base for every failure the API reports to callers."""

    status_code = 500
    code = "InternalError"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(BookingError):
    status_code = 400
    code = "ValidationError"

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.fields:
            out["fields"] = self.fields
        return out


class NotFound(BookingError):
    status_code = 404
    code = "NotFound"


class SlotUnavailable(BookingError):
    status_code = 409
    code = "SlotUnavailable"

    def __init__(self, message: str, remaining: int = 0):
        super().__init__(message)
        self.remaining = remaining

    def to_dict(self) -> dict:
        return {**super().to_dict(), "remaining": self.remaining}


class InvalidTransition(BookingError):
    status_code = 409
    code = "InvalidTransition"


class NotCancellable(BookingError):
    status_code = 409
    code = "NotCancellable"


class DuplicateRefund(BookingError):
    status_code = 409
    code = "DuplicateRefund"


class BookingNotPayable(BookingError):
    """A payment arrived for a booking that is no longer awaiting one; it is refunded."""

    status_code = 409
    code = "BookingNotPayable"


class InvalidSignature(BookingError):
    status_code = 400
    code = "InvalidSignature"


class PaymentNotFound(BookingError):
    status_code = 404
    code = "PaymentNotFound"


class GatewayError(BookingError):
    """Processor or network failure. Safe to retry with the same identifiers."""

    status_code = 500
    code = "GatewayError"
    retryable = True
