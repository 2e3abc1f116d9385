"""
Domain errors raised by the reservation pipeline.

Every error carries the HTTP status and machine-readable code it is rendered
with, so routes can simply let them propagate to the app's exception handler.
"""


class BookingError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str, fields: dict | None = None):
        super().__init__(detail)
        self.detail = detail
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"error": self.code, "detail": self.detail}
        if self.fields:
            body["fields"] = self.fields
        return body


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"


class ConflictError(BookingError):
    status_code = 409
    code = "slot_conflict"

    def __init__(self, detail: str, payment_captured: bool = False, fields: dict | None = None):
        super().__init__(detail, fields)
        self.payment_captured = payment_captured

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["payment_captured"] = self.payment_captured
        return body


class CommitFailedError(BookingError):
    status_code = 503
    code = "booking_not_committed"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["payment_captured"] = True
        return body


class PaymentInProgressError(BookingError):
    status_code = 409
    code = "payment_in_progress"


class SessionExpiredError(BookingError):
    status_code = 410
    code = "session_expired"


class PaymentDeclinedError(BookingError):
    status_code = 402
    code = "payment_declined"

    def __init__(self, detail: str, reason: str = "declined", fields: dict | None = None):
        super().__init__(detail, fields)
        self.reason = reason
        # local card-field problems are the caller's input, not a processor decline
        if fields:
            self.status_code = 400

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["reason"] = self.reason
        return body


class PaymentOutcomeUnknownError(BookingError):
    status_code = 502
    code = "payment_unknown"


class UnauthorizedError(BookingError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(BookingError):
    status_code = 403
    code = "forbidden"


class AuthUnavailableError(BookingError):
    status_code = 503
    code = "auth_unavailable"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class NotificationError(BookingError):
    code = "notification_failed"
