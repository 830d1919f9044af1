"""Error taxonomy shared by the booking core and the HTTP layer.

Every error carries a stable machine ``code`` and the HTTP status it maps to,
so routes never have to translate them one by one.
"""


class BookingError(Exception):
    code = "error"
    http_status = 500
    default_message = "Unexpected error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class Unauthorized(BookingError):
    code = "unauthorized"
    http_status = 401
    default_message = "Authentication required"


class Forbidden(BookingError):
    code = "forbidden"
    http_status = 403
    default_message = "Forbidden"


class NotFound(BookingError):
    code = "not_found"
    http_status = 404
    default_message = "Not found"


class ServiceNotFound(NotFound):
    default_message = "Service not found"


class ServiceInactive(NotFound):
    default_message = "Service is not available for booking"


class SlotNotFound(NotFound):
    default_message = "Slot not found"


class BookingNotFound(NotFound):
    default_message = "Booking not found"


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    http_status = 409
    default_message = "Selected time is no longer available"


class SlotOccupied(SlotUnavailable):
    code = "slot_occupied"
    default_message = "Slot is booked, cancel the booking first"


class InvalidState(BookingError):
    code = "invalid_state"
    http_status = 409
    default_message = "Booking cannot change state from its current status"


class ValidationError(BookingError):
    code = "validation_error"
    http_status = 400
    default_message = "Invalid input"


class GatewayError(BookingError):
    code = "gateway_error"
    http_status = 502
    default_message = "Payment provider error"
