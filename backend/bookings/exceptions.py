"""Domain exceptions for booking negotiation.

Every exception here is an expected, user-actionable outcome: the API layer
renders it verbatim so clients can tell "already taken" apart from a fault.
"""


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""
    status_code = 400
    error_code = "dispatch_error"
    default_message = "The request could not be completed."

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)


class ValidationError(DispatchError):
    """Raised for malformed fares, coordinates, ratings or reasons."""
    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid request data."


class NotFoundError(DispatchError):
    """Raised when a booking is missing or no longer in the state the caller assumed."""
    status_code = 404
    error_code = "not_found"
    default_message = "Booking not found."


class ConflictError(DispatchError):
    """Raised when a compare-and-swap update loses a race."""
    status_code = 409
    error_code = "conflict"
    default_message = "The booking was changed by someone else. Please refresh."


class DuplicateOpenBookingError(DispatchError):
    """Raised when a passenger already has an open booking."""
    status_code = 409
    error_code = "duplicate_open_booking"
    default_message = "You already have an active booking."


class DriverBusyError(DispatchError):
    """Raised when a driver already has an accepted or in-progress trip."""
    status_code = 409
    error_code = "driver_busy"
    default_message = "Driver already has an active trip."


class NotAtDestinationError(DispatchError):
    """Raised when completion is attempted outside the destination geofence."""
    status_code = 422
    error_code = "not_at_destination"
    default_message = "You must be closer to the destination to complete this trip."


class NotAtPickupError(DispatchError):
    """Raised when pickup is confirmed outside the pickup geofence."""
    status_code = 422
    error_code = "not_at_pickup"
    default_message = "You must be closer to the pickup point to start this trip."


class ForbiddenError(DispatchError):
    """Raised when the caller is not a party to the booking."""
    status_code = 403
    error_code = "forbidden"
    default_message = "Not authorized to act on this booking."
