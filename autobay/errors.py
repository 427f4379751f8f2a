"""
Booking error kinds.
Every failure the booking core surfaces to its callers is one of these.
"""
from typing import Optional


class BookingError(Exception):
    """Base class for booking core errors."""

    error_code = "booking_error"


class NotFoundError(BookingError):
    """A service, vehicle or appointment id did not resolve."""

    error_code = "not_found"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class BookingValidationError(BookingError):
    """Malformed input: bad slot, non-positive duration, time outside working hours."""

    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class SlotConflictError(BookingError):
    """The technician+slot was taken between recommendation and commit."""

    error_code = "slot_conflict"
    user_message = "This time was just taken, please choose another."

    def __init__(self, technician_id: str, slot_label: str):
        self.technician_id = technician_id
        self.slot_label = slot_label
        super().__init__(f"Slot {slot_label} is already booked for technician {technician_id}")


class DataUnavailableError(BookingError):
    """The schedule or appointment store could not be reached."""

    error_code = "data_unavailable"


class InvalidTransitionError(BookingError):
    """Appointment lifecycle violation, e.g. cancelling a completed appointment."""

    error_code = "invalid_transition"

    def __init__(self, appointment_id: str, current: str, requested: str):
        self.appointment_id = appointment_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Appointment {appointment_id} cannot move from {current} to {requested}"
        )
