"""
Domain errors raised by the parking engine.

Every error carries the HTTP status the API layer should answer with and a
stable ``code`` string so callers can branch without parsing messages.
Allocation-level CAS conflicts are retried inside the slot allocator; every
other error propagates unchanged to the caller.
"""


class ParkingError(Exception):
    """Base class for all parking engine errors"""
    status_code = 400
    code = "parking_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# Allocation layer
class NoSlotAvailable(ParkingError):
    """No AVAILABLE slot matched the claim constraints"""
    status_code = 409
    code = "no_slot_available"


class SlotConflict(ParkingError):
    """A version-guarded slot write kept losing races"""
    status_code = 409
    code = "slot_conflict"


class InvalidTransition(ParkingError):
    """A state machine was asked for a move outside its transition table"""
    status_code = 409
    code = "invalid_transition"


# Caller-facing taxonomy
class SlotUnavailable(ParkingError):
    status_code = 409
    code = "slot_unavailable"


class ReservationInvalid(ParkingError):
    status_code = 409
    code = "reservation_invalid"


class TicketNotActive(ParkingError):
    status_code = 409
    code = "ticket_not_active"


class NoAvailabilityForWindow(ParkingError):
    status_code = 409
    code = "no_availability_for_window"


class NoPricingRule(ParkingError):
    """Configuration defect: no active pricing rule covers the request"""
    status_code = 500
    code = "no_pricing_rule"


class InvalidReservationWindow(ParkingError):
    code = "invalid_reservation_window"


class VehicleAlreadyParked(ParkingError):
    status_code = 409
    code = "vehicle_already_parked"


# Lookups
class TicketNotFound(ParkingError):
    status_code = 404
    code = "ticket_not_found"


class ReservationNotFound(ParkingError):
    status_code = 404
    code = "reservation_not_found"


class SlotNotFound(ParkingError):
    status_code = 404
    code = "slot_not_found"


class GateNotFound(ParkingError):
    status_code = 404
    code = "gate_not_found"


class AlertNotFound(ParkingError):
    status_code = 404
    code = "alert_not_found"
