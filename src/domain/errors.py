"""
Typed failures raised by the dispatch core.

Every error carries a stable ``code`` and the HTTP ``status_code`` the API
layer answers with.  None of them is fatal to the process.
"""


class DispatchError(Exception):
    code = "dispatch_error"
    status_code = 400


class InvalidInput(DispatchError):
    """Malformed or missing caller-supplied data."""

    code = "invalid_input"
    status_code = 400


class NotFound(InvalidInput):
    code = "not_found"
    status_code = 404


class InvalidState(DispatchError):
    """Operation is illegal in the entity's current lifecycle state."""

    code = "invalid_state"
    status_code = 409


class Conflict(DispatchError):
    """A concurrent mutation won the race; retry against fresh state."""

    code = "conflict"
    status_code = 409


class RideAlreadyAssigned(Conflict, InvalidState):
    code = "ride_already_assigned"
    status_code = 409


class CapacityExceeded(DispatchError):
    """Shuttle seats or the driver pool are exhausted."""

    code = "capacity"
    status_code = 409


class PaymentIncomplete(DispatchError):
    """Terminal transition blocked until the gateway payment succeeds."""

    code = "payment_incomplete"
    status_code = 402
