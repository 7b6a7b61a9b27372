"""Domain enumerations and state-transition rules."""

import enum


class VehicleClass(str, enum.Enum):
    CAR = "car"  # private ride
    BUS = "bus"  # shared shuttle seat


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    ARRIVED = "arrived"
    IN_TRIP = "in_trip"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {RideStatus.ASSIGNED, RideStatus.CANCELLED},
    RideStatus.ASSIGNED: {RideStatus.ARRIVED, RideStatus.CANCELLED},
    RideStatus.ARRIVED: {RideStatus.IN_TRIP, RideStatus.CANCELLED},
    RideStatus.IN_TRIP: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}


class DriverStatus(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    GATEWAY = "gateway"


class PaymentStatus(str, enum.Enum):
    NOT_APPLICABLE = "n/a"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ShuttleStatus(str, enum.Enum):
    ACTIVE = "active"
    FULL = "full"
    ENDED = "ended"
