"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (REQUESTED -> ASSIGNED -> ARRIVED -> IN_TRIP -> COMPLETED | CANCELLED).
- ``Shuttle`` owns its seat accounting; ``filled`` is derived from the
  accepted rides so it cannot drift from them.
- Every ``Ride`` mutation validates first and mutates last, so a failed
  call leaves the ride, the driver and the shuttle untouched.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from .enums import (
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ShuttleStatus,
    VehicleClass,
)
from .errors import (
    CapacityExceeded,
    Conflict,
    InvalidInput,
    InvalidState,
    PaymentIncomplete,
    RideAlreadyAssigned,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_location(value: str) -> str:
    return " ".join(value.split()).lower()


def clean_locations(pickup: str, dropoff: str) -> tuple[str, str]:
    """Trim both ends of a trip; reject blanks and identical places."""
    pickup = (pickup or "").strip()
    dropoff = (dropoff or "").strip()
    if not pickup:
        raise InvalidInput("Please enter your pick-up location")
    if not dropoff:
        raise InvalidInput("Please enter your destination")
    if normalize_location(pickup) == normalize_location(dropoff):
        raise InvalidInput("Pick-up and destination can't be the same")
    return pickup, dropoff


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Driver:
    id: str
    name: str
    phone: str = ""
    vehicle_class: VehicleClass = VehicleClass.CAR
    vehicle: str = ""
    plate: str = ""
    status: DriverStatus = DriverStatus.AVAILABLE
    current_ride_id: Optional[str] = None
    location: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status == DriverStatus.AVAILABLE

    def occupy(self, ride_id: str) -> None:
        if not self.is_available:
            raise Conflict(f"Driver {self.id} is {self.status.value}")
        self.status = DriverStatus.BUSY
        self.current_ride_id = ride_id

    def release(self, ride_id: str) -> None:
        """Free the driver if it is still serving *ride_id*."""
        if self.current_ride_id == ride_id:
            self.current_ride_id = None
            self.status = DriverStatus.AVAILABLE

    def set_status(self, status: DriverStatus) -> None:
        status = DriverStatus(status)
        if status == DriverStatus.BUSY:
            raise InvalidInput("Drivers become busy only through an assignment")
        if self.current_ride_id is not None:
            raise InvalidState(
                f"Driver {self.id} is serving ride {self.current_ride_id}"
            )
        self.status = status


@dataclass
class Shuttle:
    id: str
    driver_id: str
    capacity: int
    junctions: list[str]
    driver_name: str = ""
    vehicle: str = ""
    plate: str = ""
    junction_index: int = 0
    status: ShuttleStatus = ShuttleStatus.ACTIVE
    accepted_ride_ids: list[str] = field(default_factory=list)
    reserved_seats: int = 0  # street boardings not booked through the engine

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise InvalidInput("Shuttle capacity must be a positive integer")
        if not self.junctions:
            raise InvalidInput("Shuttle route needs at least one junction")
        if not 0 <= self.reserved_seats <= self.capacity:
            raise InvalidInput("reserved_seats must fit within capacity")
        self.junction_index = min(max(self.junction_index, 0), len(self.junctions) - 1)
        if self.status != ShuttleStatus.ENDED:
            self._refresh_status()

    @property
    def filled(self) -> int:
        return self.reserved_seats + len(self.accepted_ride_ids)

    @property
    def free_seats(self) -> int:
        return self.capacity - self.filled

    @property
    def is_full(self) -> bool:
        return self.filled >= self.capacity

    @property
    def current_junction(self) -> str:
        return self.junctions[self.junction_index]

    @property
    def final_destination(self) -> str:
        return self.junctions[-1]

    def _refresh_status(self) -> None:
        self.status = ShuttleStatus.FULL if self.is_full else ShuttleStatus.ACTIVE

    def can_accept(self) -> bool:
        return self.status != ShuttleStatus.ENDED and not self.is_full

    def serves(self, location: str) -> bool:
        """True if *location* is still ahead on (or at) the route."""
        wanted = normalize_location(location)
        upcoming = self.junctions[self.junction_index:]
        return any(normalize_location(j) == wanted for j in upcoming)

    def accept_ride(self, ride_id: str) -> int:
        """Seat *ride_id* and return its 0-based seat index."""
        if ride_id in self.accepted_ride_ids:
            return self.reserved_seats + self.accepted_ride_ids.index(ride_id)
        if self.status == ShuttleStatus.ENDED:
            raise InvalidState(f"Shuttle {self.id} has ended its run")
        if self.is_full:
            raise CapacityExceeded(
                f"Shuttle {self.id} is full ({self.filled}/{self.capacity})"
            )
        self.accepted_ride_ids.append(ride_id)
        self._refresh_status()
        return self.filled - 1

    def release_ride(self, ride_id: str) -> bool:
        if ride_id not in self.accepted_ride_ids:
            return False
        self.accepted_ride_ids.remove(ride_id)
        if self.status != ShuttleStatus.ENDED:
            self._refresh_status()
        return True

    def advance_junction(self) -> str:
        last = len(self.junctions) - 1
        self.junction_index = min(self.junction_index + 1, last)
        if self.junction_index == last:
            self.status = ShuttleStatus.ENDED
        return self.current_junction


@dataclass
class Assignment:
    driver_id: str
    eta_min: int
    assigned_at: datetime
    driver_name: str = ""
    driver_phone: str = ""
    vehicle: str = ""
    plate: str = ""
    shuttle_id: Optional[str] = None

    @property
    def kind(self) -> str:
        return "shuttle" if self.shuttle_id else "driver"


Resource = Union[Driver, Shuttle]


@dataclass
class Ride:
    id: str
    public_id: str
    vehicle_class: VehicleClass
    pickup: str
    dropoff: str
    estimated_fare: float
    distance_km: float
    duration_min: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    note: str = ""
    tx_ref: Optional[str] = None
    status: RideStatus = RideStatus.REQUESTED
    assignment: Optional[Assignment] = None
    cash_confirmed: bool = False
    pricing_snapshot_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 1

    # ── creation ──────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        *,
        public_id: str,
        vehicle_class: VehicleClass,
        pickup: str,
        dropoff: str,
        payment_method: PaymentMethod,
        estimated_fare: float,
        distance_km: float,
        duration_min: float,
        note: str = "",
        pricing_snapshot_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Ride":
        pickup, dropoff = clean_locations(pickup, dropoff)
        for name, value in (
            ("estimated_fare", estimated_fare),
            ("distance_km", distance_km),
            ("duration_min", duration_min),
        ):
            if value < 0:
                raise InvalidInput(f"{name} must be non-negative")
        try:
            vehicle_class = VehicleClass(vehicle_class)
            payment_method = PaymentMethod(payment_method)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc

        now = now or _utcnow()
        return cls(
            id=uuid.uuid4().hex,
            public_id=public_id,
            vehicle_class=vehicle_class,
            pickup=pickup,
            dropoff=dropoff,
            note=(note or "").strip(),
            estimated_fare=estimated_fare,
            distance_km=distance_km,
            duration_min=duration_min,
            payment_method=payment_method,
            payment_status=(
                PaymentStatus.PENDING
                if payment_method == PaymentMethod.GATEWAY
                else PaymentStatus.NOT_APPLICABLE
            ),
            pricing_snapshot_id=pricing_snapshot_id,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )

    # ── helpers ───────────────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or _utcnow()
        self.version += 1

    def _check_resource(self, resource: Optional[Resource]) -> None:
        """Make sure *resource* is the one named by the assignment."""
        if self.assignment is None:
            return
        expected = self.assignment.shuttle_id or self.assignment.driver_id
        if resource is None:
            raise InvalidInput(
                f"Ride {self.public_id} is assigned to {expected}; pass it to release it"
            )
        if resource.id != expected:
            raise InvalidInput(
                f"Ride {self.public_id} is not assigned to {resource.id}"
            )

    def _release(self, resource: Optional[Resource]) -> None:
        if isinstance(resource, Shuttle):
            resource.release_ride(self.id)
        elif isinstance(resource, Driver):
            resource.release(self.id)

    # ── transitions ───────────────────────────────────────────────

    def assign(
        self,
        target: Resource,
        eta_min: int,
        now: Optional[datetime] = None,
    ) -> Assignment:
        """Bind this ride to a car driver or a shuttle seat."""
        if self.status != RideStatus.REQUESTED:
            if self.assignment is not None:
                raise RideAlreadyAssigned(
                    f"Ride {self.public_id} is already {self.status.value}"
                )
            raise InvalidState(
                f"Cannot assign ride {self.public_id} in status {self.status.value}"
            )

        eta = max(1, int(eta_min))
        now = now or _utcnow()

        if isinstance(target, Driver):
            if self.vehicle_class != VehicleClass.CAR:
                raise InvalidInput("Bus rides are seated on a shuttle, not a driver")
            if target.vehicle_class != self.vehicle_class:
                raise InvalidInput(
                    f"Driver {target.id} drives a {target.vehicle_class.value}"
                )
            if not target.is_available:
                raise Conflict(f"Driver {target.id} is {target.status.value}")
            assignment = Assignment(
                driver_id=target.id,
                driver_name=target.name,
                driver_phone=target.phone,
                vehicle=target.vehicle,
                plate=target.plate,
                eta_min=eta,
                assigned_at=now,
            )
            target.occupy(self.id)
        elif isinstance(target, Shuttle):
            if self.vehicle_class != VehicleClass.BUS:
                raise InvalidInput("Car rides are dispatched to a driver, not a shuttle")
            if not target.can_accept():
                raise Conflict(
                    f"Shuttle {target.id} cannot take riders ({target.status.value})"
                )
            assignment = Assignment(
                driver_id=target.driver_id,
                driver_name=target.driver_name,
                vehicle=target.vehicle,
                plate=target.plate,
                shuttle_id=target.id,
                eta_min=eta,
                assigned_at=now,
            )
            target.accept_ride(self.id)
        else:
            raise InvalidInput(f"Cannot assign a ride to {target!r}")

        self.assignment = assignment
        self.status = RideStatus.ASSIGNED
        self._touch(now)
        return assignment

    def advance_status(
        self,
        new_status: RideStatus,
        resource: Optional[Resource] = None,
        require_payment: bool = True,
        now: Optional[datetime] = None,
    ) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        try:
            new_status = RideStatus(new_status)
        except ValueError:
            raise InvalidInput(f"Unknown ride status {new_status!r}")

        if new_status == RideStatus.CANCELLED:
            if self.status == RideStatus.COMPLETED:
                raise InvalidState(f"Ride {self.public_id} is already completed")
            self.cancel(resource, now)
            return

        if new_status == RideStatus.ASSIGNED:
            raise InvalidState("Rides become assigned only through an assignment")
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidState(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self._check_resource(resource)
        if (
            new_status == RideStatus.COMPLETED
            and require_payment
            and self.payment_method == PaymentMethod.GATEWAY
            and self.payment_status != PaymentStatus.SUCCESS
        ):
            raise PaymentIncomplete(
                f"Ride {self.public_id} payment is {self.payment_status.value}"
            )

        self.status = new_status
        if new_status == RideStatus.COMPLETED:
            self._release(resource)
        self._touch(now)

    def cancel(
        self, resource: Optional[Resource] = None, now: Optional[datetime] = None
    ) -> bool:
        """Cancel and free the driver/seat.  Returns False if already cancelled."""
        if self.status == RideStatus.CANCELLED:
            return False
        if self.status == RideStatus.COMPLETED:
            raise InvalidState(f"Ride {self.public_id} is already completed")
        self._check_resource(resource)
        self._release(resource)
        self.status = RideStatus.CANCELLED
        self._touch(now)
        return True

    # ── payments ──────────────────────────────────────────────────

    def confirm_cash_paid(self, now: Optional[datetime] = None) -> None:
        if self.payment_method != PaymentMethod.CASH:
            raise Conflict(f"Ride {self.public_id} is not a cash ride")
        if self.status == RideStatus.CANCELLED:
            raise InvalidState(f"Ride {self.public_id} was cancelled")
        if not self.cash_confirmed:
            self.cash_confirmed = True
            self._touch(now)

    def ensure_payable(self) -> None:
        """Raise unless a gateway payment may be started for this ride."""
        if self.payment_method != PaymentMethod.GATEWAY:
            raise Conflict(f"Ride {self.public_id} is not a gateway ride")
        if self.is_terminal:
            raise InvalidState(f"Ride {self.public_id} is {self.status.value}")
        if self.payment_status == PaymentStatus.SUCCESS:
            raise Conflict(f"Ride {self.public_id} payment already succeeded")

    def attach_tx_ref(self, tx_ref: str, now: Optional[datetime] = None) -> None:
        """Store the reference of a freshly started gateway payment."""
        self.ensure_payable()
        self.tx_ref = tx_ref
        self.payment_status = PaymentStatus.PENDING
        self._touch(now)

    def record_gateway_result(
        self, tx_ref: str, succeeded: bool, now: Optional[datetime] = None
    ) -> None:
        if self.payment_method != PaymentMethod.GATEWAY:
            raise Conflict(f"Ride {self.public_id} is not a gateway ride")
        if self.payment_status == PaymentStatus.SUCCESS:
            if succeeded and tx_ref == self.tx_ref:
                return  # duplicate webhook
            raise Conflict(f"Ride {self.public_id} payment already succeeded")
        if self.is_terminal:
            raise InvalidState(f"Ride {self.public_id} is {self.status.value}")

        self.tx_ref = tx_ref
        self.payment_status = (
            PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED
        )
        self._touch(now)

    def switch_to_cash(self, now: Optional[datetime] = None) -> None:
        if self.is_terminal:
            raise InvalidState(f"Ride {self.public_id} is {self.status.value}")
        if self.payment_method == PaymentMethod.CASH:
            return
        if self.payment_status == PaymentStatus.SUCCESS:
            raise Conflict(f"Ride {self.public_id} is already paid online")
        self.payment_method = PaymentMethod.CASH
        self.payment_status = PaymentStatus.NOT_APPLICABLE
        self.tx_ref = None
        self._touch(now)
