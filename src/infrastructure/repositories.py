"""
Repository Pattern -- keeps the dispatch service storage-agnostic.

State lives in insertion-ordered dicts owned by each repository instance;
nothing is module-global.  A durable backend would implement the same
methods and use ``Ride.version`` as its optimistic-concurrency stamp.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from src.domain.entities import Driver, Ride, Shuttle
from src.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    VehicleClass,
)
from src.domain.errors import InvalidState, NotFound


@dataclass(frozen=True)
class RideFilter:
    status: Optional[RideStatus] = None
    vehicle_class: Optional[VehicleClass] = None
    payment_method: Optional[PaymentMethod] = None

    def matches(self, ride: Ride) -> bool:
        if self.status is not None and ride.status != self.status:
            return False
        if self.vehicle_class is not None and ride.vehicle_class != self.vehicle_class:
            return False
        if self.payment_method is not None and ride.payment_method != self.payment_method:
            return False
        return True


@dataclass(frozen=True)
class RideReport:
    day: date
    count: int
    completed_count: int
    gateway_revenue: float
    cash_count: int


class RideRepository:
    def __init__(self) -> None:
        self._rides: dict[str, Ride] = {}
        self._by_public_id: dict[str, str] = {}
        self._by_idempotency_key: dict[str, str] = {}

    def add(self, ride: Ride) -> Ride:
        if ride.id in self._rides:
            raise InvalidState(f"Duplicate ride id {ride.id}")
        if ride.public_id in self._by_public_id:
            raise InvalidState(f"Duplicate ride code {ride.public_id}")
        self._rides[ride.id] = ride
        self._by_public_id[ride.public_id] = ride.id
        if ride.idempotency_key:
            self._by_idempotency_key[ride.idempotency_key] = ride.id
        return ride

    def get(self, ride_id: str) -> Ride:
        try:
            return self._rides[ride_id]
        except KeyError:
            raise NotFound(f"Ride {ride_id} not found")

    def get_by_public_id(self, public_id: str) -> Ride:
        ride_id = self._by_public_id.get(public_id.strip().upper())
        if ride_id is None:
            raise NotFound(f"Ride {public_id} not found")
        return self._rides[ride_id]

    def public_id_taken(self, public_id: str) -> bool:
        return public_id in self._by_public_id

    def get_by_idempotency_key(self, key: str) -> Optional[Ride]:
        ride_id = self._by_idempotency_key.get(key)
        return self._rides.get(ride_id) if ride_id else None

    def get_by_tx_ref(self, tx_ref: str) -> Ride:
        for ride in self._rides.values():
            if ride.tx_ref == tx_ref:
                return ride
        raise NotFound(f"No ride for transaction {tx_ref}")

    def list_rides(self, ride_filter: Optional[RideFilter] = None) -> list[Ride]:
        """Rides in booking order; filter fields are ANDed."""
        ride_filter = ride_filter or RideFilter()
        return [r for r in self._rides.values() if ride_filter.matches(r)]

    def report(self, day: date) -> RideReport:
        """Daily figures, recomputed from current ride state on every call."""
        rides = [r for r in self._rides.values() if r.created_at.date() == day]
        return RideReport(
            day=day,
            count=len(rides),
            completed_count=sum(
                1 for r in rides if r.status == RideStatus.COMPLETED
            ),
            gateway_revenue=sum(
                r.estimated_fare
                for r in rides
                if r.payment_method == PaymentMethod.GATEWAY
                and r.payment_status == PaymentStatus.SUCCESS
            ),
            cash_count=sum(
                1 for r in rides if r.payment_method == PaymentMethod.CASH
            ),
        )

    def __len__(self) -> int:
        return len(self._rides)


class DriverRepository:
    def __init__(self) -> None:
        self._drivers: dict[str, Driver] = {}

    def add(self, driver: Driver) -> Driver:
        if driver.id in self._drivers:
            raise InvalidState(f"Duplicate driver id {driver.id}")
        self._drivers[driver.id] = driver
        return driver

    def get(self, driver_id: str) -> Driver:
        try:
            return self._drivers[driver_id]
        except KeyError:
            raise NotFound(f"Driver {driver_id} not found")

    def list_drivers(self, vehicle_class: Optional[VehicleClass] = None) -> list[Driver]:
        return [
            d for d in self._drivers.values()
            if vehicle_class is None or d.vehicle_class == vehicle_class
        ]


class ShuttleRepository:
    def __init__(self) -> None:
        self._shuttles: dict[str, Shuttle] = {}

    def add(self, shuttle: Shuttle) -> Shuttle:
        if shuttle.id in self._shuttles:
            raise InvalidState(f"Duplicate shuttle id {shuttle.id}")
        self._shuttles[shuttle.id] = shuttle
        return shuttle

    def get(self, shuttle_id: str) -> Shuttle:
        try:
            return self._shuttles[shuttle_id]
        except KeyError:
            raise NotFound(f"Shuttle {shuttle_id} not found")

    def list_shuttles(self) -> list[Shuttle]:
        return list(self._shuttles.values())
