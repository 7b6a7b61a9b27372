"""
Demo data for the in-memory store.

Populates:
  - pricing for car and bus
  - 3 drivers (2 car, 1 bus)
  - 1 Lekki -> Victoria Island shuttle, 6/18 seats taken by street boardings
  - known landmark routes for the static route provider
  - 1 requested cash ride
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.domain.entities import Driver, Ride, Shuttle
from src.domain.enums import DriverStatus, PaymentMethod, ShuttleStatus, VehicleClass
from src.domain.ports import RouteEstimate
from src.domain.pricing import PricingRegistry, PricingRule, estimate_fare
from src.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    ShuttleRepository,
)
from src.infrastructure.routing import StaticRouteProvider

SEED_PRICING = {
    VehicleClass.CAR: PricingRule(base=1200, per_km=250, per_min=30, minimum=1800),
    VehicleClass.BUS: PricingRule(base=700, per_km=120, per_min=15, minimum=1000),
}

DRIVERS = [
    {"id": "d1", "name": "Adewale T.", "phone": "0803 123 4567", "vehicle_class": VehicleClass.CAR,
     "plate": "LND 123 AB", "vehicle": "Toyota Corolla • Black", "status": DriverStatus.AVAILABLE,
     "location": "Lekki Phase 1 Gate"},
    {"id": "d2", "name": "Ifeoma C.", "phone": "0812 555 1122", "vehicle_class": VehicleClass.CAR,
     "plate": "APP 908 ZY", "vehicle": "Honda Accord • Silver", "status": DriverStatus.BUSY},
    {"id": "d3", "name": "Sani M.", "phone": "0701 444 0001", "vehicle_class": VehicleClass.BUS,
     "plate": "LAG 221 RT", "vehicle": "Hiace Shuttle • White", "status": DriverStatus.AVAILABLE},
]

SHUTTLES = [
    {
        "id": "s1",
        "driver_id": "d3",
        "driver_name": "Sani M.",
        "vehicle": "Hiace Shuttle • White",
        "plate": "LAG 221 RT",
        "capacity": 18,
        "reserved_seats": 6,
        "status": ShuttleStatus.ACTIVE,
        "junctions": ["Ajah", "VGC", "Chevron", "Lekki Phase 1", "Ikoyi Bridge", "Victoria Island"],
        "junction_index": 2,
    },
]

ROUTES = {
    ("Lekki Phase 1 Gate", "Victoria Island"): RouteEstimate(distance_km=12.4, duration_min=28),
    ("Chevron", "Victoria Island"): RouteEstimate(distance_km=10.8, duration_min=34),
    ("Lekki Phase 1", "Victoria Island"): RouteEstimate(distance_km=9.6, duration_min=25),
    ("Ajah", "Victoria Island"): RouteEstimate(distance_km=24.0, duration_min=55),
    ("Lekki Phase 1 Gate", "Lekki Phase 1"): RouteEstimate(distance_km=1.5, duration_min=6),
}


def seed_routes(provider: StaticRouteProvider) -> None:
    for (pickup, dropoff), estimate in ROUTES.items():
        provider.add_route(pickup, dropoff, estimate)


def seed_state(
    rides: RideRepository,
    drivers: DriverRepository,
    shuttles: ShuttleRepository,
    pricing: PricingRegistry,
    step: int = 50,
) -> None:
    for row in DRIVERS:
        drivers.add(Driver(**row))
    for row in SHUTTLES:
        shuttles.add(Shuttle(**row))

    snapshot = pricing.active_snapshot(VehicleClass.CAR)
    rides.add(
        Ride.create(
            public_id="PTG-482019",
            vehicle_class=VehicleClass.CAR,
            pickup="Lekki Phase 1 Gate",
            dropoff="Victoria Island",
            payment_method=PaymentMethod.CASH,
            estimated_fare=estimate_fare(
                VehicleClass.CAR, 12.4, 28, snapshot.rule, step
            ),
            distance_km=12.4,
            duration_min=28,
            pricing_snapshot_id=snapshot.snapshot_id,
            now=datetime.now(timezone.utc) - timedelta(minutes=12),
        )
    )
