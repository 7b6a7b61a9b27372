"""
Shared test fixtures.

Everything runs against the in-memory repositories with deterministic
collaborators: a frozen clock, sequential ride codes, a recording
notification channel and a payment gateway that hands out ``TX-<n>``
references.
"""

import itertools
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.config import Settings
from src.domain.entities import Driver, Shuttle
from src.domain.enums import DriverStatus, VehicleClass
from src.domain.ports import PaymentGatewayError, RouteEstimate
from src.domain.pricing import PricingRegistry
from src.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    ShuttleRepository,
)
from src.infrastructure.routing import StaticRouteProvider
from src.infrastructure.seed import SEED_PRICING
from src.services.dispatch import DispatchService

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

CAR_PICKUP, CAR_DROPOFF = "Lekki Phase 1 Gate", "Victoria Island"


# ── Fakes ─────────────────────────────────────────────────────────────


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.driver_messages: list[tuple[str, dict[str, Any]]] = []
        self.customer_messages: list[tuple[str, str]] = []

    async def notify_driver(self, driver_id: str, ride_summary: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("SMS relay down")
        self.driver_messages.append((driver_id, ride_summary))

    async def notify_customer(self, ride_id: str, message: str) -> None:
        if self.fail:
            raise ConnectionError("SMS relay down")
        self.customer_messages.append((ride_id, message))


class FakeGateway:
    def __init__(self):
        self.fail = False
        self._counter = itertools.count(1)
        self.calls: list[tuple[str, float]] = []

    async def initiate_payment(self, ride_id: str, amount: float) -> str:
        if self.fail:
            raise PaymentGatewayError("gateway timeout")
        self.calls.append((ride_id, amount))
        return f"TX-{next(self._counter)}"


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, seed_demo_data=False, default_eta_min=10)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def pricing() -> PricingRegistry:
    return PricingRegistry(SEED_PRICING)


@pytest.fixture
def routes() -> StaticRouteProvider:
    return StaticRouteProvider(
        routes={
            (CAR_PICKUP, CAR_DROPOFF): RouteEstimate(distance_km=12.4, duration_min=28),
            ("A", "B"): RouteEstimate(distance_km=10.8, duration_min=34),
            ("Ikoyi", CAR_PICKUP): RouteEstimate(distance_km=6.0, duration_min=15),
        }
    )


@pytest.fixture
def drivers() -> DriverRepository:
    repo = DriverRepository()
    repo.add(Driver(id="d1", name="Adewale T.", vehicle_class=VehicleClass.CAR,
                    plate="LND 123 AB", location="Ikoyi"))
    repo.add(Driver(id="d2", name="Ifeoma C.", vehicle_class=VehicleClass.CAR,
                    status=DriverStatus.BUSY))
    repo.add(Driver(id="d3", name="Sani M.", vehicle_class=VehicleClass.BUS))
    repo.add(Driver(id="d4", name="Bola K.", vehicle_class=VehicleClass.CAR,
                    location=CAR_PICKUP))
    repo.add(Driver(id="d5", name="Chidi O.", vehicle_class=VehicleClass.CAR))
    return repo


@pytest.fixture
def shuttles() -> ShuttleRepository:
    repo = ShuttleRepository()
    repo.add(Shuttle(id="s1", driver_id="d3", driver_name="Sani M.", plate="LAG 221 RT",
                     capacity=18, reserved_seats=6, junctions=["A", "VGC", "B"]))
    return repo


@pytest.fixture
def service(
    test_settings, clock, notifier, gateway, pricing, routes, drivers, shuttles
) -> DispatchService:
    codes = itertools.count(100_001)
    return DispatchService(
        rides=RideRepository(),
        drivers=drivers,
        shuttles=shuttles,
        pricing=pricing,
        routes=routes,
        payments=gateway,
        notifier=notifier,
        settings=test_settings,
        clock=clock,
        public_id_factory=lambda: f"PTG-{next(codes)}",
    )


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient backed by the in-memory dispatch core."""
    from src.api.app import create_app
    from src.api.middleware import limiter

    limiter.reset()
    app = create_app(service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await service.drain_notifications()
