"""Boundary contracts for the collaborators the dispatch core consumes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class RouteEstimate:
    distance_km: float
    duration_min: float


class RouteLookupError(Exception):
    """The distance/duration provider could not resolve a route."""


class PaymentGatewayError(Exception):
    """The payment gateway refused or failed to start a payment."""


class RouteProvider(Protocol):
    async def estimate_route(self, pickup: str, dropoff: str) -> RouteEstimate: ...


class PaymentGateway(Protocol):
    async def initiate_payment(self, ride_id: str, amount: float) -> str: ...


class NotificationChannel(Protocol):
    async def notify_driver(self, driver_id: str, ride_summary: dict[str, Any]) -> None: ...

    async def notify_customer(self, ride_id: str, message: str) -> None: ...
