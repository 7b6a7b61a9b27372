"""Service wiring and FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from src.config import Settings, settings as default_settings
from src.domain.ports import NotificationChannel, RouteEstimate
from src.domain.pricing import PricingRegistry
from src.infrastructure.notifications import (
    LoggingNotificationChannel,
    RedisNotificationChannel,
)
from src.infrastructure.payments import MockPaymentGateway
from src.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    ShuttleRepository,
)
from src.infrastructure.routing import StaticRouteProvider
from src.infrastructure.seed import SEED_PRICING, seed_routes, seed_state
from src.services.dispatch import DispatchService


def build_notifier(settings: Settings) -> NotificationChannel:
    if settings.notification_backend == "redis":
        from src.infrastructure.redis_client import get_redis

        return RedisNotificationChannel(
            get_redis(settings.redis_url), settings.notification_channel_prefix
        )
    return LoggingNotificationChannel()


def build_dispatch_service(settings: Optional[Settings] = None) -> DispatchService:
    """Assemble a fresh in-memory dispatch core, seeded if configured."""
    settings = settings or default_settings
    rides, drivers, shuttles = RideRepository(), DriverRepository(), ShuttleRepository()
    pricing = PricingRegistry(SEED_PRICING)
    routes = StaticRouteProvider(
        default=RouteEstimate(
            distance_km=settings.default_distance_km,
            duration_min=settings.default_duration_min,
        )
    )
    if settings.seed_demo_data:
        seed_routes(routes)
        seed_state(rides, drivers, shuttles, pricing, settings.fare_rounding_step)

    return DispatchService(
        rides=rides,
        drivers=drivers,
        shuttles=shuttles,
        pricing=pricing,
        routes=routes,
        payments=MockPaymentGateway(prefix=settings.public_id_prefix),
        notifier=build_notifier(settings),
        settings=settings,
    )


def get_dispatch(request: Request) -> DispatchService:
    return request.app.state.dispatch
