"""
Dispatch Service
================

Orchestrates the ride lifecycle on top of the aggregates:

1. **Quote**     -- route estimate from the provider, fare from the active
   pricing snapshot.
2. **Book**      -- create the ride, start the gateway payment if needed.
3. **Dispatch**  -- filter eligible drivers / shuttles and assign.
4. **Track**     -- status updates, cancellation, payment reconciliation.

Concurrency safety
------------------
Every mutation runs under the per-entity locks of the ride *and* the
driver or shuttle it touches (see ``src.infrastructure.locks``).  Checks
and mutations happen inside the same critical section, so two assignments
racing for one driver yield exactly one success and one ``Conflict``.

Notifications are scheduled as background tasks; their failures are
logged and never retried.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Callable, Coroutine, Optional

from src.config import Settings, settings as default_settings
from src.domain.entities import (
    Driver,
    Resource,
    Ride,
    Shuttle,
    clean_locations,
    normalize_location,
)
from src.domain.enums import (
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    VehicleClass,
)
from src.domain.errors import (
    CapacityExceeded,
    Conflict,
    InvalidInput,
    InvalidState,
    RideAlreadyAssigned,
)
from src.domain.ports import (
    NotificationChannel,
    PaymentGateway,
    PaymentGatewayError,
    RouteLookupError,
    RouteProvider,
)
from src.domain.pricing import PricingRegistry, PricingRule, estimate_fare
from src.infrastructure.locks import EntityLocks
from src.infrastructure.repositories import (
    DriverRepository,
    RideFilter,
    RideReport,
    RideRepository,
    ShuttleRepository,
)

logger = logging.getLogger(__name__)

PUBLIC_ID_ATTEMPTS = 20


@dataclass(frozen=True)
class FareQuote:
    vehicle_class: VehicleClass
    pickup: str
    dropoff: str
    distance_km: float
    duration_min: float
    fare: float
    pricing_snapshot_id: str


@dataclass(frozen=True)
class FareAudit:
    ride_id: str
    pricing_snapshot_id: str
    quoted_fare: float
    recomputed_fare: float

    @property
    def matches(self) -> bool:
        return self.quoted_fare == self.recomputed_fare


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchService:
    def __init__(
        self,
        rides: RideRepository,
        drivers: DriverRepository,
        shuttles: ShuttleRepository,
        pricing: PricingRegistry,
        routes: RouteProvider,
        payments: PaymentGateway,
        notifier: NotificationChannel,
        settings: Optional[Settings] = None,
        locks: Optional[EntityLocks] = None,
        clock: Callable[[], datetime] = _utcnow,
        public_id_factory: Optional[Callable[[], str]] = None,
    ):
        self.rides = rides
        self.drivers = drivers
        self.shuttles = shuttles
        self.pricing = pricing
        self.routes = routes
        self.payments = payments
        self.notifier = notifier
        self.settings = settings or default_settings
        self.locks = locks or EntityLocks()
        self.clock = clock
        self._public_id_factory = public_id_factory or self._random_public_id
        self._pending: set[asyncio.Task] = set()

    # ── identifiers & helpers ─────────────────────────────────────

    def _random_public_id(self) -> str:
        return f"{self.settings.public_id_prefix}-{100_000 + secrets.randbelow(900_000)}"

    def _new_public_id(self) -> str:
        for _ in range(PUBLIC_ID_ATTEMPTS):
            candidate = self._public_id_factory()
            if not self.rides.public_id_taken(candidate):
                return candidate
        raise InvalidState("Could not allocate a unique ride code")

    def _eta(self, eta_min: Any) -> int:
        if eta_min is None or eta_min == "":
            return max(1, self.settings.default_eta_min)
        try:
            return max(1, int(eta_min))
        except (TypeError, ValueError):
            raise InvalidInput(f"ETA must be a whole number of minutes, got {eta_min!r}")

    def _resource_for(self, ride: Ride) -> Optional[Resource]:
        if ride.assignment is None:
            return None
        if ride.assignment.shuttle_id:
            return self.shuttles.get(ride.assignment.shuttle_id)
        return self.drivers.get(ride.assignment.driver_id)

    @staticmethod
    def _key(entity: Any) -> Optional[str]:
        if entity is None:
            return None
        if isinstance(entity, Ride):
            return f"ride:{entity.id}"
        if isinstance(entity, Shuttle):
            return f"shuttle:{entity.id}"
        return f"driver:{entity.id}"

    @asynccontextmanager
    async def _locked_ride(self, ride_id: str) -> AsyncIterator[tuple[Ride, Optional[Resource]]]:
        """Lock a ride together with whatever driver or shuttle it holds."""
        ride = self.rides.get(ride_id)
        while True:
            resource = self._resource_for(ride)
            held = self.locks.hold(self._key(ride), self._key(resource))
            await held.acquire()
            if self._resource_for(ride) is resource:
                break
            # assigned while we waited; lock the new resource too
            held.release()
        try:
            yield ride, resource
        finally:
            held.release()

    def ride_summary(self, ride: Ride) -> dict[str, Any]:
        return {
            "ride_id": ride.id,
            "public_id": ride.public_id,
            "vehicle_class": ride.vehicle_class.value,
            "pickup": ride.pickup,
            "dropoff": ride.dropoff,
            "note": ride.note,
            "fare": ride.estimated_fare,
            "currency": self.settings.currency,
            "payment_method": ride.payment_method.value,
            "status": ride.status.value,
            "eta_min": ride.assignment.eta_min if ride.assignment else None,
        }

    # ── notifications ─────────────────────────────────────────────

    def _fire(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Notification delivery failed: %r", exc)

    async def drain_notifications(self) -> None:
        """Wait for scheduled notifications (shutdown / tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── fares ─────────────────────────────────────────────────────

    async def quote(
        self, vehicle_class: VehicleClass, pickup: str, dropoff: str
    ) -> FareQuote:
        pickup, dropoff = clean_locations(pickup, dropoff)
        try:
            vehicle_class = VehicleClass(vehicle_class)
        except ValueError:
            raise InvalidInput(f"Unknown vehicle class {vehicle_class!r}")

        try:
            route = await self.routes.estimate_route(pickup, dropoff)
        except (RouteLookupError, OSError) as exc:
            raise InvalidInput(f"Could not estimate route: {exc}") from exc

        snapshot = self.pricing.active_snapshot(vehicle_class)
        fare = estimate_fare(
            vehicle_class,
            route.distance_km,
            route.duration_min,
            snapshot.rule,
            self.settings.fare_rounding_step,
        )
        return FareQuote(
            vehicle_class=vehicle_class,
            pickup=pickup,
            dropoff=dropoff,
            distance_km=route.distance_km,
            duration_min=route.duration_min,
            fare=fare,
            pricing_snapshot_id=snapshot.snapshot_id,
        )

    def update_pricing(self, vehicle_class: VehicleClass, rule: PricingRule) -> str:
        snapshot_id = self.pricing.update(vehicle_class, rule)
        logger.info("Pricing for %s updated -> %s (%s)", vehicle_class, snapshot_id, rule)
        return snapshot_id

    def audit_fare(self, ride_id: str) -> FareAudit:
        """Recompute a ride's quote from the snapshot it was booked under."""
        ride = self.rides.get(ride_id)
        if ride.pricing_snapshot_id is None:
            raise InvalidState(f"Ride {ride.public_id} has no pricing snapshot")
        snapshot = self.pricing.get_snapshot(ride.pricing_snapshot_id)
        recomputed = estimate_fare(
            ride.vehicle_class,
            ride.distance_km,
            ride.duration_min,
            snapshot.rule,
            self.settings.fare_rounding_step,
        )
        return FareAudit(
            ride_id=ride.id,
            pricing_snapshot_id=snapshot.snapshot_id,
            quoted_fare=ride.estimated_fare,
            recomputed_fare=recomputed,
        )

    # ── booking ───────────────────────────────────────────────────

    async def book_ride(
        self,
        vehicle_class: VehicleClass,
        pickup: str,
        dropoff: str,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        note: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Ride:
        async with self.locks.hold(f"booking:{idempotency_key}" if idempotency_key else None):
            if idempotency_key:
                existing = self.rides.get_by_idempotency_key(idempotency_key)
                if existing is not None:
                    return existing

            quote = await self.quote(vehicle_class, pickup, dropoff)
            ride = Ride.create(
                public_id=self._new_public_id(),
                vehicle_class=quote.vehicle_class,
                pickup=quote.pickup,
                dropoff=quote.dropoff,
                note=note,
                payment_method=payment_method,
                estimated_fare=quote.fare,
                distance_km=quote.distance_km,
                duration_min=quote.duration_min,
                pricing_snapshot_id=quote.pricing_snapshot_id,
                idempotency_key=idempotency_key,
                now=self.clock(),
            )
            self.rides.add(ride)

        logger.info(
            "Ride %s booked: %s %s -> %s, %s, fare %.0f %s",
            ride.public_id, ride.vehicle_class.value, ride.pickup,
            ride.dropoff, ride.payment_method.value, ride.estimated_fare,
            self.settings.currency,
        )
        if ride.payment_method == PaymentMethod.GATEWAY:
            try:
                await self._start_gateway_payment(ride)
            except PaymentGatewayError:
                logger.warning(
                    "Payment initiation failed for ride %s; customer can retry",
                    ride.public_id, exc_info=True,
                )
        self._fire(self.notifier.notify_customer(
            ride.id, f"Ride {ride.public_id} requested, finding you a driver"
        ))
        return ride

    async def _start_gateway_payment(self, ride: Ride) -> None:
        tx_ref = await self.payments.initiate_payment(ride.id, ride.estimated_fare)
        async with self.locks.hold(self._key(ride)):
            ride.attach_tx_ref(tx_ref, now=self.clock())

    async def start_payment(self, ride_id: str) -> Ride:
        """(Re)start the gateway payment for a ride that has not been paid."""
        ride = self.rides.get(ride_id)
        async with self.locks.hold(self._key(ride)):
            ride.ensure_payable()
            if ride.payment_status == PaymentStatus.PENDING and ride.tx_ref:
                return ride
        try:
            await self._start_gateway_payment(ride)
        except PaymentGatewayError as exc:
            raise Conflict(f"Payment gateway unavailable: {exc}") from exc
        return ride

    # ── dispatch ──────────────────────────────────────────────────

    async def _distance_from(self, origin: Optional[str], pickup: str) -> Optional[float]:
        if not origin:
            return None
        if normalize_location(origin) == normalize_location(pickup):
            return 0.0
        try:
            route = await self.routes.estimate_route(origin, pickup)
        except (RouteLookupError, OSError):
            return None
        return route.distance_km

    async def find_eligible_drivers(
        self, vehicle_class: VehicleClass, pickup: Optional[str] = None
    ) -> list[Driver]:
        """Available drivers of the class, nearest to *pickup* first.

        Drivers running a shuttle are dispatched through their seats and
        never appear here.
        """
        vehicle_class = VehicleClass(vehicle_class)
        on_shuttle = {s.driver_id for s in self.shuttles.list_shuttles()}
        candidates = [
            d for d in self.drivers.list_drivers(vehicle_class)
            if d.is_available and d.id not in on_shuttle
        ]
        if not pickup:
            return candidates

        distances = [await self._distance_from(d.location, pickup) for d in candidates]
        ranked = sorted(
            range(len(candidates)),
            key=lambda i: (distances[i] is None, distances[i] or 0.0, i),
        )
        return [candidates[i] for i in ranked]

    def find_eligible_shuttles(
        self, vehicle_class: VehicleClass, pickup: Optional[str] = None
    ) -> list[Shuttle]:
        if VehicleClass(vehicle_class) != VehicleClass.BUS:
            return []
        candidates = [s for s in self.shuttles.list_shuttles() if s.can_accept()]
        return sorted(
            candidates,
            key=lambda s: (not (pickup and s.serves(pickup)), -s.free_seats, s.id),
        )

    def find_eligible_shuttle(
        self, vehicle_class: VehicleClass, pickup: Optional[str] = None
    ) -> Optional[Shuttle]:
        shuttles = self.find_eligible_shuttles(vehicle_class, pickup)
        return shuttles[0] if shuttles else None

    async def assign_driver(
        self, ride_id: str, driver_id: str, eta_min: Optional[int] = None
    ) -> Ride:
        ride = self.rides.get(ride_id)
        driver = self.drivers.get(driver_id)
        eta = self._eta(eta_min)
        async with self.locks.hold(self._key(ride), self._key(driver)):
            ride.assign(driver, eta, now=self.clock())

        logger.info("Ride %s assigned to driver %s (ETA %d min)", ride.public_id, driver.id, eta)
        self._fire(self.notifier.notify_driver(driver.id, self.ride_summary(ride)))
        self._fire(self.notifier.notify_customer(
            ride.id, f"{driver.name} is on the way • ETA {eta} mins"
        ))
        return ride

    async def assign_shuttle(
        self, ride_id: str, shuttle_id: str, eta_min: Optional[int] = None
    ) -> Ride:
        ride = self.rides.get(ride_id)
        shuttle = self.shuttles.get(shuttle_id)
        eta = self._eta(eta_min)
        async with self.locks.hold(self._key(ride), self._key(shuttle)):
            try:
                ride.assign(shuttle, eta, now=self.clock())
            except CapacityExceeded as exc:
                raise Conflict(str(exc)) from exc

        logger.info(
            "Ride %s seated on shuttle %s (%d/%d)",
            ride.public_id, shuttle.id, shuttle.filled, shuttle.capacity,
        )
        self._fire(self.notifier.notify_driver(shuttle.driver_id, self.ride_summary(ride)))
        self._fire(self.notifier.notify_customer(
            ride.id, f"Seat reserved on shuttle {shuttle.plate or shuttle.id} • ETA {eta} mins"
        ))
        return ride

    async def auto_assign(self, ride_id: str, eta_min: Optional[int] = None) -> Ride:
        """Assign the best eligible driver or shuttle, skipping ones lost to a race."""
        ride = self.rides.get(ride_id)
        if ride.vehicle_class == VehicleClass.BUS:
            shuttles = self.find_eligible_shuttles(ride.vehicle_class, ride.pickup)
            for shuttle in shuttles:
                try:
                    return await self.assign_shuttle(ride.id, shuttle.id, eta_min)
                except RideAlreadyAssigned:
                    raise
                except Conflict:
                    continue
            raise CapacityExceeded("No shuttle with free seats is available")

        drivers = await self.find_eligible_drivers(ride.vehicle_class, ride.pickup)
        for driver in drivers:
            try:
                return await self.assign_driver(ride.id, driver.id, eta_min)
            except RideAlreadyAssigned:
                raise
            except Conflict:
                continue
        raise CapacityExceeded(f"No {ride.vehicle_class.value} drivers are available")

    # ── lifecycle ─────────────────────────────────────────────────

    async def advance_status(self, ride_id: str, new_status: RideStatus) -> Ride:
        async with self._locked_ride(ride_id) as (ride, resource):
            previous = ride.status
            ride.advance_status(
                new_status,
                resource,
                require_payment=self.settings.require_gateway_payment_to_complete,
                now=self.clock(),
            )
        if ride.status != previous:
            logger.info("Ride %s: %s -> %s", ride.public_id, previous.value, ride.status.value)
            self._fire(self.notifier.notify_customer(
                ride.id, f"Ride {ride.public_id} is now {ride.status.value}"
            ))
        return ride

    async def cancel_ride(self, ride_id: str) -> Ride:
        async with self._locked_ride(ride_id) as (ride, resource):
            changed = ride.cancel(resource, now=self.clock())
        if changed:
            logger.info("Ride %s cancelled", ride.public_id)
            if resource is not None:
                driver_id = resource.driver_id if isinstance(resource, Shuttle) else resource.id
                self._fire(self.notifier.notify_driver(driver_id, self.ride_summary(ride)))
            self._fire(self.notifier.notify_customer(
                ride.id, f"Ride {ride.public_id} cancelled"
            ))
        return ride

    # ── payments ──────────────────────────────────────────────────

    async def confirm_cash_paid(self, ride_id: str) -> Ride:
        async with self._locked_ride(ride_id) as (ride, _):
            ride.confirm_cash_paid(now=self.clock())
        logger.info("Cash payment confirmed for ride %s", ride.public_id)
        return ride

    async def record_gateway_result(self, tx_ref: str, succeeded: bool) -> Ride:
        ride = self.rides.get_by_tx_ref(tx_ref)
        async with self._locked_ride(ride.id) as (ride, _):
            ride.record_gateway_result(tx_ref, succeeded, now=self.clock())
        logger.info(
            "Gateway result for ride %s (%s): %s",
            ride.public_id, tx_ref, ride.payment_status.value,
        )
        self._fire(self.notifier.notify_customer(
            ride.id,
            "Payment received" if succeeded else "Payment failed, please retry or switch to cash",
        ))
        return ride

    async def switch_to_cash(self, ride_id: str) -> Ride:
        async with self._locked_ride(ride_id) as (ride, _):
            ride.switch_to_cash(now=self.clock())
        logger.info("Ride %s switched to cash", ride.public_id)
        return ride

    # ── roster & shuttles ─────────────────────────────────────────

    async def set_driver_status(self, driver_id: str, status: DriverStatus) -> Driver:
        driver = self.drivers.get(driver_id)
        async with self.locks.hold(self._key(driver)):
            driver.set_status(status)
        logger.info("Driver %s is now %s", driver.id, driver.status.value)
        return driver

    async def advance_shuttle(self, shuttle_id: str) -> Shuttle:
        shuttle = self.shuttles.get(shuttle_id)
        async with self.locks.hold(self._key(shuttle)):
            junction = shuttle.advance_junction()
        logger.info("Shuttle %s at %s (%s)", shuttle.id, junction, shuttle.status.value)
        return shuttle

    # ── queries ───────────────────────────────────────────────────

    def list_rides(self, ride_filter: Optional[RideFilter] = None) -> list[Ride]:
        return self.rides.list_rides(ride_filter)

    def report(self, day: Optional[date] = None) -> RideReport:
        return self.rides.report(day or self.clock().date())
