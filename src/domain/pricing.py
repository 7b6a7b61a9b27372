"""
Fare Calculator & Pricing Registry  (Copy-on-write snapshots)
=============================================================

Formula
-------
Fare = max(Minimum, round_half_up((Base + Distance x Per_KM + Duration x Per_Min) / 50) x 50)

* Rounding to 50 NGN gives customer-friendly upfront quotes.
* Every admin edit publishes a new immutable ``PricingSnapshot``; rides keep
  the id of the snapshot they were quoted from, so later edits never touch
  an existing quote.

Complexity: O(1) per fare, O(1) per snapshot swap.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Union

from .enums import VehicleClass
from .errors import InvalidInput, NotFound


def _check_amount(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidInput(f"{name} must be a non-negative number, got {value!r}")
    return value


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PricingRule:
    base: float
    per_km: float
    per_min: float
    minimum: float

    def __post_init__(self) -> None:
        for name in ("base", "per_km", "per_min", "minimum"):
            _check_amount(name, getattr(self, name))


@dataclass(frozen=True)
class PricingSnapshot:
    snapshot_id: str
    vehicle_class: VehicleClass
    rule: PricingRule
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# ── Fare Calculator ───────────────────────────────────────────────────


PricingTable = Mapping[VehicleClass, PricingRule]


def round_half_up(amount: float, step: int = 50) -> int:
    """Round *amount* to the nearest multiple of *step*, halves going up."""
    return int(math.floor(amount / step + 0.5)) * step


def estimate_fare(
    vehicle_class: VehicleClass,
    distance_km: float,
    duration_min: float,
    pricing: Union[PricingRule, PricingTable],
    step: int = 50,
) -> float:
    """Pure fare function.  Raises ``InvalidInput`` for negative inputs."""
    _check_amount("distance_km", distance_km)
    _check_amount("duration_min", duration_min)

    if isinstance(pricing, PricingRule):
        rule = pricing
    else:
        try:
            rule = pricing[VehicleClass(vehicle_class)]
        except (KeyError, ValueError):
            raise InvalidInput(f"No pricing for vehicle class {vehicle_class!r}")

    raw = rule.base + rule.per_km * distance_km + rule.per_min * duration_min
    return max(rule.minimum, round_half_up(raw, step))


# ── Registry ──────────────────────────────────────────────────────────


class PricingRegistry:
    """
    Per-vehicle-class pricing with atomically swapped snapshots.

    Readers dereference ``self._active`` once and never lock; writers build
    a fresh dict and rebind the attribute under ``self._write_lock``.
    """

    def __init__(self, initial: PricingTable):
        self._write_lock = threading.Lock()
        self._versions: dict[VehicleClass, int] = {}
        self._snapshots: dict[str, PricingSnapshot] = {}
        active: dict[VehicleClass, PricingSnapshot] = {}
        for vehicle_class, rule in initial.items():
            snapshot = self._new_snapshot(VehicleClass(vehicle_class), rule)
            active[snapshot.vehicle_class] = snapshot
        self._active = active

    def _new_snapshot(
        self, vehicle_class: VehicleClass, rule: PricingRule
    ) -> PricingSnapshot:
        version = self._versions.get(vehicle_class, 0) + 1
        self._versions[vehicle_class] = version
        snapshot = PricingSnapshot(
            snapshot_id=f"{vehicle_class.value}-v{version}",
            vehicle_class=vehicle_class,
            rule=rule,
        )
        self._snapshots[snapshot.snapshot_id] = snapshot
        return snapshot

    def active_snapshot(self, vehicle_class: VehicleClass) -> PricingSnapshot:
        active = self._active
        try:
            return active[VehicleClass(vehicle_class)]
        except (KeyError, ValueError):
            raise InvalidInput(f"No pricing for vehicle class {vehicle_class!r}")

    def get_active(self, vehicle_class: VehicleClass) -> PricingRule:
        return self.active_snapshot(vehicle_class).rule

    def update(self, vehicle_class: VehicleClass, rule: PricingRule) -> str:
        """Publish *rule* as the new active snapshot and return its id."""
        if not isinstance(rule, PricingRule):
            raise InvalidInput("rule must be a PricingRule")
        try:
            vehicle_class = VehicleClass(vehicle_class)
        except ValueError:
            raise InvalidInput(f"Unknown vehicle class {vehicle_class!r}")

        with self._write_lock:
            snapshot = self._new_snapshot(vehicle_class, rule)
            active = dict(self._active)
            active[vehicle_class] = snapshot
            self._active = active
        return snapshot.snapshot_id

    def get_snapshot(self, snapshot_id: str) -> PricingSnapshot:
        try:
            return self._snapshots[snapshot_id]
        except KeyError:
            raise NotFound(f"Unknown pricing snapshot {snapshot_id!r}")

    def history(self, vehicle_class: VehicleClass) -> list[PricingSnapshot]:
        vehicle_class = VehicleClass(vehicle_class)
        return [
            s for s in list(self._snapshots.values())
            if s.vehicle_class == vehicle_class
        ]

    def as_dict(self) -> dict[VehicleClass, PricingSnapshot]:
        return dict(self._active)
