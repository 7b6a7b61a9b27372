"""
Static distance / duration provider.

Assumption
----------
No maps API is wired in, so known landmark pairs are looked up in a table
and everything else falls back to a default estimate.  In production this
module would be replaced by a routing-service client that returns actual
road distances and traffic-aware durations.
"""

from __future__ import annotations

from typing import Mapping, Optional

from src.domain.entities import normalize_location
from src.domain.ports import RouteEstimate, RouteLookupError


class StaticRouteProvider:
    def __init__(
        self,
        routes: Optional[Mapping[tuple[str, str], RouteEstimate]] = None,
        default: Optional[RouteEstimate] = None,
    ):
        self._routes: dict[tuple[str, str], RouteEstimate] = {}
        for (pickup, dropoff), estimate in (routes or {}).items():
            self.add_route(pickup, dropoff, estimate)
        self.default = default

    def add_route(self, pickup: str, dropoff: str, estimate: RouteEstimate) -> None:
        """Register a route; the reverse direction gets the same estimate."""
        a, b = normalize_location(pickup), normalize_location(dropoff)
        self._routes[(a, b)] = estimate
        self._routes.setdefault((b, a), estimate)

    async def estimate_route(self, pickup: str, dropoff: str) -> RouteEstimate:
        key = (normalize_location(pickup), normalize_location(dropoff))
        estimate = self._routes.get(key, self.default)
        if estimate is None:
            raise RouteLookupError(f"No route from {pickup!r} to {dropoff!r}")
        return estimate
