"""
Admin / dispatch endpoints
==========================

GET   /api/v1/admin/rides                         -- filter by status, class, payment
GET   /api/v1/admin/rides/{ride_id}/eligible-drivers
POST  /api/v1/admin/rides/{ride_id}/assign        -- driver, shuttle, or auto
POST  /api/v1/admin/rides/{ride_id}/status        -- advance the state machine
GET   /api/v1/admin/rides/{ride_id}/fare-audit    -- recompute from the quote's snapshot
GET   /api/v1/admin/drivers
PATCH /api/v1/admin/drivers/{driver_id}/status    -- available / offline
GET   /api/v1/admin/shuttles
POST  /api/v1/admin/shuttles/{shuttle_id}/advance -- next junction
GET   /api/v1/admin/pricing
PUT   /api/v1/admin/pricing/{vehicle_class}
GET   /api/v1/admin/payments                      -- gateway payment records
GET   /api/v1/admin/reports                       -- daily KPIs
GET   /api/v1/admin/health
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_dispatch
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    AssignRequest,
    DriverResponse,
    DriverStatusRequest,
    FareAuditResponse,
    HealthResponse,
    PricingResponse,
    PricingRuleBody,
    ReportResponse,
    RideResponse,
    ShuttleResponse,
    StatusUpdateRequest,
)
from src.domain.enums import PaymentMethod, RideStatus, VehicleClass
from src.domain.pricing import PricingRule, PricingSnapshot
from src.infrastructure.repositories import RideFilter
from src.services.dispatch import DispatchService

router = APIRouter(prefix="/admin", tags=["admin"])


def _pricing_response(snapshot: PricingSnapshot) -> PricingResponse:
    rule = snapshot.rule
    return PricingResponse(
        vehicle_class=snapshot.vehicle_class,
        snapshot_id=snapshot.snapshot_id,
        base=rule.base,
        per_km=rule.per_km,
        per_min=rule.per_min,
        minimum=rule.minimum,
        created_at=snapshot.created_at,
    )


# ── Rides ─────────────────────────────────────────────────────────────


@router.get("/rides", response_model=list[RideResponse], summary="List ride requests")
@limiter.limit(RATE_LIMIT)
async def list_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    vehicle_class: Optional[VehicleClass] = None,
    payment_method: Optional[PaymentMethod] = None,
    dispatch: DispatchService = Depends(get_dispatch),
):
    rides = dispatch.list_rides(
        RideFilter(status=status, vehicle_class=vehicle_class, payment_method=payment_method)
    )
    return [RideResponse.model_validate(r) for r in rides]


@router.get(
    "/rides/{ride_id}/eligible-drivers",
    response_model=list[DriverResponse],
    summary="Available drivers for a ride, nearest first",
)
@limiter.limit(RATE_LIMIT)
async def eligible_drivers(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    ride = dispatch.rides.get(ride_id)
    drivers = await dispatch.find_eligible_drivers(ride.vehicle_class, ride.pickup)
    return [DriverResponse.model_validate(d) for d in drivers]


@router.post(
    "/rides/{ride_id}/assign",
    response_model=RideResponse,
    summary="Assign a driver or shuttle",
    description="With neither driver_id nor shuttle_id the best eligible target is chosen.",
)
@limiter.limit(RATE_LIMIT)
async def assign_ride(
    request: Request,
    ride_id: str,
    body: AssignRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    if body.driver_id:
        ride = await dispatch.assign_driver(ride_id, body.driver_id, body.eta_min)
    elif body.shuttle_id:
        ride = await dispatch.assign_shuttle(ride_id, body.shuttle_id, body.eta_min)
    else:
        ride = await dispatch.auto_assign(ride_id, body.eta_min)
    return RideResponse.model_validate(ride)


@router.post("/rides/{ride_id}/status", response_model=RideResponse, summary="Update ride status")
@limiter.limit(RATE_LIMIT)
async def update_status(
    request: Request,
    ride_id: str,
    body: StatusUpdateRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(await dispatch.advance_status(ride_id, body.status))


@router.get("/rides/{ride_id}/fare-audit", response_model=FareAuditResponse)
@limiter.limit(RATE_LIMIT)
async def fare_audit(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return FareAuditResponse.model_validate(dispatch.audit_fare(ride_id))


# ── Drivers & shuttles ────────────────────────────────────────────────


@router.get("/drivers", response_model=list[DriverResponse], summary="Driver roster")
@limiter.limit(RATE_LIMIT)
async def list_drivers(
    request: Request,
    vehicle_class: Optional[VehicleClass] = None,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return [DriverResponse.model_validate(d) for d in dispatch.drivers.list_drivers(vehicle_class)]


@router.patch("/drivers/{driver_id}/status", response_model=DriverResponse)
@limiter.limit(RATE_LIMIT)
async def set_driver_status(
    request: Request,
    driver_id: str,
    body: DriverStatusRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    driver = await dispatch.set_driver_status(driver_id, body.status)
    return DriverResponse.model_validate(driver)


@router.get("/shuttles", response_model=list[ShuttleResponse], summary="Shuttle runs")
@limiter.limit(RATE_LIMIT)
async def list_shuttles(
    request: Request,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return [ShuttleResponse.model_validate(s) for s in dispatch.shuttles.list_shuttles()]


@router.post("/shuttles/{shuttle_id}/advance", response_model=ShuttleResponse)
@limiter.limit(RATE_LIMIT)
async def advance_shuttle(
    request: Request,
    shuttle_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return ShuttleResponse.model_validate(await dispatch.advance_shuttle(shuttle_id))


# ── Pricing ───────────────────────────────────────────────────────────


@router.get("/pricing", response_model=list[PricingResponse], summary="Active pricing")
@limiter.limit(RATE_LIMIT)
async def get_pricing(
    request: Request,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return [_pricing_response(s) for s in dispatch.pricing.as_dict().values()]


@router.put(
    "/pricing/{vehicle_class}",
    response_model=PricingResponse,
    summary="Publish new pricing",
    description="Applies to new quotes only; booked rides keep their fare.",
)
@limiter.limit(RATE_LIMIT)
async def update_pricing(
    request: Request,
    vehicle_class: VehicleClass,
    body: PricingRuleBody,
    dispatch: DispatchService = Depends(get_dispatch),
):
    snapshot_id = dispatch.update_pricing(vehicle_class, PricingRule(**body.model_dump()))
    return _pricing_response(dispatch.pricing.get_snapshot(snapshot_id))


# ── Payments & reports ────────────────────────────────────────────────


@router.get("/payments", response_model=list[RideResponse], summary="Gateway payment records")
@limiter.limit(RATE_LIMIT)
async def list_payments(
    request: Request,
    dispatch: DispatchService = Depends(get_dispatch),
):
    rides = dispatch.list_rides(RideFilter(payment_method=PaymentMethod.GATEWAY))
    return [RideResponse.model_validate(r) for r in rides]


@router.get("/reports", response_model=ReportResponse, summary="Daily KPIs")
@limiter.limit(RATE_LIMIT)
async def report(
    request: Request,
    day: Optional[date] = None,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return ReportResponse.model_validate(dispatch.report(day))


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
