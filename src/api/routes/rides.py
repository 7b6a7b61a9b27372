"""
Customer ride endpoints
=======================

POST  /api/v1/rides/quote                  -- fare estimate for a trip
POST  /api/v1/rides                        -- book a ride (returns 202 Accepted)
GET   /api/v1/rides/{ride_id}              -- track status, driver and ETA
GET   /api/v1/rides/code/{public_id}       -- look a booking up by its PTG code
PATCH /api/v1/rides/{ride_id}/cancel       -- cancel (idempotent)
POST  /api/v1/rides/{ride_id}/payment      -- (re)start the gateway payment
POST  /api/v1/rides/{ride_id}/switch-to-cash
POST  /api/v1/rides/{ride_id}/cash-paid    -- customer confirms cash handed over
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_dispatch
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    QuoteRequest,
    QuoteResponse,
    RideCreateRequest,
    RideResponse,
)
from src.services.dispatch import DispatchService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post("/quote", response_model=QuoteResponse, summary="Get a fare estimate")
@limiter.limit(RATE_LIMIT)
async def quote_ride(
    request: Request,
    body: QuoteRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    quote = await dispatch.quote(body.vehicle_class, body.pickup, body.dropoff)
    return QuoteResponse.model_validate(quote)


@router.post(
    "",
    status_code=202,
    response_model=RideResponse,
    summary="Book a ride",
    responses={202: {"description": "Ride requested; dispatch happens next."}},
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    ride = await dispatch.book_ride(
        body.vehicle_class,
        body.pickup,
        body.dropoff,
        payment_method=body.payment_method,
        note=body.note,
        idempotency_key=body.idempotency_key,
    )
    return RideResponse.model_validate(ride)


@router.get("/code/{public_id}", response_model=RideResponse, summary="Find a ride by code")
@limiter.limit(RATE_LIMIT)
async def get_ride_by_code(
    request: Request,
    public_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(dispatch.rides.get_by_public_id(public_id))


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride status")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(dispatch.rides.get(ride_id))


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Cancels any ride that has not completed. The assigned driver is "
        "released, or the shuttle seat freed. Cancelling twice is a no-op."
    ),
)
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(await dispatch.cancel_ride(ride_id))


@router.post("/{ride_id}/payment", response_model=RideResponse, summary="Start gateway payment")
@limiter.limit(RATE_LIMIT)
async def start_payment(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(await dispatch.start_payment(ride_id))


@router.post("/{ride_id}/switch-to-cash", response_model=RideResponse, summary="Pay cash instead")
@limiter.limit(RATE_LIMIT)
async def switch_to_cash(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(await dispatch.switch_to_cash(ride_id))


@router.post("/{ride_id}/cash-paid", response_model=RideResponse, summary="Confirm cash payment")
@limiter.limit(RATE_LIMIT)
async def confirm_cash_paid(
    request: Request,
    ride_id: str,
    dispatch: DispatchService = Depends(get_dispatch),
):
    return RideResponse.model_validate(await dispatch.confirm_cash_paid(ride_id))
