"""
Payment gateway callback
========================

POST /api/v1/payments/callback -- gateway reports the outcome of a tx_ref
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_dispatch
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import PaymentCallbackRequest, RideResponse
from src.services.dispatch import DispatchService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/callback", response_model=RideResponse, summary="Gateway payment result")
@limiter.limit(RATE_LIMIT)
async def payment_callback(
    request: Request,
    body: PaymentCallbackRequest,
    dispatch: DispatchService = Depends(get_dispatch),
):
    ride = await dispatch.record_gateway_result(body.tx_ref, body.succeeded)
    return RideResponse.model_validate(ride)
