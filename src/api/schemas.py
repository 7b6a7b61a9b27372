"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.domain.enums import (
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ShuttleStatus,
    VehicleClass,
)


# ── Requests ──────────────────────────────────────────────────────────


class QuoteRequest(BaseModel):
    vehicle_class: VehicleClass
    pickup: str = Field(..., max_length=200)
    dropoff: str = Field(..., max_length=200)


class RideCreateRequest(QuoteRequest):
    note: str = Field("", max_length=500)
    payment_method: PaymentMethod = PaymentMethod.CASH
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class AssignRequest(BaseModel):
    driver_id: Optional[str] = None
    shuttle_id: Optional[str] = None
    eta_min: Optional[int] = Field(None, description="Values below 1 clamp to 1.")

    @model_validator(mode="after")
    def _at_most_one_target(self) -> "AssignRequest":
        if self.driver_id and self.shuttle_id:
            raise ValueError("Assign either a driver or a shuttle, not both")
        return self


class StatusUpdateRequest(BaseModel):
    status: RideStatus


class DriverStatusRequest(BaseModel):
    status: DriverStatus


class PricingRuleBody(BaseModel):
    base: float = Field(..., ge=0)
    per_km: float = Field(..., ge=0)
    per_min: float = Field(..., ge=0)
    minimum: float = Field(..., ge=0)


class PaymentCallbackRequest(BaseModel):
    tx_ref: str = Field(..., min_length=1, max_length=100)
    succeeded: bool


# ── Responses ─────────────────────────────────────────────────────────


class QuoteResponse(BaseModel):
    vehicle_class: VehicleClass
    pickup: str
    dropoff: str
    distance_km: float
    duration_min: float
    fare: float
    pricing_snapshot_id: str

    model_config = {"from_attributes": True}


class AssignmentResponse(BaseModel):
    kind: str
    driver_id: str
    driver_name: str
    driver_phone: str
    vehicle: str
    plate: str
    shuttle_id: Optional[str] = None
    eta_min: int
    assigned_at: datetime

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    public_id: str
    vehicle_class: VehicleClass
    pickup: str
    dropoff: str
    note: str
    estimated_fare: float
    distance_km: float
    duration_min: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    tx_ref: Optional[str] = None
    status: RideStatus
    assignment: Optional[AssignmentResponse] = None
    cash_confirmed: bool
    pricing_snapshot_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: str
    name: str
    phone: str
    vehicle_class: VehicleClass
    vehicle: str
    plate: str
    status: DriverStatus
    current_ride_id: Optional[str] = None
    location: Optional[str] = None

    model_config = {"from_attributes": True}


class ShuttleResponse(BaseModel):
    id: str
    driver_id: str
    driver_name: str
    vehicle: str
    plate: str
    capacity: int
    filled: int
    free_seats: int
    status: ShuttleStatus
    junctions: list[str]
    junction_index: int
    current_junction: str
    final_destination: str
    accepted_ride_ids: list[str]

    model_config = {"from_attributes": True}


class PricingResponse(BaseModel):
    vehicle_class: VehicleClass
    snapshot_id: str
    base: float
    per_km: float
    per_min: float
    minimum: float
    created_at: datetime


class FareAuditResponse(BaseModel):
    ride_id: str
    pricing_snapshot_id: str
    quoted_fare: float
    recomputed_fare: float
    matches: bool

    model_config = {"from_attributes": True}


class ReportResponse(BaseModel):
    day: date
    count: int
    completed_count: int
    gateway_revenue: float
    cash_count: int

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    error: str
