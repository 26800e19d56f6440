"""FastAPI routes for storage location administration."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from pipevault.api.dependencies import CallerDep, DbSession, SessionFactory
from pipevault.models.enums import AllocationMode
from pipevault.models.storage_location import StorageLocation
from pipevault.services import capacity_ledger
from pipevault.services.capacity_ledger import CapacityLedger
from pipevault.services.transactions import run_in_transaction

router = APIRouter(prefix="/locations", tags=["locations"])


# --- Pydantic Schemas ---


class CreateLocationRequest(BaseModel):
    """Request schema for registering a storage location."""

    id: str = Field(description="Rack code (e.g., 'A-A1-5')")
    name: str = Field(description="Human-readable name")
    allocation_mode: AllocationMode = Field(description="LINEAR or SLOT")
    capacity: Decimal = Field(description="Capacity in the mode's unit (1 for SLOT)")


class LocationResponse(BaseModel):
    """Response schema for a storage location."""

    id: str = Field(description="Rack code")
    name: str = Field(description="Human-readable name")
    allocation_mode: str = Field(description="LINEAR or SLOT")
    capacity: Decimal = Field(description="Total capacity")
    occupied: Decimal = Field(description="Committed quantity")
    available: Decimal = Field(description="capacity - occupied")
    utilization: float = Field(description="Fraction of capacity in use (0.0-1.0)")
    updated_at: datetime = Field(description="When occupancy last changed")

    model_config = {"from_attributes": True}


class AdjustmentRequest(BaseModel):
    """Request schema for a manual occupancy adjustment."""

    new_occupied: Decimal = Field(description="Corrected occupancy")
    reason: str = Field(description="Justification (at least 10 characters)")


class AdjustmentResponse(BaseModel):
    """Response schema for a manual occupancy adjustment."""

    id: str = Field(description="Adjustment UUID")
    location_id: str = Field(description="Adjusted location")
    adjusted_by: str = Field(description="Admin identity")
    reason: str = Field(description="Justification")
    old_occupied: Decimal = Field(description="Occupancy before")
    new_occupied: Decimal = Field(description="Occupancy after")
    created_at: datetime = Field(description="When the adjustment was made")

    model_config = {"from_attributes": True}


def _to_response(location: StorageLocation) -> LocationResponse:
    return LocationResponse.model_validate(location)


# --- API Endpoints ---


@router.post("", response_model=LocationResponse, status_code=201)
async def create_location(
    body: CreateLocationRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> LocationResponse:
    """Register a storage location. Admin only."""
    location = await run_in_transaction(
        session_factory,
        capacity_ledger.create_location,
        caller,
        body.id,
        body.name,
        body.allocation_mode,
        body.capacity,
    )
    return _to_response(location)


@router.get("", response_model=list[LocationResponse])
async def list_locations(
    db: DbSession,
    caller: CallerDep,
    allocation_mode: Annotated[
        AllocationMode | None,
        Query(description="Filter by allocation mode"),
    ] = None,
) -> list[LocationResponse]:
    """List storage locations with their availability. Admin only."""
    caller.require_admin("list storage locations")
    locations = await capacity_ledger.list_locations(db, allocation_mode)
    return [_to_response(location) for location in locations]


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(
    location_id: str,
    db: DbSession,
    caller: CallerDep,
) -> LocationResponse:
    """Get a storage location by rack code. Admin only."""
    caller.require_admin("view storage locations")
    location = await CapacityLedger(db).get_location(location_id)
    return _to_response(location)


@router.post(
    "/{location_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=201,
)
async def adjust_location(
    location_id: str,
    body: AdjustmentRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> AdjustmentResponse:
    """Manually correct a location's occupancy. Admin only.

    The change and its reason are recorded in the adjustment history and the
    admin audit trail.
    """
    adjustment = await run_in_transaction(
        session_factory,
        capacity_ledger.adjust_occupancy,
        caller,
        location_id,
        body.new_occupied,
        body.reason,
    )
    return AdjustmentResponse.model_validate(adjustment)
