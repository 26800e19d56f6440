"""FastAPI routes for storage requests and their approval."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from pipevault.api.dependencies import CallerDep, DbSession, SessionFactory
from pipevault.api.loads import LoadResponse
from pipevault.models.enums import AllocationMode, LoadDirection
from pipevault.services import approval_workflow
from pipevault.services import loads as load_service
from pipevault.services.errors import InvalidInputError
from pipevault.services.transactions import run_in_transaction

router = APIRouter(prefix="/requests", tags=["requests"])


# --- Pydantic Schemas ---


class CreateStorageRequest(BaseModel):
    """Request schema for a new storage request."""

    tenant_id: str | None = Field(
        default=None,
        description="Owning tenant (defaults to the caller's tenant)",
    )
    reference_id: str = Field(description="Customer-facing project reference")
    contact_email: str = Field(description="Recipient for request notifications")
    required_quantity: Decimal = Field(description="Quantity to store (joints)")


class StorageRequestResponse(BaseModel):
    """Response schema for a storage request."""

    id: str = Field(description="Request UUID")
    tenant_id: str = Field(description="Owning tenant")
    reference_id: str = Field(description="Customer-facing project reference")
    contact_email: str = Field(description="Notification recipient")
    required_quantity: Decimal = Field(description="Quantity requested")
    status: str = Field(description="Request status")
    assigned_location_ids: list[str] | None = Field(description="Locations reserved on approval")
    approved_quantity: Decimal | None = Field(description="Quantity reserved on approval")
    approved_by: str | None = Field(description="Approving admin")
    approved_at: datetime | None = Field(description="Approval timestamp")
    rejection_reason: str | None = Field(description="Reason given on rejection")
    admin_notes: str | None = Field(description="Admin notes")
    created_at: datetime = Field(description="When the request was created")
    updated_at: datetime = Field(description="When the request was last updated")

    model_config = {"from_attributes": True}


class InventoryRecordResponse(BaseModel):
    """Response schema for an inventory record."""

    id: str = Field(description="Record UUID")
    request_id: str = Field(description="Storage request UUID")
    location_id: str = Field(description="Location holding the material")
    quantity: Decimal = Field(description="Quantity held")
    status: str = Field(description="IN_STORAGE, PENDING_PICKUP or PICKED_UP")
    origin_load_id: str | None = Field(description="Delivering load")
    removing_load_id: str | None = Field(description="Load that picked the material up")
    parent_record_id: str | None = Field(description="Record this one was split from")
    picked_up_at: datetime | None = Field(description="Pickup timestamp")
    created_at: datetime = Field(description="When the record was created")

    model_config = {"from_attributes": True}


class ApproveRequest(BaseModel):
    """Request schema for approving a storage request."""

    location_ids: list[str] = Field(description="Candidate storage locations")
    required_quantity: Decimal = Field(description="Quantity to reserve")
    notes: str | None = Field(default=None, description="Optional admin notes")
    mode_split: dict[AllocationMode, Decimal] | None = Field(
        default=None,
        description="Quantity per allocation mode when mixing SLOT and LINEAR locations",
    )


class AssignedLocationResponse(BaseModel):
    """Capacity reserved on one location."""

    location_id: str = Field(description="Storage location id")
    amount: Decimal = Field(description="Reserved units")
    mode: str = Field(description="LINEAR or SLOT")


class ApprovalResponse(BaseModel):
    """Response schema for an approval."""

    request_id: str = Field(description="Request UUID")
    status: str = Field(description="Request status")
    assigned_locations: list[AssignedLocationResponse] = Field(description="Reservation split")
    replayed: bool = Field(description="True if the request was already approved")
    high_utilization_location_ids: list[str] = Field(
        description="Locations above the utilization warning threshold",
    )


class RejectRequest(BaseModel):
    """Request schema for rejecting a storage request."""

    reason: str = Field(description="Reason for rejection")


class RejectionResponse(BaseModel):
    """Response schema for a rejection."""

    request_id: str = Field(description="Request UUID")
    status: str = Field(description="Request status")
    replayed: bool = Field(description="True if the request was already rejected")


class PickupRequest(BaseModel):
    """Request schema for requesting a pickup."""

    inventory_record_ids: list[str] = Field(description="Records to pick up")


class PickupResponse(BaseModel):
    """Response schema for a pickup request."""

    request_id: str = Field(description="Request UUID")
    status: str = Field(description="Request status")
    inventory_record_ids: list[str] = Field(description="Records pending pickup")
    quantity: Decimal = Field(description="Total quantity pending pickup")


class CreateLoadRequest(BaseModel):
    """Request schema for scheduling a trucking load."""

    direction: LoadDirection = Field(description="INBOUND or OUTBOUND")
    sequence_number: int = Field(description="Load number within request and direction")
    planned_quantity: Decimal = Field(description="Quantity scheduled on the truck")
    location_id: str | None = Field(default=None, description="Planned destination or source")


# --- API Endpoints ---


@router.post("", response_model=StorageRequestResponse, status_code=201)
async def create_storage_request(
    body: CreateStorageRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> StorageRequestResponse:
    """Create a PENDING storage request."""
    tenant_id = body.tenant_id or caller.tenant_id
    if not tenant_id:
        raise InvalidInputError("tenant_id is required when acting as an admin")

    request = await run_in_transaction(
        session_factory,
        approval_workflow.create_request,
        caller,
        tenant_id,
        body.reference_id,
        body.contact_email,
        body.required_quantity,
    )
    return StorageRequestResponse.model_validate(request)


@router.get("/{request_id}", response_model=StorageRequestResponse)
async def get_storage_request(
    request_id: UUID,
    db: DbSession,
    caller: CallerDep,
) -> StorageRequestResponse:
    """Get a storage request by ID."""
    request = await approval_workflow.get_request_for_caller(db, caller, str(request_id))
    return StorageRequestResponse.model_validate(request)


@router.get("/{request_id}/inventory", response_model=list[InventoryRecordResponse])
async def get_request_inventory(
    request_id: UUID,
    db: DbSession,
    caller: CallerDep,
) -> list[InventoryRecordResponse]:
    """List every inventory record of a storage request, oldest first."""
    records = await approval_workflow.list_request_inventory(db, caller, str(request_id))
    return [InventoryRecordResponse.model_validate(record) for record in records]


@router.post("/{request_id}/approve", response_model=ApprovalResponse)
async def approve_request(
    request_id: UUID,
    body: ApproveRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> ApprovalResponse:
    """Approve a storage request and reserve capacity.

    Admin only. The quantity is split across the candidate locations
    largest-available first. Repeating an approval with the same quantity
    and locations returns the existing approval with ``replayed`` set.
    """
    result = await run_in_transaction(
        session_factory,
        approval_workflow.approve,
        caller,
        str(request_id),
        body.location_ids,
        body.required_quantity,
        notes=body.notes,
        mode_split=body.mode_split,
    )
    return ApprovalResponse(
        request_id=result.request_id,
        status=result.status.value,
        assigned_locations=[
            AssignedLocationResponse(
                location_id=item.location_id,
                amount=item.amount,
                mode=item.mode.value,
            )
            for item in result.assigned_locations
        ],
        replayed=result.replayed,
        high_utilization_location_ids=list(result.high_utilization_location_ids),
    )


@router.post("/{request_id}/reject", response_model=RejectionResponse)
async def reject_request(
    request_id: UUID,
    body: RejectRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> RejectionResponse:
    """Reject a PENDING storage request. Admin only."""
    result = await run_in_transaction(
        session_factory,
        approval_workflow.reject,
        caller,
        str(request_id),
        body.reason,
    )
    return RejectionResponse(
        request_id=result.request_id,
        status=result.status.value,
        replayed=result.replayed,
    )


@router.post("/{request_id}/pickup", response_model=PickupResponse)
async def request_pickup(
    request_id: UUID,
    body: PickupRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> PickupResponse:
    """Flag stored inventory of a request for pickup."""
    result = await run_in_transaction(
        session_factory,
        approval_workflow.request_pickup,
        caller,
        str(request_id),
        body.inventory_record_ids,
    )
    return PickupResponse(
        request_id=result.request_id,
        status=result.status.value,
        inventory_record_ids=list(result.inventory_record_ids),
        quantity=result.quantity,
    )


@router.post("/{request_id}/loads", response_model=LoadResponse, status_code=201)
async def create_load(
    request_id: UUID,
    body: CreateLoadRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
    response: Response,
) -> LoadResponse:
    """Schedule a trucking load.

    Returns 201 for a new load and 200 when an identical load already exists
    under the same direction and sequence number.
    """
    load, created = await run_in_transaction(
        session_factory,
        load_service.create_load,
        caller,
        str(request_id),
        body.direction,
        body.sequence_number,
        body.planned_quantity,
        location_id=body.location_id,
    )
    if not created:
        response.status_code = 200
    return LoadResponse.model_validate(load)
