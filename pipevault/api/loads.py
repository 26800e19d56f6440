"""FastAPI routes for trucking loads."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field, model_validator

from pipevault.api.dependencies import CallerDep, DbSession, SessionFactory
from pipevault.models.enums import LoadStatus
from pipevault.services import loads as load_service
from pipevault.services import reconciliation
from pipevault.services.approval_workflow import get_request_for_caller
from pipevault.services.transactions import run_in_transaction

router = APIRouter(prefix="/loads", tags=["loads"])


# --- Pydantic Schemas ---


class LoadResponse(BaseModel):
    """Response schema for a trucking load."""

    id: str = Field(description="Load UUID")
    request_id: str = Field(description="Parent storage request UUID")
    direction: str = Field(description="INBOUND or OUTBOUND")
    sequence_number: int = Field(description="Load number within request and direction")
    status: str = Field(description="Current lifecycle status")
    planned_quantity: Decimal = Field(description="Quantity scheduled on the truck")
    actual_quantity: Decimal | None = Field(description="Quantity reconciled on completion")
    location_id: str | None = Field(description="Planned destination or source location")
    completed_at: datetime | None = Field(description="When the load was completed")
    created_at: datetime = Field(description="When the load was scheduled")
    updated_at: datetime = Field(description="When the load was last updated")

    model_config = {"from_attributes": True}


class TransitionRequest(BaseModel):
    """Request schema for an admin status change."""

    status: LoadStatus = Field(description="Target status")


class ManifestItem(BaseModel):
    """One line of an extracted delivery manifest."""

    description: str | None = Field(default=None, description="Item description")
    quantity: Decimal = Field(description="Item quantity (joints)")


class CompleteLoadRequest(BaseModel):
    """Request schema for completing a load.

    Either ``actual_quantity`` or ``manifest_items`` must be given; a manifest
    is totalled into the actual quantity.
    """

    actual_quantity: Decimal | None = Field(default=None, description="Quantity received or picked up")
    manifest_items: list[ManifestItem] | None = Field(
        default=None,
        description="Manifest lines whose quantities sum to the actual quantity",
    )
    location_id: str | None = Field(
        default=None,
        description="Landing location (inbound) or source location (outbound)",
    )

    @model_validator(mode="after")
    def check_quantity_source(self) -> "CompleteLoadRequest":
        if (self.actual_quantity is None) == (self.manifest_items is None):
            raise ValueError("Provide exactly one of actual_quantity or manifest_items")
        return self


class MismatchWarningResponse(BaseModel):
    """Planned/actual mismatch reported on completion."""

    kind: str = Field(description="Always reconciliation_mismatch")
    message: str = Field(description="Human-readable summary")
    load_id: str = Field(description="Reconciled load")
    planned: Decimal = Field(description="Planned quantity")
    actual: Decimal = Field(description="Actual quantity")
    delta: Decimal = Field(description="planned - actual")


class CompletionResponse(BaseModel):
    """Response schema for a load completion."""

    load_id: str = Field(description="Completed load UUID")
    inventory_record_ids: list[str] = Field(description="Created or picked-up inventory records")
    warning: MismatchWarningResponse | None = Field(description="Quantity mismatch, if any")
    replayed: bool = Field(description="True if the load was already completed")


# --- API Endpoints ---


@router.get("/{load_id}", response_model=LoadResponse)
async def get_load(
    load_id: UUID,
    db: DbSession,
    caller: CallerDep,
) -> LoadResponse:
    """Get a trucking load by ID."""
    load = await load_service.get_load(db, str(load_id))
    await get_request_for_caller(db, caller, load.request_id)
    return LoadResponse.model_validate(load)


@router.post("/{load_id}/transition", response_model=LoadResponse)
async def transition_load(
    load_id: UUID,
    body: TransitionRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> LoadResponse:
    """Move a load to a new status.

    Admin only. Legal moves follow the load lifecycle; COMPLETED is reached
    through the complete endpoint.
    """
    load = await run_in_transaction(
        session_factory,
        load_service.advance_load,
        caller,
        str(load_id),
        body.status,
    )
    return LoadResponse.model_validate(load)


@router.post("/{load_id}/complete", response_model=CompletionResponse)
async def complete_load(
    load_id: UUID,
    body: CompleteLoadRequest,
    caller: CallerDep,
    session_factory: SessionFactory,
) -> CompletionResponse:
    """Reconcile a completed load into inventory.

    Returns the affected inventory records and, when the actual quantity
    differs from the planned one beyond tolerance, a mismatch warning.
    Completing again with the same quantity returns the original result.
    """
    if body.manifest_items is not None:
        actual_quantity = reconciliation.sum_manifest(item.quantity for item in body.manifest_items)
    else:
        actual_quantity = body.actual_quantity

    result = await run_in_transaction(
        session_factory,
        reconciliation.complete_load,
        caller,
        str(load_id),
        actual_quantity,
        location_id=body.location_id,
    )
    warning = result.warning.to_dict() if result.warning else None
    return CompletionResponse(
        load_id=result.load_id,
        inventory_record_ids=list(result.inventory_record_ids),
        warning=MismatchWarningResponse(**warning) if warning else None,
        replayed=result.replayed,
    )
