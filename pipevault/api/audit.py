"""FastAPI routes for admin audit log queries."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from pipevault.api.dependencies import CallerDep, DbSession
from pipevault.services.audit_logging import (
    AuditLogFilters,
    count_audit_logs,
    get_audit_logs,
    get_entity_audit_trail,
)

router = APIRouter(prefix="/audit", tags=["audit"])


# --- Pydantic Schemas ---


class AuditLogResponse(BaseModel):
    """Response schema for a single audit log entry."""

    id: str = Field(description="Audit log UUID")
    actor_id: str = Field(description="Admin who acted")
    action: str = Field(description="Action taken")
    entity_type: str = Field(description="Kind of entity affected")
    entity_id: str = Field(description="Affected entity identifier")
    details: dict[str, Any] | None = Field(description="Structured action details")
    created_at: datetime = Field(description="When the action was recorded")

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    """Response schema for audit log listing with pagination."""

    items: list[AuditLogResponse] = Field(description="List of audit log entries")
    total: int = Field(description="Total number of matching entries")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages")


# --- API Endpoints ---


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: DbSession,
    caller: CallerDep,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[
        int, Query(ge=1, le=100, description="Items per page")
    ] = 20,
    actor_id: Annotated[
        str | None,
        Query(description="Filter by admin identity"),
    ] = None,
    action: Annotated[
        str | None,
        Query(description="Filter by action"),
    ] = None,
    entity_type: Annotated[
        str | None,
        Query(description="Filter by entity kind"),
    ] = None,
    entity_id: Annotated[
        str | None,
        Query(description="Filter by entity identifier"),
    ] = None,
    start_time: Annotated[
        datetime | None,
        Query(description="Filter for entries after this time"),
    ] = None,
    end_time: Annotated[
        datetime | None,
        Query(description="Filter for entries before this time"),
    ] = None,
) -> AuditLogListResponse:
    """List admin audit entries, most recent first. Admin only."""
    caller.require_admin("read the audit log")
    filters = AuditLogFilters(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_time=start_time,
        end_time=end_time,
    )

    total = await count_audit_logs(db, filters)
    total_pages = max(1, (total + page_size - 1) // page_size)
    offset = (page - 1) * page_size

    items = await get_audit_logs(db, filters=filters, limit=page_size, offset=offset)

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get("/{entity_type}/{entity_id}", response_model=list[AuditLogResponse])
async def get_entity_trail(
    entity_type: str,
    entity_id: str,
    db: DbSession,
    caller: CallerDep,
) -> list[AuditLogResponse]:
    """Get the chronological audit trail of one entity. Admin only."""
    caller.require_admin("read the audit log")
    entries = await get_entity_audit_trail(db, entity_type, entity_id)
    return [AuditLogResponse.model_validate(entry) for entry in entries]
