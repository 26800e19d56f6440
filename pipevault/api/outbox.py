"""FastAPI routes for the notification outbox consumer."""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from pipevault.api.dependencies import CallerDep, DbSession
from pipevault.services import outbox as outbox_service

router = APIRouter(prefix="/outbox", tags=["outbox"])


# --- Pydantic Schemas ---


class NotificationResponse(BaseModel):
    """Response schema for an outbox record."""

    id: str = Field(description="Notification UUID")
    type: str = Field(description="Notification type")
    payload: dict[str, Any] = Field(description="Typed payload for the notification type")
    dedupe_key: str = Field(description="Idempotency key")
    processed: bool = Field(description="Whether the record has been delivered")
    attempts: int = Field(description="Delivery attempts so far")
    last_error: str | None = Field(description="Error of the most recent failed attempt")
    processed_at: datetime | None = Field(description="When the record was processed")
    created_at: datetime = Field(description="When the record was enqueued")

    model_config = {"from_attributes": True}


class FailureRequest(BaseModel):
    """Request schema for recording a failed delivery."""

    error: str = Field(description="Delivery error message")


# --- API Endpoints ---


@router.get("/pending", response_model=list[NotificationResponse])
async def list_pending(
    db: DbSession,
    caller: CallerDep,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum records")] = 50,
) -> list[NotificationResponse]:
    """List unprocessed notifications, oldest first. Admin only."""
    caller.require_admin("read the notification outbox")
    records = await outbox_service.fetch_pending(db, limit=limit)
    return [NotificationResponse.model_validate(record) for record in records]


@router.post("/{notification_id}/processed", response_model=NotificationResponse)
async def mark_processed(
    notification_id: UUID,
    db: DbSession,
    caller: CallerDep,
) -> NotificationResponse:
    """Mark a notification as delivered. Admin only."""
    caller.require_admin("update the notification outbox")
    record = await outbox_service.mark_processed(db, str(notification_id))
    return NotificationResponse.model_validate(record)


@router.post("/{notification_id}/failed", response_model=NotificationResponse)
async def mark_failed(
    notification_id: UUID,
    body: FailureRequest,
    db: DbSession,
    caller: CallerDep,
) -> NotificationResponse:
    """Record a failed delivery attempt. Admin only."""
    caller.require_admin("update the notification outbox")
    record = await outbox_service.record_failure(db, str(notification_id), body.error)
    return NotificationResponse.model_validate(record)
