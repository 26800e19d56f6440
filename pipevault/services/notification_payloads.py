"""Typed notification payloads.

One pydantic model per notification type, combined into a tagged union on
the ``type`` field, so the core and the outbox consumer agree on shape.
"""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from pipevault.models.enums import NotificationType


class AssignedLocation(BaseModel):
    """Capacity reserved on one location."""

    model_config = ConfigDict(frozen=True)

    location_id: str = Field(description="Storage location id")
    quantity: Decimal = Field(description="Units reserved on the location")


class _RequestPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(description="Storage request UUID")
    reference_id: str = Field(description="Customer-facing project reference")
    tenant_id: str = Field(description="Owning tenant")
    recipient: str = Field(description="Email address to notify")


class RequestApprovedPayload(_RequestPayload):
    """Sent when an admin approves a storage request."""

    type: Literal["request_approved"] = NotificationType.REQUEST_APPROVED.value
    assigned_locations: list[AssignedLocation] = Field(description="Reserved locations")
    quantity: Decimal = Field(description="Approved quantity")
    notes: str | None = Field(default=None, description="Admin notes")


class RequestRejectedPayload(_RequestPayload):
    """Sent when an admin rejects a storage request."""

    type: Literal["request_rejected"] = NotificationType.REQUEST_REJECTED.value
    reason: str = Field(description="Rejection reason")


class PickupRequestedPayload(_RequestPayload):
    """Sent when inventory is flagged for pickup."""

    type: Literal["pickup_requested"] = NotificationType.PICKUP_REQUESTED.value
    inventory_record_ids: list[str] = Field(description="Records pending pickup")
    quantity: Decimal = Field(description="Total quantity pending pickup")


class LoadStatusChangedPayload(_RequestPayload):
    """Sent when an admin moves a load through its lifecycle."""

    type: Literal["load_status_changed"] = NotificationType.LOAD_STATUS_CHANGED.value
    load_id: str = Field(description="Trucking load UUID")
    direction: str = Field(description="INBOUND or OUTBOUND")
    sequence_number: int = Field(description="Load number within the request")
    previous_status: str = Field(description="Status before the change")
    status: str = Field(description="Status after the change")


class LoadDeliveredPayload(_RequestPayload):
    """Sent when an inbound load is reconciled into inventory."""

    type: Literal["load_delivered"] = NotificationType.LOAD_DELIVERED.value
    load_id: str = Field(description="Trucking load UUID")
    location_id: str = Field(description="Location the material landed on")
    planned_quantity: Decimal = Field(description="Quantity planned on the truck")
    actual_quantity: Decimal = Field(description="Quantity received")
    inventory_record_ids: list[str] = Field(description="Created inventory records")
    mismatch_delta: Decimal | None = Field(
        default=None,
        description="planned - actual when outside tolerance",
    )


class LoadPickedUpPayload(_RequestPayload):
    """Sent when an outbound load is reconciled."""

    type: Literal["load_picked_up"] = NotificationType.LOAD_PICKED_UP.value
    load_id: str = Field(description="Trucking load UUID")
    quantity: Decimal = Field(description="Quantity picked up")
    inventory_record_ids: list[str] = Field(description="Records picked up")
    request_complete: bool = Field(description="Whether the request is now complete")


NotificationPayload = Annotated[
    RequestApprovedPayload
    | RequestRejectedPayload
    | PickupRequestedPayload
    | LoadStatusChangedPayload
    | LoadDeliveredPayload
    | LoadPickedUpPayload,
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[NotificationPayload] = TypeAdapter(NotificationPayload)


def parse_payload(data: dict) -> NotificationPayload:
    """Validate a stored payload dict into its typed variant."""
    return _payload_adapter.validate_python(data)
