"""Storage request approval orchestration.

This module provides the operations that change a storage request's status:
- Create a new PENDING request
- Approve a request, reserving capacity across the chosen locations
- Reject a request
- Flag stored inventory for pickup
- Close a request once all of its material has left the yard

Each operation runs inside the caller's session; the unit-of-work runner in
``transactions.py`` commits or rolls back the whole thing, so an approval
either reserves capacity, flips the request and its loads, and enqueues the
notification, or does none of it.
"""

import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.enums import (
    AllocationMode,
    InventoryStatus,
    LoadDirection,
    LoadStatus,
    RequestStatus,
    ReservationStatus,
)
from pipevault.models.inventory_record import InventoryRecord
from pipevault.models.location_reservation import LocationReservation
from pipevault.models.storage_request import StorageRequest
from pipevault.models.trucking_load import TruckingLoad
from pipevault.services import load_state_machine, outbox
from pipevault.services.allocator import LocationAmount, RackCapacityAllocator, dedupe_ids
from pipevault.services.audit_logging import log_admin_action
from pipevault.services.caller import Caller
from pipevault.services.capacity_ledger import CapacityLedger
from pipevault.services.errors import (
    InvalidInputError,
    InvalidQuantityError,
    InvalidStateError,
    NotFoundError,
)
from pipevault.services.notification_payloads import (
    AssignedLocation,
    PickupRequestedPayload,
    RequestApprovedPayload,
    RequestRejectedPayload,
)

logger = logging.getLogger(__name__)

# Inbound loads in these states may still bring material in
OPEN_INBOUND_STATES = (
    LoadStatus.NEW.value,
    LoadStatus.APPROVED.value,
    LoadStatus.IN_TRANSIT.value,
    LoadStatus.ARRIVED.value,
)


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of an approval.

    Attributes:
        request_id: Approved request
        status: Request status after the call
        assigned_locations: Reserved amount per location
        replayed: True when the request was already approved with the same
            parameters and nothing was changed
        high_utilization_location_ids: Locations above the utilization
            warning threshold after reservation
    """

    request_id: str
    status: RequestStatus
    assigned_locations: tuple[LocationAmount, ...]
    replayed: bool = False
    high_utilization_location_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RejectionResult:
    """Outcome of a rejection."""

    request_id: str
    status: RequestStatus
    replayed: bool = False


@dataclass(frozen=True)
class PickupResult:
    """Outcome of a pickup request."""

    request_id: str
    status: RequestStatus
    inventory_record_ids: tuple[str, ...]
    quantity: Decimal


async def get_request(
    session: AsyncSession,
    request_id: str,
    lock: bool = False,
) -> StorageRequest:
    """Get a storage request by id, optionally locking the row.

    Raises:
        NotFoundError: If the request does not exist
    """
    stmt = (
        select(StorageRequest)
        .where(StorageRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("StorageRequest", request_id)
    return request


async def get_request_for_caller(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
) -> StorageRequest:
    """Get a request the caller is allowed to see."""
    request = await get_request(session, request_id)
    caller.require_tenant_access(request.tenant_id, "view this request")
    return request


async def list_request_inventory(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
) -> list[InventoryRecord]:
    """Get every inventory record of a request, oldest first."""
    request = await get_request_for_caller(session, caller, request_id)
    result = await session.execute(
        select(InventoryRecord)
        .where(InventoryRecord.request_id == request.id)
        .order_by(InventoryRecord.created_at, InventoryRecord.id)
    )
    return list(result.scalars().all())


async def create_request(
    session: AsyncSession,
    caller: Caller,
    tenant_id: str,
    reference_id: str,
    contact_email: str,
    required_quantity: Decimal,
) -> StorageRequest:
    """Create a PENDING storage request.

    Tenants may only create requests for their own tenant; admins may create
    them on anyone's behalf.

    Raises:
        PermissionDeniedError: Tenant acting for another tenant
        InvalidQuantityError: Non-positive quantity
        InvalidInputError: Missing reference or contact
    """
    caller.require_tenant_access(tenant_id, "create requests")

    required_quantity = Decimal(required_quantity)
    if required_quantity <= 0:
        raise InvalidQuantityError(
            f"Required quantity must be positive, got {required_quantity}",
            required=required_quantity,
        )
    if not reference_id or not reference_id.strip():
        raise InvalidInputError("A project reference is required")
    if not contact_email or not contact_email.strip():
        raise InvalidInputError("A contact email is required")

    request = StorageRequest(
        tenant_id=tenant_id,
        reference_id=reference_id.strip(),
        contact_email=contact_email.strip(),
        required_quantity=required_quantity,
        status=RequestStatus.PENDING.value,
        assigned_location_ids=[],
    )
    session.add(request)
    await session.flush()

    logger.info(
        "Created storage request %s (%s) for tenant %s: %s",
        request.id,
        request.reference_id,
        tenant_id,
        required_quantity,
    )
    return request


async def _request_reservations(
    session: AsyncSession,
    request_id: str,
) -> list[LocationReservation]:
    result = await session.execute(
        select(LocationReservation)
        .where(LocationReservation.request_id == request_id)
        .order_by(LocationReservation.created_at, LocationReservation.id)
    )
    return list(result.scalars().all())


async def _loads_in_status(
    session: AsyncSession,
    request_id: str,
    status: LoadStatus,
    direction: LoadDirection | None = None,
) -> list[TruckingLoad]:
    stmt = select(TruckingLoad).where(
        TruckingLoad.request_id == request_id,
        TruckingLoad.status == status.value,
    )
    if direction is not None:
        stmt = stmt.where(TruckingLoad.direction == direction.value)
    result = await session.execute(stmt.order_by(TruckingLoad.sequence_number))
    return list(result.scalars().all())


def _is_approval_replay(
    request: StorageRequest,
    required_quantity: Decimal,
    location_ids: list[str],
) -> bool:
    if request.status != RequestStatus.APPROVED.value:
        return False
    if request.approved_quantity is None or Decimal(request.approved_quantity) != required_quantity:
        return False
    return set(request.assigned_location_ids or []) <= set(location_ids)


async def approve(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    location_ids: list[str],
    required_quantity: Decimal,
    notes: str | None = None,
    mode_split: Mapping[AllocationMode, Decimal] | None = None,
) -> ApprovalResult:
    """Approve a storage request and reserve its capacity.

    Args:
        session: Database session (one transaction)
        caller: Must be an admin
        request_id: Request to approve
        location_ids: Candidate locations chosen by the admin
        required_quantity: Quantity to reserve
        notes: Optional admin notes
        mode_split: Explicit quantity per allocation mode, required when the
            candidates mix SLOT and LINEAR locations

    Returns:
        ApprovalResult with the per-location reservation

    Raises:
        PermissionDeniedError: Caller is not an admin
        NotFoundError: Unknown request
        InvalidStateError: Request is not PENDING (and not a replay)
        InvalidLocationError, InsufficientCapacityError,
        MixedAllocationModeError, InvalidQuantityError: From the allocator
    """
    caller.require_admin("approve storage requests")
    request = await get_request(session, request_id, lock=True)
    required_quantity = Decimal(required_quantity)
    candidate_ids = dedupe_ids(list(location_ids))

    if _is_approval_replay(request, required_quantity, candidate_ids):
        reservations = await _request_reservations(session, request.id)
        ledger = CapacityLedger(session)
        modes = {
            location.id: location.mode
            for location in await ledger.get_locations(
                dedupe_ids([reservation.location_id for reservation in reservations])
            )
        }
        logger.info("Approval of request %s replayed; no changes made", request.id)
        return ApprovalResult(
            request_id=request.id,
            status=RequestStatus.APPROVED,
            assigned_locations=tuple(
                LocationAmount(
                    location_id=reservation.location_id,
                    amount=Decimal(reservation.reserved_quantity),
                    mode=modes[reservation.location_id],
                )
                for reservation in reservations
            ),
            replayed=True,
        )

    if request.status != RequestStatus.PENDING.value:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            expected=[RequestStatus.PENDING.value],
        )

    allocator = RackCapacityAllocator(CapacityLedger(session))
    allocation = await allocator.allocate(required_quantity, candidate_ids, mode_split)

    now = datetime.now(UTC)
    request.status = RequestStatus.APPROVED.value
    request.approved_by = caller.identity
    request.approved_at = now
    request.approved_quantity = required_quantity
    request.assigned_location_ids = allocation.location_ids
    request.admin_notes = notes

    for item in allocation.amounts:
        session.add(
            LocationReservation(
                request_id=request.id,
                location_id=item.location_id,
                reserved_quantity=item.amount,
                consumed_quantity=Decimal("0"),
                status=ReservationStatus.ACTIVE.value,
            )
        )

    for load in await _loads_in_status(
        session, request.id, LoadStatus.NEW, LoadDirection.INBOUND
    ):
        load_state_machine.transition(load, LoadStatus.APPROVED)

    await outbox.enqueue(
        session,
        RequestApprovedPayload(
            request_id=request.id,
            reference_id=request.reference_id,
            tenant_id=request.tenant_id,
            recipient=request.contact_email,
            assigned_locations=[
                AssignedLocation(location_id=item.location_id, quantity=item.amount)
                for item in allocation.amounts
            ],
            quantity=required_quantity,
            notes=notes,
        ),
        dedupe_key=f"request_approved:{request.id}",
    )
    await log_admin_action(
        session,
        actor_id=caller.identity,
        action="approve_request",
        entity_type="storage_request",
        entity_id=request.id,
        details={
            "required_quantity": required_quantity,
            "assigned_locations": {
                item.location_id: item.amount for item in allocation.amounts
            },
            "high_utilization_location_ids": list(allocation.high_utilization_location_ids),
            "notes": notes,
        },
    )
    await session.flush()

    logger.info(
        "Request %s approved by %s: %s across %s",
        request.id,
        caller.identity,
        required_quantity,
        ", ".join(allocation.location_ids),
    )
    return ApprovalResult(
        request_id=request.id,
        status=RequestStatus.APPROVED,
        assigned_locations=allocation.amounts,
        replayed=False,
        high_utilization_location_ids=allocation.high_utilization_location_ids,
    )


async def reject(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    reason: str,
) -> RejectionResult:
    """Reject a PENDING storage request.

    No capacity is touched. NEW loads of the request are rejected with it.

    Raises:
        PermissionDeniedError: Caller is not an admin
        NotFoundError: Unknown request
        InvalidInputError: Empty reason
        InvalidStateError: Request is APPROVED, PICKUP_REQUESTED, COMPLETE, or
            REJECTED with a different reason
    """
    caller.require_admin("reject storage requests")
    reason = (reason or "").strip()
    if not reason:
        raise InvalidInputError("A rejection reason is required")

    request = await get_request(session, request_id, lock=True)

    if request.status == RequestStatus.REJECTED.value and request.rejection_reason == reason:
        logger.info("Rejection of request %s replayed; no changes made", request.id)
        return RejectionResult(
            request_id=request.id,
            status=RequestStatus.REJECTED,
            replayed=True,
        )

    if request.status != RequestStatus.PENDING.value:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            expected=[RequestStatus.PENDING.value],
        )

    request.status = RequestStatus.REJECTED.value
    request.rejection_reason = reason

    for load in await _loads_in_status(session, request.id, LoadStatus.NEW):
        load_state_machine.transition(load, LoadStatus.REJECTED)

    await outbox.enqueue(
        session,
        RequestRejectedPayload(
            request_id=request.id,
            reference_id=request.reference_id,
            tenant_id=request.tenant_id,
            recipient=request.contact_email,
            reason=reason,
        ),
        dedupe_key=f"request_rejected:{request.id}",
    )
    await log_admin_action(
        session,
        actor_id=caller.identity,
        action="reject_request",
        entity_type="storage_request",
        entity_id=request.id,
        details={"reason": reason},
    )
    await session.flush()

    logger.info("Request %s rejected by %s: %s", request.id, caller.identity, reason)
    return RejectionResult(request_id=request.id, status=RequestStatus.REJECTED)


async def request_pickup(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    inventory_record_ids: list[str],
) -> PickupResult:
    """Flag stored inventory of a request for pickup.

    Records already PENDING_PICKUP are left as they are, so a retried call is
    harmless.

    Raises:
        PermissionDeniedError: Tenant acting on another tenant's request
        NotFoundError: Unknown request, or a record not belonging to it
        InvalidInputError: No records given
        InvalidStateError: Request not APPROVED/PICKUP_REQUESTED, or a record
            already picked up
    """
    record_ids = dedupe_ids(list(inventory_record_ids))
    if not record_ids:
        raise InvalidInputError("At least one inventory record is required")

    request = await get_request(session, request_id, lock=True)
    caller.require_tenant_access(request.tenant_id, "request pickups")

    allowed = (RequestStatus.APPROVED.value, RequestStatus.PICKUP_REQUESTED.value)
    if request.status not in allowed:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            expected=list(allowed),
        )

    result = await session.execute(
        select(InventoryRecord)
        .where(
            InventoryRecord.request_id == request.id,
            InventoryRecord.id.in_(record_ids),
        )
        .with_for_update()
    )
    records = {record.id: record for record in result.scalars()}
    for record_id in record_ids:
        if record_id not in records:
            raise NotFoundError("InventoryRecord", record_id)

    quantity = Decimal("0")
    for record_id in record_ids:
        record = records[record_id]
        if record.status == InventoryStatus.PICKED_UP.value:
            raise InvalidStateError(
                "InventoryRecord",
                record.id,
                record.status,
                expected=[InventoryStatus.IN_STORAGE.value],
            )
        record.status = InventoryStatus.PENDING_PICKUP.value
        quantity += Decimal(record.quantity)

    request.status = RequestStatus.PICKUP_REQUESTED.value

    digest = hashlib.sha256(",".join(sorted(record_ids)).encode()).hexdigest()[:16]
    await outbox.enqueue(
        session,
        PickupRequestedPayload(
            request_id=request.id,
            reference_id=request.reference_id,
            tenant_id=request.tenant_id,
            recipient=request.contact_email,
            inventory_record_ids=record_ids,
            quantity=quantity,
        ),
        dedupe_key=f"pickup_requested:{request.id}:{digest}",
    )
    await session.flush()

    logger.info(
        "Pickup requested on %s by %s: %d record(s), %s",
        request.id,
        caller.identity,
        len(record_ids),
        quantity,
    )
    return PickupResult(
        request_id=request.id,
        status=RequestStatus.PICKUP_REQUESTED,
        inventory_record_ids=tuple(record_ids),
        quantity=quantity,
    )


async def complete_request_if_drained(
    session: AsyncSession,
    request: StorageRequest,
) -> bool:
    """Mark a request COMPLETE once nothing of it is left in the yard.

    A request is drained when it has no IN_STORAGE or PENDING_PICKUP
    inventory and no inbound load that could still deliver. Capacity held by
    reservations that were never used is released.

    Returns:
        True if the request was completed by this call
    """
    if request.status == RequestStatus.COMPLETE.value:
        return False

    stored = await session.scalar(
        select(func.count(InventoryRecord.id)).where(
            InventoryRecord.request_id == request.id,
            InventoryRecord.status.in_(
                [InventoryStatus.IN_STORAGE.value, InventoryStatus.PENDING_PICKUP.value]
            ),
        )
    )
    if stored:
        return False

    open_inbound = await session.scalar(
        select(func.count(TruckingLoad.id)).where(
            TruckingLoad.request_id == request.id,
            TruckingLoad.direction == LoadDirection.INBOUND.value,
            TruckingLoad.status.in_(OPEN_INBOUND_STATES),
        )
    )
    if open_inbound:
        return False

    ledger = CapacityLedger(session)
    for reservation in await _request_reservations(session, request.id):
        if reservation.status != ReservationStatus.ACTIVE.value:
            continue
        if reservation.remaining > 0:
            await ledger.release(reservation.location_id, reservation.remaining)
        reservation.status = ReservationStatus.RELEASED.value

    request.status = RequestStatus.COMPLETE.value
    await session.flush()
    logger.info("Request %s complete", request.id)
    return True
