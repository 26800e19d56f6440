"""Trucking load scheduling and admin-driven lifecycle changes."""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.enums import LoadDirection, LoadStatus, RequestStatus
from pipevault.models.trucking_load import TruckingLoad
from pipevault.services import load_state_machine, outbox
from pipevault.services.approval_workflow import get_request
from pipevault.services.audit_logging import log_admin_action
from pipevault.services.caller import Caller
from pipevault.services.capacity_ledger import CapacityLedger
from pipevault.services.errors import (
    InvalidInputError,
    InvalidQuantityError,
    InvalidStateError,
    NotFoundError,
)
from pipevault.services.notification_payloads import LoadStatusChangedPayload

logger = logging.getLogger(__name__)

# Loads can no longer be scheduled on requests in these states
CLOSED_REQUEST_STATES = (RequestStatus.REJECTED.value, RequestStatus.COMPLETE.value)

# Loads only move forward while their request is approved
ACTIVE_REQUEST_STATES = (RequestStatus.APPROVED.value, RequestStatus.PICKUP_REQUESTED.value)
FORWARD_LOAD_STATES = (
    LoadStatus.APPROVED,
    LoadStatus.IN_TRANSIT,
    LoadStatus.ARRIVED,
    LoadStatus.DELIVERED,
)


async def get_load(session: AsyncSession, load_id: str, lock: bool = False) -> TruckingLoad:
    """Get a trucking load by id, optionally locking the row.

    Raises:
        NotFoundError: If the load does not exist
    """
    stmt = (
        select(TruckingLoad)
        .where(TruckingLoad.id == load_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    load = result.scalar_one_or_none()
    if load is None:
        raise NotFoundError("TruckingLoad", load_id)
    return load


async def _find_load(
    session: AsyncSession,
    request_id: str,
    direction: LoadDirection,
    sequence_number: int,
) -> TruckingLoad | None:
    result = await session.execute(
        select(TruckingLoad).where(
            TruckingLoad.request_id == request_id,
            TruckingLoad.direction == direction.value,
            TruckingLoad.sequence_number == sequence_number,
        )
    )
    return result.scalar_one_or_none()


def _same_load(
    load: TruckingLoad,
    planned_quantity: Decimal,
    location_id: str | None,
) -> bool:
    return Decimal(load.planned_quantity) == planned_quantity and load.location_id == location_id


async def create_load(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    direction: LoadDirection,
    sequence_number: int,
    planned_quantity: Decimal,
    location_id: str | None = None,
) -> tuple[TruckingLoad, bool]:
    """Schedule a trucking load for a request.

    The (request, direction, sequence) key is unique, so a retried call with
    the same parameters returns the load created the first time.

    Args:
        session: Database session
        caller: Admin, or the tenant owning the request
        request_id: Parent request
        direction: INBOUND or OUTBOUND
        sequence_number: Load number within request and direction (>= 1)
        planned_quantity: Quantity scheduled on the truck
        location_id: Optional planned destination or source

    Returns:
        Tuple of (load, created)

    Raises:
        NotFoundError: Unknown request
        PermissionDeniedError: Tenant acting on another tenant's request
        InvalidStateError: Request closed, or the key is taken by a different load
        InvalidQuantityError: Non-positive planned quantity
        InvalidInputError: Sequence number below 1
        InvalidLocationError: Unknown location
    """
    direction = LoadDirection(direction)
    planned_quantity = Decimal(planned_quantity)
    if planned_quantity <= 0:
        raise InvalidQuantityError(
            f"Planned quantity must be positive, got {planned_quantity}",
            planned=planned_quantity,
        )
    if sequence_number < 1:
        raise InvalidInputError(f"Sequence number must be at least 1, got {sequence_number}")

    request = await get_request(session, request_id)
    caller.require_tenant_access(request.tenant_id, "schedule loads")

    existing = await _find_load(session, request.id, direction, sequence_number)
    if existing is not None:
        if _same_load(existing, planned_quantity, location_id):
            return existing, False
        raise InvalidStateError(
            "TruckingLoad",
            existing.id,
            existing.status,
            reason=f"{direction.value} #{sequence_number} already scheduled with different details",
        )

    if request.status in CLOSED_REQUEST_STATES:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            reason="no further loads can be scheduled",
        )
    if location_id is not None:
        await CapacityLedger(session).get_location(location_id)

    load = TruckingLoad(
        request_id=request.id,
        direction=direction.value,
        sequence_number=sequence_number,
        status=LoadStatus.NEW.value,
        planned_quantity=planned_quantity,
        location_id=location_id,
    )
    try:
        async with session.begin_nested():
            session.add(load)
            await session.flush()
    except IntegrityError:
        # A concurrent retry inserted the same key first
        existing = await _find_load(session, request.id, direction, sequence_number)
        if existing is not None and _same_load(existing, planned_quantity, location_id):
            return existing, False
        raise

    logger.info(
        "Scheduled %s load #%d for request %s: %s",
        direction.value,
        sequence_number,
        request.id,
        planned_quantity,
    )
    return load, True


async def advance_load(
    session: AsyncSession,
    caller: Caller,
    load_id: str,
    target: LoadStatus,
) -> TruckingLoad:
    """Move a load to ``target`` on an admin's instruction.

    COMPLETED is only reachable through reconciliation. Asking for the status
    the load is already in is a no-op. Forward moves wait for the request to
    be approved; cancelling and rejecting are always allowed.

    Raises:
        PermissionDeniedError: Caller is not an admin
        NotFoundError: Unknown load
        InvalidInputError: Target is COMPLETED
        InvalidStateTransitionError: Transition not in the table
        InvalidStateError: Moving the load forward while the request is not
            APPROVED or PICKUP_REQUESTED
    """
    caller.require_admin("change load status")
    target = LoadStatus(target)
    if target == LoadStatus.COMPLETED:
        raise InvalidInputError("Loads are completed by reconciling their actual quantity")

    load = await get_load(session, load_id, lock=True)
    previous = LoadStatus(load.status)
    if previous == target:
        return load

    request = await get_request(session, load.request_id, lock=True)
    if target in FORWARD_LOAD_STATES and request.status not in ACTIVE_REQUEST_STATES:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            expected=list(ACTIVE_REQUEST_STATES),
        )

    load_state_machine.transition(load, target)

    await outbox.enqueue(
        session,
        LoadStatusChangedPayload(
            request_id=request.id,
            reference_id=request.reference_id,
            tenant_id=request.tenant_id,
            recipient=request.contact_email,
            load_id=load.id,
            direction=load.direction,
            sequence_number=load.sequence_number,
            previous_status=previous.value,
            status=target.value,
        ),
        dedupe_key=f"load_status_changed:{load.id}:{target.value}",
    )
    await log_admin_action(
        session,
        actor_id=caller.identity,
        action="transition_load",
        entity_type="trucking_load",
        entity_id=load.id,
        details={"from": previous.value, "to": target.value},
    )
    await session.flush()
    return load
