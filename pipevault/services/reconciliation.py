"""Inventory reconciliation on load completion.

When a truck physically completes, the admin records the quantity actually
unloaded (inbound) or taken away (outbound). Reconciliation writes that
quantity onto the load exactly once, creates or settles inventory records and
brings the capacity ledger in line with what is really in the yard. A
difference between planned and actual quantities is reported as a warning,
never as a failure.

Inbound capacity is settled against the reservations made at approval time:
the reservation at the landing location is consumed first, then other active
reservations of the same request are drawn on, and whatever is still
uncovered is reserved at the landing location.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.config import settings
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
from pipevault.models.storage_location import StorageLocation
from pipevault.models.storage_request import StorageRequest
from pipevault.models.trucking_load import TruckingLoad
from pipevault.services import load_state_machine, outbox
from pipevault.services.approval_workflow import complete_request_if_drained, get_request
from pipevault.services.caller import Caller
from pipevault.services.capacity_ledger import CapacityLedger, policy_for
from pipevault.services.errors import (
    InvalidLocationError,
    InvalidQuantityError,
    InvalidStateError,
    InvalidStateTransitionError,
    ReconciliationMismatchWarning,
)
from pipevault.services.loads import get_load
from pipevault.services.notification_payloads import (
    LoadDeliveredPayload,
    LoadPickedUpPayload,
)

logger = logging.getLogger(__name__)

ACTIVE_REQUEST_STATES = (RequestStatus.APPROVED.value, RequestStatus.PICKUP_REQUESTED.value)
HELD_INVENTORY_STATES = (InventoryStatus.IN_STORAGE.value, InventoryStatus.PENDING_PICKUP.value)


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of completing a load.

    Attributes:
        load_id: Completed load
        inventory_record_ids: Records created (inbound) or picked up (outbound)
        warning: Planned/actual mismatch beyond tolerance, if any
        replayed: True when the load was already completed with this quantity
    """

    load_id: str
    inventory_record_ids: tuple[str, ...]
    warning: ReconciliationMismatchWarning | None = None
    replayed: bool = False


def sum_manifest(items: Iterable[Decimal]) -> Decimal:
    """Total the item quantities of an extracted delivery manifest.

    Raises:
        InvalidQuantityError: Empty manifest or a negative item
    """
    quantities = [Decimal(item) for item in items]
    if not quantities:
        raise InvalidQuantityError("Manifest has no items")
    negative = [quantity for quantity in quantities if quantity < 0]
    if negative:
        raise InvalidQuantityError(
            f"Manifest item quantities cannot be negative, got {negative[0]}",
        )
    return sum(quantities, Decimal("0"))


def check_mismatch(
    load: TruckingLoad,
    actual_quantity: Decimal,
    tolerance: Decimal | None = None,
) -> ReconciliationMismatchWarning | None:
    """Compare planned and actual quantities of a load."""
    tolerance = settings.reconciliation_tolerance if tolerance is None else Decimal(tolerance)
    planned = Decimal(load.planned_quantity)
    delta = planned - actual_quantity
    if abs(delta) <= tolerance:
        return None
    return ReconciliationMismatchWarning(
        load_id=load.id,
        planned=planned,
        actual=actual_quantity,
        delta=delta,
        tolerance=tolerance,
    )


async def _records_for_load(session: AsyncSession, load: TruckingLoad) -> tuple[str, ...]:
    if load.direction == LoadDirection.INBOUND.value:
        # Split remainders keep the origin load but were not created by it
        condition = (InventoryRecord.origin_load_id == load.id) & (
            InventoryRecord.parent_record_id.is_(None)
        )
    else:
        condition = InventoryRecord.removing_load_id == load.id
    result = await session.execute(
        select(InventoryRecord.id)
        .where(condition)
        .order_by(InventoryRecord.created_at, InventoryRecord.id)
    )
    return tuple(result.scalars().all())


def _resolve_landing(
    request: StorageRequest,
    load: TruckingLoad,
    location_id: str | None,
) -> str:
    if location_id:
        return location_id
    if load.location_id:
        return load.location_id
    assigned = request.assigned_location_ids or []
    if len(assigned) == 1:
        return assigned[0]
    raise InvalidLocationError(
        f"Load {load.id} has no destination and request {request.id} has "
        f"{len(assigned)} assigned locations; specify the landing location",
        location_ids=list(assigned),
    )


async def _held_count(
    session: AsyncSession,
    location_id: str,
    request_id: str | None = None,
) -> int:
    stmt = select(func.count(InventoryRecord.id)).where(
        InventoryRecord.location_id == location_id,
        InventoryRecord.status.in_(HELD_INVENTORY_STATES),
    )
    if request_id is not None:
        stmt = stmt.where(InventoryRecord.request_id == request_id)
    return (await session.scalar(stmt)) or 0


def _consume(reservation: LocationReservation, units: Decimal) -> None:
    reservation.consumed_quantity = Decimal(reservation.consumed_quantity) + units
    if reservation.remaining <= 0:
        reservation.status = ReservationStatus.CONSUMED.value


async def _settle_inbound_capacity(
    session: AsyncSession,
    ledger: CapacityLedger,
    request: StorageRequest,
    landing: StorageLocation,
    actual_quantity: Decimal,
) -> None:
    policy = policy_for(landing)
    units = policy.units_for(actual_quantity)
    if landing.mode == AllocationMode.SLOT and await _held_count(session, landing.id, request.id):
        # Slot already holds this request's pipe
        units = Decimal("0")
    if units <= 0:
        return

    result = await session.execute(
        select(LocationReservation)
        .where(
            LocationReservation.request_id == request.id,
            LocationReservation.status == ReservationStatus.ACTIVE.value,
        )
        .order_by(LocationReservation.created_at, LocationReservation.id)
        .with_for_update()
    )
    reservations = list(result.scalars().all())

    uncovered = units
    for reservation in reservations:
        if uncovered <= 0:
            break
        if reservation.location_id != landing.id:
            continue
        take = min(reservation.remaining, uncovered)
        _consume(reservation, take)
        uncovered -= take

    if uncovered <= 0:
        return

    others = [
        reservation
        for reservation in reservations
        if reservation.location_id != landing.id
        and reservation.status == ReservationStatus.ACTIVE.value
    ]
    if not others:
        await ledger.reserve(landing.id, uncovered)
        return
    other_locations = await ledger.get_locations(
        list(dict.fromkeys(reservation.location_id for reservation in others))
    )
    modes = {location.id: location.mode for location in other_locations}

    drawn = Decimal("0")
    for reservation in others:
        if drawn >= uncovered:
            break
        if modes[reservation.location_id] != landing.mode:
            continue
        take = policy.fill_amount(reservation.remaining, uncovered - drawn)
        if take <= 0:
            continue
        await ledger.release(reservation.location_id, take)
        _consume(reservation, take)
        drawn += take
        logger.info(
            "Moved %s reserved on %s to landing location %s for request %s",
            take,
            reservation.location_id,
            landing.id,
            request.id,
        )

    await ledger.reserve(landing.id, uncovered)


async def _complete_inbound(
    session: AsyncSession,
    request: StorageRequest,
    load: TruckingLoad,
    actual_quantity: Decimal,
    location_id: str | None,
    warning: ReconciliationMismatchWarning | None,
) -> tuple[str, ...]:
    ledger = CapacityLedger(session)
    landing = await ledger.get_location(_resolve_landing(request, load, location_id))

    await _settle_inbound_capacity(session, ledger, request, landing, actual_quantity)

    record = InventoryRecord(
        tenant_id=request.tenant_id,
        request_id=request.id,
        location_id=landing.id,
        quantity=actual_quantity,
        status=InventoryStatus.IN_STORAGE.value,
        origin_load_id=load.id,
    )
    session.add(record)
    if load.location_id is None:
        load.location_id = landing.id
    await session.flush()

    await outbox.enqueue(
        session,
        LoadDeliveredPayload(
            request_id=request.id,
            reference_id=request.reference_id,
            tenant_id=request.tenant_id,
            recipient=request.contact_email,
            load_id=load.id,
            location_id=landing.id,
            planned_quantity=Decimal(load.planned_quantity),
            actual_quantity=actual_quantity,
            inventory_record_ids=[record.id],
            mismatch_delta=warning.delta if warning else None,
        ),
        dedupe_key=f"load_delivered:{load.id}",
    )
    return (record.id,)


async def _release_picked_capacity(
    session: AsyncSession,
    ledger: CapacityLedger,
    freed: dict[str, Decimal],
) -> None:
    for location_id, quantity in freed.items():
        location = await ledger.get_location(location_id)
        if location.mode == AllocationMode.SLOT:
            if await _held_count(session, location_id) == 0 and location.occupied >= 1:
                await ledger.release(location_id, Decimal("1"))
        else:
            await ledger.release(location_id, policy_for(location).units_for(quantity))


async def _complete_outbound(
    session: AsyncSession,
    request: StorageRequest,
    load: TruckingLoad,
    actual_quantity: Decimal,
    location_id: str | None,
) -> tuple[str, ...]:
    source_id = location_id or load.location_id
    stmt = select(InventoryRecord).where(
        InventoryRecord.request_id == request.id,
        InventoryRecord.status == InventoryStatus.PENDING_PICKUP.value,
    )
    if source_id:
        stmt = stmt.where(InventoryRecord.location_id == source_id)
    result = await session.execute(
        stmt.order_by(InventoryRecord.created_at, InventoryRecord.id).with_for_update()
    )
    records = list(result.scalars().all())

    pending = sum((Decimal(record.quantity) for record in records), Decimal("0"))
    if pending < actual_quantity:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            reason=f"only {pending} pending pickup, {actual_quantity} picked up",
        )

    now = datetime.now(UTC)
    remaining = actual_quantity
    picked: list[str] = []
    freed: dict[str, Decimal] = {}
    for record in records:
        if remaining <= 0:
            break
        held = Decimal(record.quantity)
        take = min(held, remaining)
        if take < held:
            session.add(
                InventoryRecord(
                    tenant_id=record.tenant_id,
                    request_id=record.request_id,
                    location_id=record.location_id,
                    quantity=held - take,
                    status=InventoryStatus.IN_STORAGE.value,
                    origin_load_id=record.origin_load_id,
                    parent_record_id=record.id,
                )
            )
            record.quantity = take
        record.status = InventoryStatus.PICKED_UP.value
        record.removing_load_id = load.id
        record.picked_up_at = now
        picked.append(record.id)
        freed[record.location_id] = freed.get(record.location_id, Decimal("0")) + take
        remaining -= take
    await session.flush()

    await _release_picked_capacity(session, CapacityLedger(session), freed)
    return tuple(picked)


async def complete_load(
    session: AsyncSession,
    caller: Caller,
    load_id: str,
    actual_quantity: Decimal,
    location_id: str | None = None,
    tolerance: Decimal | None = None,
) -> CompletionResult:
    """Reconcile a physically completed load into inventory.

    Args:
        session: Database session (one transaction)
        caller: Must be an admin
        load_id: Load to complete
        actual_quantity: Quantity actually received or picked up
        location_id: Landing location (inbound) or source location filter
            (outbound); inbound falls back to the load's planned location and
            then to the request's single assigned location
        tolerance: Allowed |planned - actual| before a warning is produced
            (defaults to settings.reconciliation_tolerance)

    Returns:
        CompletionResult with the affected inventory record ids

    Raises:
        PermissionDeniedError: Caller is not an admin
        NotFoundError: Unknown load
        InvalidQuantityError: Non-positive quantity
        InvalidStateTransitionError: Load not ARRIVED/DELIVERED
        InvalidStateError: Already completed with a different quantity, request
            not active, or not enough inventory pending pickup
        InvalidLocationError: Landing location cannot be determined
        InsufficientCapacityError: Landing location cannot take the excess
    """
    caller.require_admin("complete loads")
    actual_quantity = Decimal(actual_quantity)
    if actual_quantity <= 0:
        raise InvalidQuantityError(
            f"Actual quantity must be positive, got {actual_quantity}",
            actual=actual_quantity,
        )

    load = await get_load(session, load_id, lock=True)
    current = LoadStatus(load.status)
    direction = LoadDirection(load.direction)

    if current == LoadStatus.COMPLETED:
        if load.actual_quantity is not None and Decimal(load.actual_quantity) == actual_quantity:
            logger.info("Completion of load %s replayed; no changes made", load.id)
            return CompletionResult(
                load_id=load.id,
                inventory_record_ids=await _records_for_load(session, load),
                warning=check_mismatch(load, actual_quantity, tolerance),
                replayed=True,
            )
        raise InvalidStateError(
            "TruckingLoad",
            load.id,
            current.value,
            reason=f"already completed with quantity {load.actual_quantity}",
        )

    if not load_state_machine.can_transition(current, LoadStatus.COMPLETED, direction):
        raise InvalidStateTransitionError(
            current=current.value,
            attempted=LoadStatus.COMPLETED.value,
            direction=direction.value,
        )

    warning = check_mismatch(load, actual_quantity, tolerance)
    if warning:
        logger.warning(warning.message)

    request = await get_request(session, load.request_id, lock=True)
    if request.status not in ACTIVE_REQUEST_STATES:
        raise InvalidStateError(
            "StorageRequest",
            request.id,
            request.status,
            expected=list(ACTIVE_REQUEST_STATES),
        )

    load.actual_quantity = actual_quantity
    load.completed_at = datetime.now(UTC)

    if direction == LoadDirection.INBOUND:
        record_ids = await _complete_inbound(
            session, request, load, actual_quantity, location_id, warning
        )
        load_state_machine.transition(load, LoadStatus.COMPLETED)
    else:
        record_ids = await _complete_outbound(
            session, request, load, actual_quantity, location_id
        )
        load_state_machine.transition(load, LoadStatus.COMPLETED)
        await session.flush()
        request_complete = await complete_request_if_drained(session, request)
        await outbox.enqueue(
            session,
            LoadPickedUpPayload(
                request_id=request.id,
                reference_id=request.reference_id,
                tenant_id=request.tenant_id,
                recipient=request.contact_email,
                load_id=load.id,
                quantity=actual_quantity,
                inventory_record_ids=list(record_ids),
                request_complete=request_complete,
            ),
            dedupe_key=f"load_picked_up:{load.id}",
        )

    await session.flush()
    logger.info(
        "Load %s completed by %s: %s (planned %s), %d inventory record(s)",
        load.id,
        caller.identity,
        actual_quantity,
        load.planned_quantity,
        len(record_ids),
    )
    return CompletionResult(
        load_id=load.id,
        inventory_record_ids=record_ids,
        warning=warning,
        replayed=False,
    )
