"""Capacity ledger for storage locations.

The ledger is the only code that writes ``storage_locations.occupied``. Every
write locks the location row, re-reads it, re-validates, and then applies a
guarded UPDATE whose WHERE clause repeats the capacity check, so a concurrent
transaction that committed first can never be overwritten.

Allocation modes are handled by two policy objects behind one interface:
``LinearMode`` (continuous quantities such as joints or meters) and
``SlotMode`` (binary positions, always one unit).
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.enums import AllocationMode
from pipevault.models.rack_adjustment import RackOccupancyAdjustment
from pipevault.models.storage_location import StorageLocation
from pipevault.services.audit_logging import log_admin_action
from pipevault.services.caller import Caller
from pipevault.services.errors import (
    AlreadyExistsError,
    InsufficientCapacityError,
    InvalidAdjustmentError,
    InvalidLocationError,
    InvalidQuantityError,
)

logger = logging.getLogger(__name__)

# Manual adjustments must explain themselves
MIN_ADJUSTMENT_REASON_LENGTH = 10


class AllocationPolicy:
    """Mode-specific reservation rules."""

    mode: AllocationMode

    def validate_amount(self, amount: Decimal) -> None:
        raise NotImplementedError

    def units_for(self, quantity: Decimal) -> Decimal:
        """Ledger units consumed by ``quantity`` of material."""
        raise NotImplementedError

    def fill_amount(self, available: Decimal, remaining: Decimal) -> Decimal:
        """Units to take from a location during a greedy fill."""
        raise NotImplementedError


class LinearMode(AllocationPolicy):
    """Continuous capacity: any positive amount up to what remains."""

    mode = AllocationMode.LINEAR

    def validate_amount(self, amount: Decimal) -> None:
        if amount <= 0:
            raise InvalidQuantityError(
                f"LINEAR amounts must be positive, got {amount}",
                amount=amount,
            )

    def units_for(self, quantity: Decimal) -> Decimal:
        return Decimal(quantity)

    def fill_amount(self, available: Decimal, remaining: Decimal) -> Decimal:
        return max(Decimal("0"), min(available, remaining))


class SlotMode(AllocationPolicy):
    """Binary positions: a slot is either free or taken, never partially."""

    mode = AllocationMode.SLOT

    def validate_amount(self, amount: Decimal) -> None:
        if amount != 1:
            raise InvalidQuantityError(
                f"SLOT amounts are always 1, got {amount}",
                amount=amount,
            )

    def units_for(self, quantity: Decimal) -> Decimal:
        return Decimal("1") if quantity > 0 else Decimal("0")

    def fill_amount(self, available: Decimal, remaining: Decimal) -> Decimal:
        if available >= 1 and remaining >= 1:
            return Decimal("1")
        return Decimal("0")


MODE_POLICIES: dict[AllocationMode, AllocationPolicy] = {
    AllocationMode.LINEAR: LinearMode(),
    AllocationMode.SLOT: SlotMode(),
}


def policy_for(location: StorageLocation) -> AllocationPolicy:
    """Get the allocation policy for a location's mode."""
    return MODE_POLICIES[location.mode]


class CapacityLedger:
    """Read and adjust primitives over storage location occupancy.

    All methods run inside the caller's session and transaction; nothing here
    commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _fetch(self, location_id: str, lock: bool = False) -> StorageLocation:
        stmt = (
            select(StorageLocation)
            .where(StorageLocation.id == location_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        location = result.scalar_one_or_none()
        if location is None:
            raise InvalidLocationError(
                f"Storage location '{location_id}' not found",
                location_ids=[location_id],
            )
        return location

    async def get_location(self, location_id: str) -> StorageLocation:
        """Get a location by id.

        Raises:
            InvalidLocationError: If the id does not resolve
        """
        return await self._fetch(location_id)

    async def get_available(self, location_id: str) -> Decimal:
        """Get ``capacity - occupied`` for a location."""
        location = await self._fetch(location_id)
        return location.available

    async def get_locations(self, location_ids: list[str]) -> list[StorageLocation]:
        """Snapshot read of several locations, in the order given.

        Raises:
            InvalidLocationError: Listing every id that does not resolve
        """
        result = await self.session.execute(
            select(StorageLocation)
            .where(StorageLocation.id.in_(location_ids))
            .execution_options(populate_existing=True)
        )
        found = {location.id: location for location in result.scalars()}
        missing = [location_id for location_id in location_ids if location_id not in found]
        if missing:
            raise InvalidLocationError(
                f"Unknown storage location(s): {', '.join(missing)}",
                location_ids=missing,
            )
        return [found[location_id] for location_id in location_ids]

    async def reserve(self, location_id: str, amount: Decimal) -> StorageLocation:
        """Increase a location's occupancy by ``amount``.

        The row is locked and re-read before validating, and the UPDATE repeats
        the capacity check in its WHERE clause. If that guard matches nothing,
        another transaction got there first and the fresh availability is
        reported.

        Args:
            location_id: Location to reserve on
            amount: Units to reserve (always 1 for SLOT locations)

        Returns:
            The refreshed StorageLocation

        Raises:
            InvalidLocationError: Unknown location
            InvalidQuantityError: Amount not valid for the location's mode
            InsufficientCapacityError: Not enough capacity left
        """
        amount = Decimal(amount)
        location = await self._fetch(location_id, lock=True)
        policy_for(location).validate_amount(amount)

        if amount > location.available:
            raise InsufficientCapacityError(
                required=amount,
                available=location.available,
                location_ids=[location_id],
            )

        stmt = (
            update(StorageLocation)
            .where(
                StorageLocation.id == location_id,
                StorageLocation.occupied + amount <= StorageLocation.capacity,
            )
            .values(
                occupied=StorageLocation.occupied + amount,
                updated_at=datetime.now(UTC),
            )
            .returning(StorageLocation)
        )
        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        updated = result.scalar_one_or_none()

        if updated is None:
            fresh = await self._fetch(location_id, lock=True)
            logger.warning(
                "Reservation of %s on %s lost a race; %s now available",
                amount,
                location_id,
                fresh.available,
            )
            raise InsufficientCapacityError(
                required=amount,
                available=fresh.available,
                location_ids=[location_id],
            )

        logger.debug(
            "Reserved %s on %s (occupied %s/%s)",
            amount,
            location_id,
            updated.occupied,
            updated.capacity,
        )
        return updated

    async def release(self, location_id: str, amount: Decimal) -> StorageLocation:
        """Decrease a location's occupancy by ``amount``.

        Raises:
            InvalidLocationError: Unknown location
            InvalidQuantityError: Amount invalid or larger than what is occupied
        """
        amount = Decimal(amount)
        location = await self._fetch(location_id, lock=True)
        policy_for(location).validate_amount(amount)

        if amount > location.occupied:
            raise InvalidQuantityError(
                f"Cannot release {amount} from {location_id}: "
                f"only {location.occupied} occupied",
                amount=amount,
                occupied=location.occupied,
            )

        stmt = (
            update(StorageLocation)
            .where(
                StorageLocation.id == location_id,
                StorageLocation.occupied - amount >= 0,
            )
            .values(
                occupied=StorageLocation.occupied - amount,
                updated_at=datetime.now(UTC),
            )
            .returning(StorageLocation)
        )
        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        updated = result.scalar_one_or_none()
        if updated is None:
            raise InvalidQuantityError(
                f"Cannot release {amount} from {location_id}: occupancy changed",
                amount=amount,
            )

        logger.debug(
            "Released %s on %s (occupied %s/%s)",
            amount,
            location_id,
            updated.occupied,
            updated.capacity,
        )
        return updated

    async def adjust(
        self,
        location_id: str,
        new_occupied: Decimal,
        reason: str,
        actor_id: str,
    ) -> RackOccupancyAdjustment:
        """Override a location's occupancy and record why.

        Used when pipe is physically moved between racks or counts are
        corrected by hand.

        Args:
            location_id: Location to adjust
            new_occupied: New occupancy value
            reason: Justification, at least 10 characters
            actor_id: Admin making the change

        Returns:
            The RackOccupancyAdjustment audit row

        Raises:
            InvalidLocationError: Unknown location
            InvalidAdjustmentError: Reason too short or value out of bounds
        """
        new_occupied = Decimal(new_occupied)
        reason = (reason or "").strip()
        if len(reason) < MIN_ADJUSTMENT_REASON_LENGTH:
            raise InvalidAdjustmentError(
                "A descriptive reason of at least "
                f"{MIN_ADJUSTMENT_REASON_LENGTH} characters is required",
            )

        location = await self._fetch(location_id, lock=True)
        if new_occupied < 0 or new_occupied > location.capacity:
            raise InvalidAdjustmentError(
                f"Occupancy {new_occupied} is outside 0..{location.capacity} "
                f"for {location_id}",
                capacity=location.capacity,
            )
        if location.mode == AllocationMode.SLOT and new_occupied not in (0, 1):
            raise InvalidAdjustmentError(
                f"SLOT location {location_id} can only be 0 or 1 occupied",
            )

        old_occupied = Decimal(location.occupied)
        location.occupied = new_occupied
        adjustment = RackOccupancyAdjustment(
            location_id=location_id,
            adjusted_by=actor_id,
            reason=reason,
            old_occupied=old_occupied,
            new_occupied=new_occupied,
        )
        self.session.add(adjustment)
        await self.session.flush()

        logger.info(
            "Occupancy of %s adjusted %s -> %s by %s",
            location_id,
            old_occupied,
            new_occupied,
            actor_id,
        )
        return adjustment


async def create_location(
    session: AsyncSession,
    caller: Caller,
    location_id: str,
    name: str,
    allocation_mode: AllocationMode,
    capacity: Decimal,
) -> StorageLocation:
    """Register a new storage location with nothing occupied.

    Raises:
        PermissionDeniedError: Caller is not an admin
        InvalidQuantityError: Non-positive capacity, or a SLOT capacity other than 1
        AlreadyExistsError: Location id is taken
    """
    caller.require_admin("create storage locations")
    allocation_mode = AllocationMode(allocation_mode)
    capacity = Decimal(capacity)
    if capacity <= 0:
        raise InvalidQuantityError(f"Capacity must be positive, got {capacity}")
    if allocation_mode == AllocationMode.SLOT and capacity != 1:
        raise InvalidQuantityError(f"SLOT locations hold exactly 1, got {capacity}")

    existing = await session.get(StorageLocation, location_id)
    if existing is not None:
        raise AlreadyExistsError("StorageLocation", location_id)

    location = StorageLocation(
        id=location_id,
        name=name,
        allocation_mode=allocation_mode.value,
        capacity=capacity,
        occupied=Decimal("0"),
    )
    session.add(location)
    await session.flush()

    logger.info(
        "Created %s location %s with capacity %s",
        allocation_mode.value,
        location_id,
        capacity,
    )
    return location


async def list_locations(
    session: AsyncSession,
    allocation_mode: AllocationMode | None = None,
) -> list[StorageLocation]:
    """Get all storage locations ordered by id."""
    stmt = select(StorageLocation).order_by(StorageLocation.id)
    if allocation_mode is not None:
        stmt = stmt.where(StorageLocation.allocation_mode == AllocationMode(allocation_mode).value)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def adjust_occupancy(
    session: AsyncSession,
    caller: Caller,
    location_id: str,
    new_occupied: Decimal,
    reason: str,
) -> RackOccupancyAdjustment:
    """Admin override of a location's occupancy, recorded in the audit trail."""
    caller.require_admin("adjust rack occupancy")
    adjustment = await CapacityLedger(session).adjust(
        location_id, new_occupied, reason, caller.identity
    )
    await log_admin_action(
        session,
        actor_id=caller.identity,
        action="adjust_occupancy",
        entity_type="storage_location",
        entity_id=location_id,
        details={
            "old_occupied": adjustment.old_occupied,
            "new_occupied": adjustment.new_occupied,
            "reason": adjustment.reason,
        },
    )
    return adjustment
