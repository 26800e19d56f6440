"""Rack capacity allocator.

Validates a requested quantity against candidate locations, computes a
deterministic greedy split and reserves it through the capacity ledger.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from pipevault.config import settings
from pipevault.models.enums import AllocationMode
from pipevault.models.storage_location import StorageLocation
from pipevault.services.capacity_ledger import MODE_POLICIES, CapacityLedger
from pipevault.services.errors import (
    InsufficientCapacityError,
    InvalidLocationError,
    InvalidQuantityError,
    MixedAllocationModeError,
)

logger = logging.getLogger(__name__)

# Slots are all-or-nothing, so they are filled before linear racks are topped up
MODE_FILL_ORDER = (AllocationMode.SLOT, AllocationMode.LINEAR)


@dataclass(frozen=True)
class LocationAmount:
    """Quantity planned (or reserved) on one location."""

    location_id: str
    amount: Decimal
    mode: AllocationMode


@dataclass(frozen=True)
class Allocation:
    """Result of a successful allocation.

    Attributes:
        required_quantity: Quantity that was requested
        amounts: Per-location amounts, in fill order
        high_utilization_location_ids: Locations above the utilization
            warning threshold after reservation
    """

    required_quantity: Decimal
    amounts: tuple[LocationAmount, ...]
    high_utilization_location_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def location_ids(self) -> list[str]:
        return [item.location_id for item in self.amounts]

    def per_location(self) -> dict[str, Decimal]:
        """Map of location id to reserved amount."""
        return {item.location_id: item.amount for item in self.amounts}


def dedupe_ids(location_ids: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for location_id in location_ids:
        if location_id not in seen:
            seen.add(location_id)
            unique.append(location_id)
    return unique


def greedy_fill(
    locations: list[StorageLocation],
    required: Decimal,
    mode: AllocationMode,
) -> list[LocationAmount]:
    """Fill ``required`` from ``locations`` largest-available first.

    Ties on available capacity are broken by location id ascending so the
    same capacity snapshot always yields the same split.

    Raises:
        InsufficientCapacityError: If the locations cannot hold ``required``
    """
    policy = MODE_POLICIES[mode]
    available_total = sum((location.available for location in locations), Decimal("0"))
    if available_total < required:
        raise InsufficientCapacityError(
            required=required,
            available=available_total,
            location_ids=[location.id for location in locations],
        )

    ranked = sorted(locations, key=lambda location: (-location.available, location.id))
    remaining = required
    amounts: list[LocationAmount] = []
    for location in ranked:
        if remaining <= 0:
            break
        take = policy.fill_amount(location.available, remaining)
        if take <= 0:
            continue
        amounts.append(LocationAmount(location_id=location.id, amount=take, mode=mode))
        remaining -= take

    if remaining > 0:
        # Only reachable for SLOT groups asked for fractional positions
        raise InsufficientCapacityError(
            required=required,
            available=required - remaining,
            location_ids=[location.id for location in locations],
        )
    return amounts


def plan_allocation(
    locations: list[StorageLocation],
    required_quantity: Decimal,
    mode_split: Mapping[AllocationMode, Decimal] | None = None,
) -> list[LocationAmount]:
    """Compute the per-location split without touching the ledger.

    Args:
        locations: Resolved candidate locations
        required_quantity: Total quantity to place
        mode_split: Explicit quantity per allocation mode; required when the
            candidates mix SLOT and LINEAR locations

    Returns:
        Planned amounts, SLOT groups first

    Raises:
        MixedAllocationModeError: Mixed modes without an explicit split
        InvalidQuantityError: Split that does not match the candidates or total
        InsufficientCapacityError: Not enough capacity in a mode group
    """
    groups: dict[AllocationMode, list[StorageLocation]] = {}
    for location in locations:
        groups.setdefault(location.mode, []).append(location)

    if mode_split:
        split = {AllocationMode(mode): Decimal(quantity) for mode, quantity in mode_split.items()}
        if set(split) != set(groups):
            raise InvalidQuantityError(
                "Mode split must cover exactly the candidate modes "
                f"({', '.join(sorted(mode.value for mode in groups))})",
            )
        if sum(split.values(), Decimal("0")) != required_quantity:
            raise InvalidQuantityError(
                f"Mode split totals {sum(split.values(), Decimal('0'))}, "
                f"expected {required_quantity}",
            )
    elif len(groups) > 1:
        raise MixedAllocationModeError([mode.value for mode in groups])
    else:
        split = {mode: required_quantity for mode in groups}

    planned: list[LocationAmount] = []
    for mode in MODE_FILL_ORDER:
        if mode not in groups:
            continue
        quantity = split[mode]
        if quantity <= 0:
            raise InvalidQuantityError(
                f"{mode.value} share must be positive, got {quantity}",
            )
        if mode == AllocationMode.SLOT and quantity != quantity.to_integral_value():
            raise InvalidQuantityError(
                f"SLOT allocations need a whole number of slots, got {quantity}",
            )
        planned.extend(greedy_fill(groups[mode], quantity, mode))
    return planned


class RackCapacityAllocator:
    """Allocates a quantity across candidate storage locations."""

    def __init__(
        self,
        ledger: CapacityLedger,
        utilization_warning_threshold: float | None = None,
    ) -> None:
        self.ledger = ledger
        self.utilization_warning_threshold = (
            utilization_warning_threshold
            if utilization_warning_threshold is not None
            else settings.utilization_warning_threshold
        )

    async def allocate(
        self,
        required_quantity: Decimal,
        candidate_location_ids: list[str],
        mode_split: Mapping[AllocationMode, Decimal] | None = None,
    ) -> Allocation:
        """Validate, split and reserve ``required_quantity``.

        Every planned amount is reserved individually through the ledger. If a
        reservation fails because capacity changed after the snapshot, the
        error propagates and the surrounding transaction rolls back every
        earlier reservation made by this call.

        Args:
            required_quantity: Quantity to place
            candidate_location_ids: Locations the admin selected
            mode_split: Optional explicit quantity per allocation mode

        Returns:
            Allocation with the reserved per-location amounts

        Raises:
            InvalidQuantityError: Non-positive quantity or bad split
            InvalidLocationError: Empty candidate list or unknown ids
            MixedAllocationModeError: Mixed modes without a split
            InsufficientCapacityError: Shortfall, with required and available
        """
        required_quantity = Decimal(required_quantity)
        if required_quantity <= 0:
            raise InvalidQuantityError(
                f"Required quantity must be positive, got {required_quantity}",
                required=required_quantity,
            )

        location_ids = dedupe_ids(list(candidate_location_ids))
        if not location_ids:
            raise InvalidLocationError("At least one storage location must be assigned")

        locations = await self.ledger.get_locations(location_ids)
        planned = plan_allocation(locations, required_quantity, mode_split)

        logger.info(
            "Allocating %s across %s",
            required_quantity,
            ", ".join(f"{item.location_id}={item.amount}" for item in planned),
        )

        high_utilization: list[str] = []
        for item in planned:
            location = await self.ledger.reserve(item.location_id, item.amount)
            if location.utilization > self.utilization_warning_threshold:
                logger.warning(
                    "Location %s is at %.0f%% utilization after allocation",
                    location.id,
                    location.utilization * 100,
                )
                high_utilization.append(location.id)

        return Allocation(
            required_quantity=required_quantity,
            amounts=tuple(planned),
            high_utilization_location_ids=tuple(high_utilization),
        )
