"""Capacity allocation and shipment lifecycle services."""

from pipevault.services.allocator import Allocation, LocationAmount, RackCapacityAllocator
from pipevault.services.caller import Caller, CallerRole
from pipevault.services.capacity_ledger import CapacityLedger, LinearMode, SlotMode
from pipevault.services.errors import (
    InsufficientCapacityError,
    InvalidInputError,
    InvalidLocationError,
    InvalidQuantityError,
    InvalidStateError,
    InvalidStateTransitionError,
    MixedAllocationModeError,
    NotFoundError,
    PermissionDeniedError,
    PipeVaultError,
    ReconciliationMismatchWarning,
)
from pipevault.services.transactions import run_in_transaction

__all__ = [
    "Allocation",
    "Caller",
    "CallerRole",
    "CapacityLedger",
    "InsufficientCapacityError",
    "InvalidInputError",
    "InvalidLocationError",
    "InvalidQuantityError",
    "InvalidStateError",
    "InvalidStateTransitionError",
    "LinearMode",
    "LocationAmount",
    "MixedAllocationModeError",
    "NotFoundError",
    "PermissionDeniedError",
    "PipeVaultError",
    "RackCapacityAllocator",
    "ReconciliationMismatchWarning",
    "SlotMode",
    "run_in_transaction",
]
