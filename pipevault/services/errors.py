"""Typed business errors raised by the capacity and shipment engine.

Every error carries a stable ``kind`` so the API layer can render specific
guidance. Business errors are terminal: the transaction runner never retries
them, unlike contention errors raised by the database layer.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any


class PipeVaultError(Exception):
    """Base class for business errors."""

    kind = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses."""
        body: dict[str, Any] = {"kind": self.kind, "message": self.message}
        for key, value in self.details.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        return body


class NotFoundError(PipeVaultError):
    """Raised when a request, load or record does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity} '{entity_id}' not found",
            entity=entity,
            entity_id=entity_id,
        )


class PermissionDeniedError(PipeVaultError):
    """Raised when the caller lacks the capability for an operation."""

    kind = "permission_denied"


class InvalidLocationError(PipeVaultError):
    """Raised when one or more location ids do not resolve."""

    kind = "invalid_location"

    def __init__(self, message: str, location_ids: list[str] | None = None) -> None:
        super().__init__(message, location_ids=list(location_ids or []))
        self.location_ids = list(location_ids or [])


class InsufficientCapacityError(PipeVaultError):
    """Raised when the candidate locations cannot hold the required quantity."""

    kind = "insufficient_capacity"

    def __init__(
        self,
        required: Decimal,
        available: Decimal,
        location_ids: list[str] | None = None,
    ) -> None:
        super().__init__(
            f"Insufficient capacity: required {required}, available {available}",
            required=required,
            available=available,
            location_ids=list(location_ids or []),
        )
        self.required = Decimal(required)
        self.available = Decimal(available)
        self.location_ids = list(location_ids or [])


class MixedAllocationModeError(PipeVaultError):
    """Raised when one allocation spans SLOT and LINEAR locations without a split."""

    kind = "mixed_allocation_mode"

    def __init__(self, modes: list[str]) -> None:
        super().__init__(
            "Candidate locations mix allocation modes "
            f"({', '.join(sorted(modes))}); split the quantity by mode",
            modes=sorted(modes),
        )


class InvalidQuantityError(PipeVaultError):
    """Raised for non-positive or otherwise unusable quantities."""

    kind = "invalid_quantity"


class InvalidStateTransitionError(PipeVaultError):
    """Raised when a load lifecycle move is not in the transition table."""

    kind = "invalid_state_transition"

    def __init__(self, current: str, attempted: str, direction: str | None = None) -> None:
        message = f"Cannot transition load from {current} to {attempted}"
        if direction:
            message += f" ({direction} load)"
        super().__init__(
            message,
            current=current,
            attempted=attempted,
        )
        self.current = current
        self.attempted = attempted


class InvalidStateError(PipeVaultError):
    """Raised when an entity is not in the status an operation starts from."""

    kind = "invalid_state"

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_status: str,
        expected: list[str] | None = None,
        reason: str | None = None,
    ) -> None:
        message = f"{entity} '{entity_id}' is {current_status}"
        if expected:
            message += f"; expected {' or '.join(expected)}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message,
            entity=entity,
            entity_id=entity_id,
            current_status=current_status,
            expected=list(expected or []),
        )
        self.current_status = current_status


@dataclass(frozen=True)
class ReconciliationMismatchWarning:
    """Non-fatal difference between planned and actual load quantities.

    Attributes:
        load_id: Load that was reconciled
        planned: Planned quantity on the load
        actual: Quantity actually received or picked up
        delta: planned - actual (positive when short)
        tolerance: Configured tolerance that was exceeded
    """

    load_id: str
    planned: Decimal
    actual: Decimal
    delta: Decimal
    tolerance: Decimal

    kind = "reconciliation_mismatch"

    @property
    def message(self) -> str:
        return (
            f"Load {self.load_id}: actual quantity {self.actual} differs from "
            f"planned {self.planned} by {abs(self.delta)}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "load_id": self.load_id,
            "planned": str(self.planned),
            "actual": str(self.actual),
            "delta": str(self.delta),
        }


class InvalidAdjustmentError(PipeVaultError):
    """Raised when a manual occupancy adjustment is rejected."""

    kind = "invalid_adjustment"


class InvalidInputError(PipeVaultError):
    """Raised when a required argument is missing or malformed."""

    kind = "invalid_input"


class AlreadyExistsError(PipeVaultError):
    """Raised when creating an entity whose identifier is taken."""

    kind = "already_exists"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity} '{entity_id}' already exists",
            entity=entity,
            entity_id=entity_id,
        )
