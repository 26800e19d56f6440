"""Status and mode enumerations shared by models and services."""

from enum import Enum


class AllocationMode(str, Enum):
    """How a storage location measures its capacity."""

    LINEAR = "LINEAR"
    SLOT = "SLOT"


class RequestStatus(str, Enum):
    """Lifecycle status of a storage request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PICKUP_REQUESTED = "PICKUP_REQUESTED"
    COMPLETE = "COMPLETE"
    REJECTED = "REJECTED"


class LoadDirection(str, Enum):
    """Direction of a truck movement relative to the yard."""

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class LoadStatus(str, Enum):
    """Lifecycle status of a trucking load."""

    NEW = "NEW"
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class InventoryStatus(str, Enum):
    """Status of a physical inventory record."""

    IN_STORAGE = "IN_STORAGE"
    PENDING_PICKUP = "PENDING_PICKUP"
    PICKED_UP = "PICKED_UP"


class ReservationStatus(str, Enum):
    """Status of a capacity reservation created by an approval."""

    ACTIVE = "ACTIVE"
    CONSUMED = "CONSUMED"
    RELEASED = "RELEASED"


class NotificationType(str, Enum):
    """Business events written to the notification outbox."""

    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    PICKUP_REQUESTED = "pickup_requested"
    LOAD_STATUS_CHANGED = "load_status_changed"
    LOAD_DELIVERED = "load_delivered"
    LOAD_PICKED_UP = "load_picked_up"
