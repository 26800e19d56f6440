"""SQLAlchemy models for the PipeVault engine."""

from pipevault.models.admin_audit_log import AdminAuditLog
from pipevault.models.enums import (
    AllocationMode,
    InventoryStatus,
    LoadDirection,
    LoadStatus,
    NotificationType,
    RequestStatus,
    ReservationStatus,
)
from pipevault.models.inventory_record import InventoryRecord
from pipevault.models.location_reservation import LocationReservation
from pipevault.models.notification import NotificationRecord
from pipevault.models.rack_adjustment import RackOccupancyAdjustment
from pipevault.models.storage_location import StorageLocation
from pipevault.models.storage_request import StorageRequest
from pipevault.models.trucking_load import TruckingLoad

__all__ = [
    "AdminAuditLog",
    "AllocationMode",
    "InventoryRecord",
    "InventoryStatus",
    "LoadDirection",
    "LoadStatus",
    "LocationReservation",
    "NotificationRecord",
    "NotificationType",
    "RackOccupancyAdjustment",
    "RequestStatus",
    "ReservationStatus",
    "StorageLocation",
    "StorageRequest",
    "TruckingLoad",
]
