"""InventoryRecord model for pipe physically held in the yard."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base
from pipevault.models.enums import InventoryStatus


class InventoryRecord(Base):
    """Durable record of material present in, or removed from, a location.

    Records are created once per completed inbound load and updated once when
    picked up. A partial pickup splits off the untaken remainder into a child
    record. Records are never deleted.

    Attributes:
        id: Unique record UUID
        tenant_id: Owning tenant
        request_id: Storage request the material belongs to
        location_id: Location holding the material
        quantity: Quantity held (joints)
        status: IN_STORAGE, PENDING_PICKUP or PICKED_UP
        origin_load_id: Inbound load that delivered the material
        parent_record_id: Record this one was split from on a partial pickup
        removing_load_id: Outbound load that picked it up
        picked_up_at: Pickup timestamp
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "inventory_records"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    request_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("storage_requests.id"),
        nullable=False,
    )
    location_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("storage_locations.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InventoryStatus.IN_STORAGE.value,
    )
    origin_load_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("trucking_loads.id"),
        nullable=True,
        index=True,
    )
    parent_record_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("inventory_records.id"),
        nullable=True,
    )
    removing_load_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("trucking_loads.id"),
        nullable=True,
        index=True,
    )
    picked_up_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_inventory_records_request_status", "request_id", "status"),
        Index("ix_inventory_records_location_status", "location_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord(id={self.id}, location={self.location_id!r}, "
            f"quantity={self.quantity!r}, status={self.status})>"
        )
