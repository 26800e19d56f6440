"""StorageRequest model for tenant storage requests."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipevault.database import Base
from pipevault.models.enums import RequestStatus


class StorageRequest(Base):
    """A tenant's request to store a quantity of pipe.

    Status is only changed by the approval workflow. A request is immutable
    once it is REJECTED or COMPLETE.

    Attributes:
        id: Unique request UUID
        tenant_id: Owning tenant (company) identifier
        reference_id: Customer-facing project reference
        contact_email: Recipient for request notifications
        required_quantity: Quantity the tenant asked to store
        status: PENDING, APPROVED, PICKUP_REQUESTED, COMPLETE or REJECTED
        assigned_location_ids: Locations capacity was reserved on
        approved_quantity: Quantity reserved at approval time
        approved_by: Identity of the approving admin
        approved_at: Approval timestamp
        rejection_reason: Reason supplied on rejection
        admin_notes: Free-form notes from the approving admin
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "storage_requests"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    required_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=RequestStatus.PENDING.value,
        index=True,
    )
    assigned_location_ids: Mapped[list | None] = mapped_column(
        JSON,
        nullable=True,
        default=list,
    )
    approved_quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

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

    loads = relationship(
        "TruckingLoad",
        back_populates="request",
        order_by="TruckingLoad.sequence_number",
    )

    __table_args__ = (
        # Approval queue (pending requests, oldest first)
        Index("ix_storage_requests_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<StorageRequest(id={self.id}, reference={self.reference_id!r}, "
            f"status={self.status})>"
        )
