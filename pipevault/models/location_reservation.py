"""LocationReservation model recording how an approval split its capacity."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base
from pipevault.models.enums import ReservationStatus


class LocationReservation(Base):
    """Capacity held on one location for one approved request.

    Quantities are in ledger units (joints for LINEAR, 1 for SLOT). Inbound
    reconciliation consumes reservations as material lands.

    Attributes:
        id: Unique reservation UUID
        request_id: Approved storage request
        location_id: Location the capacity is held on
        reserved_quantity: Units reserved at approval time
        consumed_quantity: Units already covered by delivered material
        status: ACTIVE, CONSUMED or RELEASED
    """

    __tablename__ = "location_reservations"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
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
    reserved_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    consumed_quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        default=Decimal("0"),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.ACTIVE.value,
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
        Index("ix_location_reservations_request_location", "request_id", "location_id"),
    )

    @property
    def remaining(self) -> Decimal:
        """Reserved units not yet covered by delivered material."""
        return Decimal(self.reserved_quantity) - Decimal(self.consumed_quantity)

    def __repr__(self) -> str:
        return (
            f"<LocationReservation(request={self.request_id}, "
            f"location={self.location_id!r}, reserved={self.reserved_quantity!r}, "
            f"consumed={self.consumed_quantity!r})>"
        )
