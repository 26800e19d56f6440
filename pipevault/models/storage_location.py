"""StorageLocation model for rack capacity tracking."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base
from pipevault.models.enums import AllocationMode


class StorageLocation(Base):
    """A physical storage unit (rack or slot) with finite capacity.

    Attributes:
        id: Rack code used as the identifier (e.g., 'A-A1-5')
        name: Human-readable location name
        allocation_mode: LINEAR (joints / meters) or SLOT (binary position)
        capacity: Total capacity in the mode's unit
        occupied: Currently committed quantity
        created_at: Timestamp when the record was created
        updated_at: Last update timestamp
    """

    __tablename__ = "storage_locations"
    __table_args__ = (
        CheckConstraint(
            "occupied >= 0 AND occupied <= capacity",
            name="ck_storage_locations_occupied_within_capacity",
        ),
        CheckConstraint(
            "allocation_mode != 'SLOT' OR capacity = 1",
            name="ck_storage_locations_slot_capacity",
        ),
    )

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    allocation_mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AllocationMode.LINEAR.value,
    )
    capacity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    occupied: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        default=Decimal("0"),
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

    @property
    def available(self) -> Decimal:
        """Remaining capacity."""
        return Decimal(self.capacity) - Decimal(self.occupied)

    @property
    def utilization(self) -> float:
        """Fraction of capacity in use (0.0 - 1.0)."""
        if not self.capacity:
            return 0.0
        return float(Decimal(self.occupied) / Decimal(self.capacity))

    @property
    def mode(self) -> AllocationMode:
        return AllocationMode(self.allocation_mode)

    def __repr__(self) -> str:
        return (
            f"<StorageLocation(id={self.id!r}, mode={self.allocation_mode!r}, "
            f"occupied={self.occupied!r}/{self.capacity!r})>"
        )
