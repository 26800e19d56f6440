"""RackOccupancyAdjustment model for manual occupancy corrections."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class RackOccupancyAdjustment(Base):
    """Audit row written whenever an admin overrides a location's occupancy.

    Attributes:
        id: Unique adjustment UUID
        location_id: Adjusted location
        adjusted_by: Admin identity
        reason: Free-text justification (at least 10 characters)
        old_occupied: Occupancy before the adjustment
        new_occupied: Occupancy after the adjustment
        created_at: When the adjustment was made
    """

    __tablename__ = "rack_occupancy_adjustments"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    location_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("storage_locations.id"),
        nullable=False,
        index=True,
    )
    adjusted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    old_occupied: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    new_occupied: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<RackOccupancyAdjustment(location={self.location_id!r}, "
            f"{self.old_occupied!r} -> {self.new_occupied!r})>"
        )
