"""TruckingLoad model for inbound deliveries and outbound pickups."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipevault.database import Base
from pipevault.models.enums import LoadDirection, LoadStatus


class TruckingLoad(Base):
    """One truck movement associated with a storage request.

    The (request_id, direction, sequence_number) triple is unique so that a
    retried creation can never produce a duplicate load. Status changes go
    through the load state machine; actual_quantity is written exactly once,
    by reconciliation.

    Attributes:
        id: Unique load UUID
        request_id: Parent storage request
        direction: INBOUND (delivery) or OUTBOUND (pickup)
        sequence_number: Load number within the request and direction
        status: Current lifecycle status
        planned_quantity: Quantity scheduled on the truck
        actual_quantity: Quantity reconciled on completion
        location_id: Planned destination (inbound) or source (outbound)
        completed_at: Completion timestamp
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "trucking_loads"
    __table_args__ = (
        UniqueConstraint(
            "request_id",
            "direction",
            "sequence_number",
            name="uq_trucking_loads_request_direction_sequence",
        ),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    request_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("storage_requests.id"),
        nullable=False,
        index=True,
    )
    direction: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LoadDirection.INBOUND.value,
    )
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LoadStatus.NEW.value,
        index=True,
    )
    planned_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    actual_quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    location_id: Mapped[str | None] = mapped_column(
        String(50),
        ForeignKey("storage_locations.id"),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
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

    request = relationship("StorageRequest", back_populates="loads")

    def __repr__(self) -> str:
        return (
            f"<TruckingLoad(id={self.id}, direction={self.direction}, "
            f"seq={self.sequence_number}, status={self.status})>"
        )
