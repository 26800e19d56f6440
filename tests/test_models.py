"""Tests for SQLAlchemy models."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipevault.models import (
    AllocationMode,
    InventoryRecord,
    LocationReservation,
    NotificationRecord,
    StorageLocation,
    StorageRequest,
    TruckingLoad,
)


class TestStorageLocationModel:
    """Tests for the StorageLocation model."""

    def test_location_tablename(self) -> None:
        """Test that StorageLocation has correct table name."""
        assert StorageLocation.__tablename__ == "storage_locations"

    def test_available_and_utilization(self) -> None:
        """Test derived capacity figures."""
        location = StorageLocation(
            id="A-A1-5",
            name="Rack A1-5",
            allocation_mode="LINEAR",
            capacity=Decimal("100"),
            occupied=Decimal("80"),
        )
        assert location.available == Decimal("20")
        assert location.utilization == pytest.approx(0.8)
        assert location.mode == AllocationMode.LINEAR

    def test_utilization_of_zero_capacity(self) -> None:
        """Test that an unsized location reports zero utilization."""
        location = StorageLocation(id="X", name="X", capacity=Decimal("0"), occupied=Decimal("0"))
        assert location.utilization == 0.0

    def test_location_repr(self) -> None:
        """Test StorageLocation string representation."""
        location = StorageLocation(
            id="B-S3",
            name="Slot 3",
            allocation_mode="SLOT",
            capacity=Decimal("1"),
            occupied=Decimal("0"),
        )
        assert "B-S3" in repr(location)
        assert "SLOT" in repr(location)

    def test_check_constraints_declared(self) -> None:
        """Test that occupancy bounds are enforced by the table."""
        names = {constraint.name for constraint in StorageLocation.__table__.constraints}
        assert "ck_storage_locations_occupied_within_capacity" in names
        assert "ck_storage_locations_slot_capacity" in names

    @pytest.mark.asyncio
    async def test_database_rejects_overfull_location(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Test that occupied > capacity cannot be written."""
        async with session_factory() as session:
            session.add(
                StorageLocation(
                    id="A-A1-5",
                    name="Rack A1-5",
                    allocation_mode="LINEAR",
                    capacity=Decimal("100"),
                    occupied=Decimal("101"),
                )
            )
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_database_rejects_large_slot(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Test that a SLOT location cannot hold more than one unit."""
        async with session_factory() as session:
            session.add(
                StorageLocation(
                    id="B-S1",
                    name="Slot 1",
                    allocation_mode="SLOT",
                    capacity=Decimal("2"),
                    occupied=Decimal("0"),
                )
            )
            with pytest.raises(IntegrityError):
                await session.commit()


class TestStorageRequestModel:
    """Tests for the StorageRequest model."""

    def test_request_has_required_columns(self) -> None:
        """Test that model has all required columns."""
        columns = {c.name for c in StorageRequest.__table__.columns}
        assert {
            "id",
            "tenant_id",
            "reference_id",
            "contact_email",
            "required_quantity",
            "status",
            "assigned_location_ids",
            "approved_quantity",
            "approved_by",
            "approved_at",
            "rejection_reason",
            "admin_notes",
        }.issubset(columns)


class TestTruckingLoadModel:
    """Tests for the TruckingLoad model."""

    def test_load_key_is_unique(self) -> None:
        """Test that (request, direction, sequence) is unique."""
        unique_columns = [
            {column.name for column in constraint.columns}
            for constraint in TruckingLoad.__table__.constraints
            if constraint.__class__.__name__ == "UniqueConstraint"
        ]
        assert {"request_id", "direction", "sequence_number"} in unique_columns

    @pytest.mark.asyncio
    async def test_duplicate_load_key_rejected(
        self,
        seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Test that the database refuses a second load with the same key."""
        request = await seed.request()
        await seed.load(request.id, sequence_number=1)
        async with session_factory() as session:
            session.add(
                TruckingLoad(
                    request_id=request.id,
                    direction="INBOUND",
                    sequence_number=1,
                    status="NEW",
                    planned_quantity=Decimal("10"),
                )
            )
            with pytest.raises(IntegrityError):
                await session.commit()


class TestInventoryRecordModel:
    """Tests for the InventoryRecord model."""

    def test_record_links_loads(self) -> None:
        """Test that records reference the delivering and removing loads."""
        columns = {c.name for c in InventoryRecord.__table__.columns}
        assert {"origin_load_id", "removing_load_id", "parent_record_id", "picked_up_at"}.issubset(
            columns
        )


class TestLocationReservationModel:
    """Tests for the LocationReservation model."""

    def test_remaining(self) -> None:
        """Test remaining = reserved - consumed."""
        reservation = LocationReservation(
            request_id="r",
            location_id="A",
            reserved_quantity=Decimal("30"),
            consumed_quantity=Decimal("12"),
        )
        assert reservation.remaining == Decimal("18")


class TestNotificationRecordModel:
    """Tests for the NotificationRecord model."""

    def test_dedupe_key_unique(self) -> None:
        """Test that the dedupe key carries a unique constraint."""
        assert NotificationRecord.__table__.c.dedupe_key.unique is True

    def test_pending_index_declared(self) -> None:
        """Test that a partial index supports polling for unprocessed rows."""
        index_names = {index.name for index in NotificationRecord.__table__.indexes}
        assert "ix_notification_outbox_pending" in index_names
