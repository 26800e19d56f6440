"""Create storage location, request, load, inventory and reservation tables.

Revision ID: 7a1c2e9d4b10
Revises:
Create Date: 2026-10-18

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "7a1c2e9d4b10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the capacity ledger and shipment lifecycle tables."""
    op.create_table(
        "storage_locations",
        # Rack code is the primary key
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("allocation_mode", sa.String(20), nullable=False),
        # Capacity ledger
        sa.Column("capacity", sa.Numeric(12, 3), nullable=False),
        sa.Column("occupied", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "occupied >= 0 AND occupied <= capacity",
            name="ck_storage_locations_occupied_within_capacity",
        ),
        sa.CheckConstraint(
            "allocation_mode != 'SLOT' OR capacity = 1",
            name="ck_storage_locations_slot_capacity",
        ),
    )

    op.create_table(
        "storage_requests",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        # Ownership and contact
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("reference_id", sa.String(100), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=False),
        sa.Column("required_quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="PENDING"),
        # Approval outcome
        sa.Column("assigned_location_ids", postgresql.JSON, nullable=True),
        sa.Column("approved_quantity", sa.Numeric(12, 3), nullable=True),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_storage_requests_tenant_id", "storage_requests", ["tenant_id"])
    op.create_index("ix_storage_requests_status", "storage_requests", ["status"])
    op.create_index(
        "ix_storage_requests_status_created",
        "storage_requests",
        ["status", "created_at"],
    )

    op.create_table(
        "trucking_loads",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("storage_requests.id"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("sequence_number", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="NEW"),
        # Quantities (actual is written once, on completion)
        sa.Column("planned_quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("actual_quantity", sa.Numeric(12, 3), nullable=True),
        sa.Column(
            "location_id",
            sa.String(50),
            sa.ForeignKey("storage_locations.id"),
            nullable=True,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "request_id",
            "direction",
            "sequence_number",
            name="uq_trucking_loads_request_direction_sequence",
        ),
    )
    op.create_index("ix_trucking_loads_request_id", "trucking_loads", ["request_id"])
    op.create_index("ix_trucking_loads_status", "trucking_loads", ["status"])

    op.create_table(
        "inventory_records",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("storage_requests.id"),
            nullable=False,
        ),
        sa.Column(
            "location_id",
            sa.String(50),
            sa.ForeignKey("storage_locations.id"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_STORAGE"),
        # Load provenance
        sa.Column(
            "origin_load_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("trucking_loads.id"),
            nullable=True,
        ),
        sa.Column(
            "removing_load_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("trucking_loads.id"),
            nullable=True,
        ),
        sa.Column(
            "parent_record_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("inventory_records.id"),
            nullable=True,
        ),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_inventory_records_tenant_id", "inventory_records", ["tenant_id"])
    op.create_index(
        "ix_inventory_records_origin_load_id", "inventory_records", ["origin_load_id"]
    )
    op.create_index(
        "ix_inventory_records_removing_load_id", "inventory_records", ["removing_load_id"]
    )
    op.create_index(
        "ix_inventory_records_request_status",
        "inventory_records",
        ["request_id", "status"],
    )
    op.create_index(
        "ix_inventory_records_location_status",
        "inventory_records",
        ["location_id", "status"],
    )

    op.create_table(
        "location_reservations",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("storage_requests.id"),
            nullable=False,
        ),
        sa.Column(
            "location_id",
            sa.String(50),
            sa.ForeignKey("storage_locations.id"),
            nullable=False,
        ),
        sa.Column("reserved_quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column(
            "consumed_quantity", sa.Numeric(12, 3), nullable=False, server_default="0"
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_location_reservations_request_location",
        "location_reservations",
        ["request_id", "location_id"],
    )


def downgrade() -> None:
    """Drop the capacity ledger and shipment lifecycle tables."""
    op.drop_index(
        "ix_location_reservations_request_location", table_name="location_reservations"
    )
    op.drop_table("location_reservations")
    op.drop_index("ix_inventory_records_location_status", table_name="inventory_records")
    op.drop_index("ix_inventory_records_request_status", table_name="inventory_records")
    op.drop_index("ix_inventory_records_removing_load_id", table_name="inventory_records")
    op.drop_index("ix_inventory_records_origin_load_id", table_name="inventory_records")
    op.drop_index("ix_inventory_records_tenant_id", table_name="inventory_records")
    op.drop_table("inventory_records")
    op.drop_index("ix_trucking_loads_status", table_name="trucking_loads")
    op.drop_index("ix_trucking_loads_request_id", table_name="trucking_loads")
    op.drop_table("trucking_loads")
    op.drop_index("ix_storage_requests_status_created", table_name="storage_requests")
    op.drop_index("ix_storage_requests_status", table_name="storage_requests")
    op.drop_index("ix_storage_requests_tenant_id", table_name="storage_requests")
    op.drop_table("storage_requests")
    op.drop_table("storage_locations")
