"""Create notification outbox, admin audit and rack adjustment tables.

Revision ID: 9e4f0b3a6c21
Revises: 7a1c2e9d4b10
Create Date: 2026-10-18

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "9e4f0b3a6c21"
down_revision: str | None = "7a1c2e9d4b10"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the outbox and audit tables."""
    op.create_table(
        "notification_outbox",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSON, nullable=False),
        # Idempotency key for the business event
        sa.Column("dedupe_key", sa.String(255), nullable=False, unique=True),
        # Delivery bookkeeping
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_notification_outbox_type", "notification_outbox", ["type"])
    # Partial index for the delivery worker's polling query
    op.create_index(
        "ix_notification_outbox_pending",
        "notification_outbox",
        ["created_at"],
        postgresql_where=sa.text("processed = false"),
    )

    op.create_table(
        "admin_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(255), nullable=False),
        sa.Column("details", postgresql.JSON, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_admin_audit_logs_actor_id", "admin_audit_logs", ["actor_id"])
    op.create_index("ix_admin_audit_logs_action", "admin_audit_logs", ["action"])
    op.create_index("ix_admin_audit_logs_created_at", "admin_audit_logs", ["created_at"])
    op.create_index(
        "ix_admin_audit_logs_entity",
        "admin_audit_logs",
        ["entity_type", "entity_id"],
    )

    op.create_table(
        "rack_occupancy_adjustments",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "location_id",
            sa.String(50),
            sa.ForeignKey("storage_locations.id"),
            nullable=False,
        ),
        sa.Column("adjusted_by", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("old_occupied", sa.Numeric(12, 3), nullable=False),
        sa.Column("new_occupied", sa.Numeric(12, 3), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_rack_occupancy_adjustments_location_id",
        "rack_occupancy_adjustments",
        ["location_id"],
    )


def downgrade() -> None:
    """Drop the outbox and audit tables."""
    op.drop_index(
        "ix_rack_occupancy_adjustments_location_id",
        table_name="rack_occupancy_adjustments",
    )
    op.drop_table("rack_occupancy_adjustments")
    op.drop_index("ix_admin_audit_logs_entity", table_name="admin_audit_logs")
    op.drop_index("ix_admin_audit_logs_created_at", table_name="admin_audit_logs")
    op.drop_index("ix_admin_audit_logs_action", table_name="admin_audit_logs")
    op.drop_index("ix_admin_audit_logs_actor_id", table_name="admin_audit_logs")
    op.drop_table("admin_audit_logs")
    op.drop_index("ix_notification_outbox_pending", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_type", table_name="notification_outbox")
    op.drop_table("notification_outbox")
