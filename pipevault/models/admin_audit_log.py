"""SQLAlchemy model for admin action audit trail.

This module provides a normalized table for recording every admin decision
that changes capacity or lifecycle state.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class AdminAuditLog(Base):
    """Model for storing admin audit trail entries.

    Each entry records:
    - Who acted (the caller identity supplied by the gateway)
    - What action was taken (e.g., "approve_request")
    - Which entity was affected
    - Structured details for reproducibility

    Attributes:
        id: Unique audit entry UUID
        actor_id: Identity of the admin who acted
        action: Action name
        entity_type: Kind of entity affected ("storage_request", "trucking_load", ...)
        entity_id: Identifier of the affected entity
        details: JSON blob of action details
        created_at: When the action was recorded
    """

    __tablename__ = "admin_audit_logs"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )

    __table_args__ = (
        Index("ix_admin_audit_logs_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AdminAuditLog(id={self.id}, actor={self.actor_id}, "
            f"action={self.action}, entity={self.entity_type}:{self.entity_id})>"
        )
