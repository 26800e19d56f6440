"""NotificationRecord model for the transactional outbox."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class NotificationRecord(Base):
    """Pending notification written in the same transaction as a business change.

    Only the delivery worker mutates a record after creation, by flipping
    ``processed`` or recording a failed attempt.

    Attributes:
        id: Unique notification UUID
        type: Business event type (see NotificationType)
        payload: JSON payload matching the event's payload model
        dedupe_key: Idempotency key; enqueueing the same key twice is a no-op
        processed: Whether the delivery worker has handled the record
        attempts: Number of delivery attempts
        last_error: Error from the most recent failed attempt
        last_attempt_at: Timestamp of the most recent attempt
        processed_at: When the record was processed
        created_at: When the record was enqueued
    """

    __tablename__ = "notification_outbox"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        # Partial index for the delivery worker's polling query
        Index(
            "ix_notification_outbox_pending",
            "created_at",
            postgresql_where=text("processed = false"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationRecord(id={self.id}, type={self.type}, "
            f"processed={self.processed})>"
        )
