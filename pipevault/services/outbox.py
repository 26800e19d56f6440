"""Notification outbox service.

The engine appends notifications in the same transaction as the business
change; an external delivery worker polls pending records and flips
``processed``. Nothing here performs I/O beyond the database.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.config import settings
from pipevault.models.notification import NotificationRecord
from pipevault.services.errors import NotFoundError
from pipevault.services.notification_payloads import NotificationPayload, parse_payload

logger = logging.getLogger(__name__)


async def _get_by_dedupe_key(
    session: AsyncSession,
    dedupe_key: str,
) -> NotificationRecord | None:
    result = await session.execute(
        select(NotificationRecord).where(NotificationRecord.dedupe_key == dedupe_key)
    )
    return result.scalar_one_or_none()


async def enqueue(
    session: AsyncSession,
    payload: NotificationPayload,
    dedupe_key: str,
) -> NotificationRecord:
    """Append a notification unless one with ``dedupe_key`` already exists.

    Args:
        session: Database session (the caller's transaction)
        payload: Typed payload; its ``type`` becomes the record type
        dedupe_key: Idempotency key for the business event

    Returns:
        The new or previously enqueued NotificationRecord
    """
    existing = await _get_by_dedupe_key(session, dedupe_key)
    if existing is not None:
        logger.debug("Notification %s already enqueued", dedupe_key)
        return existing

    record = NotificationRecord(
        type=payload.type,
        payload=payload.model_dump(mode="json"),
        dedupe_key=dedupe_key,
        processed=False,
        attempts=0,
    )
    try:
        async with session.begin_nested():
            session.add(record)
            await session.flush()
    except IntegrityError:
        # Lost an insert race on the dedupe key
        existing = await _get_by_dedupe_key(session, dedupe_key)
        if existing is None:
            raise
        return existing

    logger.info("Enqueued %s notification %s", payload.type, record.id)
    return record


async def get_notification(session: AsyncSession, notification_id: str) -> NotificationRecord:
    """Get an outbox record by id.

    Raises:
        NotFoundError: If the record does not exist
    """
    result = await session.execute(
        select(NotificationRecord).where(NotificationRecord.id == notification_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFoundError("Notification", notification_id)
    return record


async def fetch_pending(
    session: AsyncSession,
    limit: int | None = None,
    max_attempts: int | None = None,
) -> list[NotificationRecord]:
    """Get unprocessed notifications, oldest first.

    Rows are locked with SKIP LOCKED so several workers can poll concurrently
    without handing out the same record twice.

    Args:
        session: Database session
        limit: Maximum number of records (defaults to settings.outbox_batch_size)
        max_attempts: Skip records that already failed this many times
            (defaults to settings.outbox_max_attempts)
    """
    limit = limit or settings.outbox_batch_size
    max_attempts = max_attempts or settings.outbox_max_attempts
    result = await session.execute(
        select(NotificationRecord)
        .where(
            NotificationRecord.processed.is_(False),
            NotificationRecord.attempts < max_attempts,
        )
        .order_by(NotificationRecord.created_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return list(result.scalars().all())


async def mark_processed(session: AsyncSession, notification_id: str) -> NotificationRecord:
    """Flip ``processed`` on a record. Marking twice is a no-op."""
    record = await get_notification(session, notification_id)
    if record.processed:
        return record
    now = datetime.now(UTC)
    record.processed = True
    record.processed_at = now
    record.last_attempt_at = now
    record.attempts = record.attempts + 1
    await session.flush()
    return record


async def record_failure(
    session: AsyncSession,
    notification_id: str,
    error: str,
) -> NotificationRecord:
    """Record a failed delivery attempt."""
    record = await get_notification(session, notification_id)
    record.attempts = record.attempts + 1
    record.last_error = error
    record.last_attempt_at = datetime.now(UTC)
    await session.flush()

    if record.attempts >= settings.outbox_max_attempts:
        logger.error(
            "Notification %s (%s) gave up after %d attempts: %s",
            record.id,
            record.type,
            record.attempts,
            error,
        )
    else:
        logger.warning(
            "Notification %s (%s) attempt %d failed: %s",
            record.id,
            record.type,
            record.attempts,
            error,
        )
    return record


def decode_payload(record: NotificationRecord) -> NotificationPayload:
    """Validate a record's stored payload into its typed variant."""
    return parse_payload(record.payload)
