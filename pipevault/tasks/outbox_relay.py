"""Celery task that drains the notification outbox to Slack."""

import asyncio
import logging
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pipevault.celery_app import celery_app
from pipevault.config import settings
from pipevault.database import get_async_database_url
from pipevault.models.notification import NotificationRecord
from pipevault.services import outbox
from pipevault.services.notification_payloads import (
    LoadDeliveredPayload,
    LoadPickedUpPayload,
    LoadStatusChangedPayload,
    NotificationPayload,
    PickupRequestedPayload,
    RequestApprovedPayload,
    RequestRejectedPayload,
)

logger = logging.getLogger(__name__)


def format_slack_message(payload: NotificationPayload) -> dict[str, Any]:
    """Build the Slack webhook body for a notification."""
    prefix = f"[{payload.reference_id}]"
    if isinstance(payload, RequestApprovedPayload):
        locations = ", ".join(
            f"{item.location_id} ({item.quantity})" for item in payload.assigned_locations
        )
        text = f"{prefix} Storage request approved: {payload.quantity} on {locations}"
    elif isinstance(payload, RequestRejectedPayload):
        text = f"{prefix} Storage request rejected: {payload.reason}"
    elif isinstance(payload, PickupRequestedPayload):
        text = (
            f"{prefix} Pickup requested for {payload.quantity} "
            f"({len(payload.inventory_record_ids)} record(s))"
        )
    elif isinstance(payload, LoadStatusChangedPayload):
        text = (
            f"{prefix} {payload.direction} load #{payload.sequence_number}: "
            f"{payload.previous_status} -> {payload.status}"
        )
    elif isinstance(payload, LoadDeliveredPayload):
        text = (
            f"{prefix} Load delivered to {payload.location_id}: "
            f"{payload.actual_quantity} received (planned {payload.planned_quantity})"
        )
        if payload.mismatch_delta is not None:
            text += f", mismatch {payload.mismatch_delta}"
    elif isinstance(payload, LoadPickedUpPayload):
        text = f"{prefix} Load picked up: {payload.quantity}"
        if payload.request_complete:
            text += "; request complete"
    else:
        text = f"{prefix} {payload.type}"
    return {"text": text}


async def deliver_notification(
    client: httpx.AsyncClient,
    webhook_url: str,
    record: NotificationRecord,
) -> None:
    """Post one outbox record to the webhook.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx responses
    """
    payload = outbox.decode_payload(record)
    response = await client.post(webhook_url, json=format_slack_message(payload))
    response.raise_for_status()


async def relay_pending(
    session: AsyncSession,
    client: httpx.AsyncClient,
    webhook_url: str,
    batch_size: int | None = None,
) -> dict[str, int]:
    """Deliver one batch of pending notifications.

    Returns:
        Counts of delivered and failed records
    """
    counts = {"delivered": 0, "failed": 0}
    for record in await outbox.fetch_pending(session, limit=batch_size):
        try:
            await deliver_notification(client, webhook_url, record)
        except httpx.HTTPError as e:
            await outbox.record_failure(session, record.id, str(e) or type(e).__name__)
            counts["failed"] += 1
            continue
        await outbox.mark_processed(session, record.id)
        counts["delivered"] += 1
    return counts


async def _async_relay_outbox(batch_size: int | None = None) -> dict[str, Any]:
    """Async implementation of the outbox relay.

    Returns:
        Dictionary with relay results
    """
    results: dict[str, Any] = {"status": "success", "delivered": 0, "failed": 0}

    if not settings.slack_webhook_url:
        logger.info("No Slack webhook configured; leaving outbox untouched")
        results["status"] = "skipped"
        return results

    engine = create_async_engine(
        get_async_database_url(settings.database_url),
        pool_pre_ping=True,
    )
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with async_session() as session:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(settings.slack_timeout)
            ) as client:
                counts = await relay_pending(
                    session, client, settings.slack_webhook_url, batch_size
                )
            await session.commit()
        results.update(counts)
    finally:
        await engine.dispose()

    if results["failed"]:
        results["status"] = "partial" if results["delivered"] else "error"
    return results


@celery_app.task(
    bind=True,
    name="pipevault.tasks.outbox_relay.relay_outbox",
    max_retries=3,
    default_retry_delay=60,
)
def relay_outbox(self: Any, batch_size: int | None = None) -> dict[str, Any]:
    """Celery task to deliver pending outbox notifications.

    Failed deliveries are recorded on the outbox rows and retried on the next
    run until ``settings.outbox_max_attempts`` is reached.

    Returns:
        Dictionary with relay results
    """
    logger.info("Starting outbox relay")
    try:
        result = asyncio.run(_async_relay_outbox(batch_size))
        logger.info(
            "Outbox relay completed: %d delivered, %d failed",
            result["delivered"],
            result["failed"],
        )
        return result
    except Exception as e:
        logger.exception("Outbox relay task failed")
        raise self.retry(exc=e) from e
