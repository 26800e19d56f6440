"""Tests for the notification outbox."""

from decimal import Decimal

import pytest

from pipevault.services import outbox
from pipevault.services.errors import NotFoundError
from pipevault.services.notification_payloads import (
    RequestApprovedPayload,
    RequestRejectedPayload,
)


def rejected(request_id: str = "req-1") -> RequestRejectedPayload:
    return RequestRejectedPayload(
        request_id=request_id,
        reference_id="AFE-158970-1",
        tenant_id="acme",
        recipient="ops@acme.test",
        reason="No rack space",
    )


class TestEnqueue:
    """Tests for enqueue()."""

    @pytest.mark.asyncio
    async def test_enqueue_stores_typed_payload(self, session) -> None:
        """Test that the payload is stored as JSON with its type."""
        payload = RequestApprovedPayload(
            request_id="req-1",
            reference_id="AFE-158970-1",
            tenant_id="acme",
            recipient="ops@acme.test",
            assigned_locations=[{"location_id": "A", "quantity": Decimal("50")}],
            quantity=Decimal("50"),
        )

        record = await outbox.enqueue(session, payload, dedupe_key="request_approved:req-1")
        await session.commit()

        assert record.type == "request_approved"
        assert record.processed is False
        assert record.attempts == 0
        assert record.payload["quantity"] == "50"
        assert record.payload["assigned_locations"] == [{"location_id": "A", "quantity": "50"}]
        assert outbox.decode_payload(record) == payload

    @pytest.mark.asyncio
    async def test_enqueue_is_idempotent(self, session) -> None:
        """Test that the same dedupe key yields one record."""
        first = await outbox.enqueue(session, rejected(), dedupe_key="request_rejected:req-1")
        second = await outbox.enqueue(session, rejected(), dedupe_key="request_rejected:req-1")
        await session.commit()

        assert second.id == first.id
        assert len(await outbox.fetch_pending(session)) == 1


class TestPolling:
    """Tests for fetch_pending, mark_processed and record_failure."""

    @pytest.mark.asyncio
    async def test_fetch_pending_oldest_first(self, session) -> None:
        """Test that pending rows come back in creation order."""
        ids = []
        for index in range(3):
            record = await outbox.enqueue(session, rejected(f"req-{index}"), f"key-{index}")
            ids.append(record.id)
        await session.commit()

        pending = await outbox.fetch_pending(session, limit=2)
        assert [record.id for record in pending] == ids[:2]

    @pytest.mark.asyncio
    async def test_mark_processed(self, session) -> None:
        """Test that processed rows leave the queue and marking twice is harmless."""
        record = await outbox.enqueue(session, rejected(), "key")
        await session.commit()

        processed = await outbox.mark_processed(session, record.id)
        again = await outbox.mark_processed(session, record.id)
        await session.commit()

        assert processed.processed is True
        assert processed.processed_at is not None
        assert again.attempts == 1
        assert await outbox.fetch_pending(session) == []

    @pytest.mark.asyncio
    async def test_record_failure_until_exhausted(self, session) -> None:
        """Test that failed rows stay pending until attempts run out."""
        record = await outbox.enqueue(session, rejected(), "key")
        await session.commit()

        failed = await outbox.record_failure(session, record.id, "HTTP 500")
        assert failed.attempts == 1
        assert failed.last_error == "HTTP 500"
        assert len(await outbox.fetch_pending(session, max_attempts=3)) == 1

        await outbox.record_failure(session, record.id, "HTTP 500")
        await outbox.record_failure(session, record.id, "HTTP 500")
        assert await outbox.fetch_pending(session, max_attempts=3) == []

    @pytest.mark.asyncio
    async def test_unknown_notification(self, session) -> None:
        """Test NotFoundError for a missing record."""
        with pytest.raises(NotFoundError):
            await outbox.mark_processed(session, "6f1c1f2e-8d7a-4c55-9a3e-000000000002")
