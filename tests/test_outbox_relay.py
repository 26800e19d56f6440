"""Tests for the outbox relay Celery task."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pipevault.services import outbox
from pipevault.services.notification_payloads import (
    AssignedLocation,
    LoadDeliveredPayload,
    LoadPickedUpPayload,
    RequestApprovedPayload,
    RequestRejectedPayload,
)
from pipevault.tasks.outbox_relay import (
    _async_relay_outbox,
    format_slack_message,
    relay_outbox,
    relay_pending,
)

WEBHOOK_URL = "https://hooks.slack.test/services/T000/B000/XXXX"

COMMON = {
    "request_id": "req-1",
    "reference_id": "AFE-158970-1",
    "tenant_id": "acme",
    "recipient": "ops@acme.test",
}


class TestFormatSlackMessage:
    """Tests for Slack message formatting."""

    def test_approval_lists_locations(self) -> None:
        """Test that the approval message names every location."""
        payload = RequestApprovedPayload(
            **COMMON,
            assigned_locations=[
                AssignedLocation(location_id="A-A1-5", quantity=Decimal("30")),
                AssignedLocation(location_id="A-A1-6", quantity=Decimal("20")),
            ],
            quantity=Decimal("50"),
        )
        text = format_slack_message(payload)["text"]
        assert text.startswith("[AFE-158970-1]")
        assert "A-A1-5 (30)" in text
        assert "A-A1-6 (20)" in text

    def test_delivery_mentions_mismatch(self) -> None:
        """Test that a short delivery is called out."""
        payload = LoadDeliveredPayload(
            **COMMON,
            load_id="load-1",
            location_id="A-A1-5",
            planned_quantity=Decimal("50"),
            actual_quantity=Decimal("48"),
            inventory_record_ids=["rec-1"],
            mismatch_delta=Decimal("2"),
        )
        text = format_slack_message(payload)["text"]
        assert "48 received (planned 50)" in text
        assert "mismatch 2" in text

    def test_pickup_completion(self) -> None:
        """Test that the final pickup says the request is complete."""
        payload = LoadPickedUpPayload(
            **COMMON,
            load_id="load-2",
            quantity=Decimal("48"),
            inventory_record_ids=["rec-1"],
            request_complete=True,
        )
        assert format_slack_message(payload)["text"].endswith("request complete")


class TestRelayPending:
    """Tests for relay_pending against a mocked webhook."""

    @pytest.mark.asyncio
    async def test_delivers_and_marks_processed(self, session) -> None:
        """Test that delivered rows are flipped to processed."""
        payload = RequestRejectedPayload(**COMMON, reason="No rack space")
        await outbox.enqueue(session, payload, "request_rejected:req-1")
        await session.commit()

        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(json.loads(request.content))
            return httpx.Response(200, text="ok")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            counts = await relay_pending(session, client, WEBHOOK_URL)
        await session.commit()

        assert counts == {"delivered": 1, "failed": 0}
        assert posted == [{"text": "[AFE-158970-1] Storage request rejected: No rack space"}]
        assert await outbox.fetch_pending(session) == []

    @pytest.mark.asyncio
    async def test_failed_delivery_is_recorded(self, session) -> None:
        """Test that webhook errors leave the row pending with the error."""
        payload = RequestRejectedPayload(**COMMON, reason="No rack space")
        record = await outbox.enqueue(session, payload, "request_rejected:req-1")
        await session.commit()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="server error")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            counts = await relay_pending(session, client, WEBHOOK_URL)
        await session.commit()

        assert counts == {"delivered": 0, "failed": 1}
        pending = await outbox.fetch_pending(session)
        assert [row.id for row in pending] == [record.id]
        assert pending[0].attempts == 1
        assert "500" in pending[0].last_error


class TestAsyncRelayOutbox:
    """Tests for _async_relay_outbox."""

    @patch("pipevault.tasks.outbox_relay.settings")
    async def test_skips_without_webhook(self, mock_settings: MagicMock) -> None:
        """Test that nothing is touched when no webhook is configured."""
        mock_settings.slack_webhook_url = ""
        result = await _async_relay_outbox()
        assert result["status"] == "skipped"

    @patch("pipevault.tasks.outbox_relay.relay_pending")
    @patch("pipevault.tasks.outbox_relay.create_async_engine")
    @patch("pipevault.tasks.outbox_relay.settings")
    async def test_partial_failure(
        self,
        mock_settings: MagicMock,
        mock_engine: MagicMock,
        mock_relay: AsyncMock,
    ) -> None:
        """Test that mixed outcomes are reported as partial."""
        mock_settings.slack_webhook_url = WEBHOOK_URL
        mock_settings.database_url = "postgresql://localhost/pipevault"
        mock_settings.slack_timeout = 5.0

        mock_engine_instance = MagicMock()
        mock_engine_instance.dispose = AsyncMock()
        mock_engine.return_value = mock_engine_instance

        mock_session = AsyncMock()
        mock_session_factory = MagicMock()
        mock_session_factory.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session_factory.__aexit__ = AsyncMock(return_value=None)

        mock_relay.return_value = {"delivered": 2, "failed": 1}

        with patch(
            "pipevault.tasks.outbox_relay.async_sessionmaker",
            return_value=lambda: mock_session_factory,
        ):
            result = await _async_relay_outbox(batch_size=10)

        assert result == {"status": "partial", "delivered": 2, "failed": 1}
        mock_session.commit.assert_awaited_once()
        mock_engine_instance.dispose.assert_awaited_once()
        assert mock_relay.await_args.args[2] == WEBHOOK_URL
        assert mock_relay.await_args.args[3] == 10


class TestRelayOutboxTask:
    """Tests for the Celery task."""

    @patch("pipevault.tasks.outbox_relay.asyncio.run")
    def test_task_calls_async_relay(self, mock_asyncio_run: MagicMock) -> None:
        """Test that Celery task calls the async relay function."""
        mock_asyncio_run.return_value = {"status": "success", "delivered": 3, "failed": 0}

        # Call the task directly (Celery binds self automatically)
        result = relay_outbox.run()

        assert result["delivered"] == 3
        mock_asyncio_run.assert_called_once()
