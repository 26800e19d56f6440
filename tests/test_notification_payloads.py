"""Tests for typed notification payloads."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from pipevault.models import NotificationType
from pipevault.services.notification_payloads import (
    LoadDeliveredPayload,
    LoadPickedUpPayload,
    LoadStatusChangedPayload,
    PickupRequestedPayload,
    RequestApprovedPayload,
    RequestRejectedPayload,
    parse_payload,
)

COMMON = {
    "request_id": "req-1",
    "reference_id": "AFE-158970-1",
    "tenant_id": "acme",
    "recipient": "ops@acme.test",
}


class TestParsePayload:
    """Tests for the tagged union."""

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            ({"type": "request_approved", "assigned_locations": [], "quantity": "5"}, RequestApprovedPayload),
            ({"type": "request_rejected", "reason": "full"}, RequestRejectedPayload),
            ({"type": "pickup_requested", "inventory_record_ids": ["r"], "quantity": "5"}, PickupRequestedPayload),
            (
                {
                    "type": "load_status_changed",
                    "load_id": "l",
                    "direction": "INBOUND",
                    "sequence_number": 1,
                    "previous_status": "NEW",
                    "status": "APPROVED",
                },
                LoadStatusChangedPayload,
            ),
            (
                {
                    "type": "load_delivered",
                    "load_id": "l",
                    "location_id": "A",
                    "planned_quantity": "50",
                    "actual_quantity": "48",
                    "inventory_record_ids": ["r"],
                    "mismatch_delta": "2",
                },
                LoadDeliveredPayload,
            ),
            (
                {
                    "type": "load_picked_up",
                    "load_id": "l",
                    "quantity": "48",
                    "inventory_record_ids": ["r"],
                    "request_complete": True,
                },
                LoadPickedUpPayload,
            ),
        ],
    )
    def test_dispatches_on_type(self, data, expected) -> None:
        """Test that each type tag selects its variant."""
        payload = parse_payload({**COMMON, **data})
        assert isinstance(payload, expected)

    def test_every_notification_type_has_a_variant(self) -> None:
        """Test that the union covers the closed set of types."""
        variants = {
            RequestApprovedPayload,
            RequestRejectedPayload,
            PickupRequestedPayload,
            LoadStatusChangedPayload,
            LoadDeliveredPayload,
            LoadPickedUpPayload,
        }
        tags = {variant.model_fields["type"].default for variant in variants}
        assert tags == {member.value for member in NotificationType}

    def test_unknown_type_rejected(self) -> None:
        """Test that an unknown tag fails validation."""
        with pytest.raises(ValidationError):
            parse_payload({**COMMON, "type": "request_archived"})

    def test_missing_field_rejected(self) -> None:
        """Test that a variant's required fields are enforced."""
        with pytest.raises(ValidationError):
            parse_payload({**COMMON, "type": "request_rejected"})

    def test_quantities_are_decimals(self) -> None:
        """Test that quantities survive the JSON round trip exactly."""
        payload = parse_payload(
            {**COMMON, "type": "pickup_requested", "inventory_record_ids": [], "quantity": "0.125"}
        )
        assert payload.quantity == Decimal("0.125")

    def test_payloads_are_frozen(self) -> None:
        """Test that payloads cannot be mutated after creation."""
        payload = RequestRejectedPayload(**COMMON, reason="full")
        with pytest.raises(ValidationError):
            payload.reason = "changed"
