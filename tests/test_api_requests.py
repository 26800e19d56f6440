"""Tests for request and load API endpoints."""

from decimal import Decimal

import pytest
from fastapi import status
from fastapi.testclient import TestClient


@pytest.fixture
def rack(client: TestClient, admin_headers: dict[str, str]) -> str:
    """A LINEAR rack with capacity 100 and 80 occupied."""
    client.post(
        "/locations",
        json={"id": "A-A1-5", "name": "Rack A1-5", "allocation_mode": "LINEAR", "capacity": 100},
        headers=admin_headers,
    )
    client.post(
        "/locations/A-A1-5/adjustments",
        json={"new_occupied": 80, "reason": "Opening stock count"},
        headers=admin_headers,
    )
    return "A-A1-5"


def open_request(client: TestClient, headers: dict[str, str], quantity: int) -> str:
    response = client.post(
        "/requests",
        json={
            "reference_id": "AFE-158970-1",
            "contact_email": "ops@acme.test",
            "required_quantity": quantity,
        },
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


class TestRequestEndpoints:
    """Tests for /requests."""

    def test_tenant_creates_and_reads_request(
        self,
        client: TestClient,
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that the caller's tenant is used by default."""
        request_id = open_request(client, tenant_headers, 15)

        response = client.get(f"/requests/{request_id}", headers=tenant_headers)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["tenant_id"] == "acme"
        assert data["status"] == "PENDING"

    def test_other_tenant_cannot_read(
        self,
        client: TestClient,
        tenant_headers: dict[str, str],
    ) -> None:
        """Test tenant isolation over HTTP."""
        request_id = open_request(client, tenant_headers, 15)
        outsider = {**tenant_headers, "X-Tenant-Id": "globex"}
        response = client.get(f"/requests/{request_id}", headers=outsider)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_request(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test 404 with a typed body."""
        response = client.get(
            "/requests/6f1c1f2e-8d7a-4c55-9a3e-000000000000", headers=admin_headers
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "not_found"

    def test_approve_beyond_capacity(
        self,
        client: TestClient,
        rack: str,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that 30 against 20 free returns both figures."""
        request_id = open_request(client, tenant_headers, 30)

        response = client.post(
            f"/requests/{request_id}/approve",
            json={"location_ids": [rack], "required_quantity": 30},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        data = response.json()
        assert data["kind"] == "insufficient_capacity"
        assert Decimal(data["required"]) == Decimal("30")
        assert Decimal(data["available"]) == Decimal("20")

    def test_approve_and_replay(
        self,
        client: TestClient,
        rack: str,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test a successful approval and its idempotent repeat."""
        request_id = open_request(client, tenant_headers, 15)
        body = {"location_ids": [rack], "required_quantity": 15, "notes": "Bay 5"}

        first = client.post(f"/requests/{request_id}/approve", json=body, headers=admin_headers)
        second = client.post(f"/requests/{request_id}/approve", json=body, headers=admin_headers)

        assert first.status_code == status.HTTP_200_OK
        assert first.json()["replayed"] is False
        assert first.json()["high_utilization_location_ids"] == [rack]
        assert second.json()["replayed"] is True
        for response in (first, second):
            assert [
                (item["location_id"], Decimal(item["amount"]))
                for item in response.json()["assigned_locations"]
            ] == [(rack, Decimal("15"))]

        location = client.get(f"/locations/{rack}", headers=admin_headers).json()
        assert Decimal(location["occupied"]) == Decimal("95")

    def test_tenant_cannot_approve(
        self,
        client: TestClient,
        rack: str,
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that approval is admin only."""
        request_id = open_request(client, tenant_headers, 15)
        response = client.post(
            f"/requests/{request_id}/approve",
            json={"location_ids": [rack], "required_quantity": 15},
            headers=tenant_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_reject(
        self,
        client: TestClient,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test rejection and the terminal-state guard on approval."""
        request_id = open_request(client, tenant_headers, 15)

        response = client.post(
            f"/requests/{request_id}/reject",
            json={"reason": "Yard closed for maintenance"},
            headers=admin_headers,
        )
        assert response.json()["status"] == "REJECTED"

        response = client.post(
            f"/requests/{request_id}/approve",
            json={"location_ids": ["A-A1-5"], "required_quantity": 15},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "invalid_state"


class TestLoadLifecycle:
    """End-to-end load scheduling, transitions and completion."""

    def schedule(self, client: TestClient, headers: dict[str, str], request_id: str, **body) -> dict:
        payload = {"direction": "INBOUND", "sequence_number": 1, "planned_quantity": 50, **body}
        return client.post(f"/requests/{request_id}/loads", json=payload, headers=headers)

    def test_inbound_delivery_and_pickup(
        self,
        client: TestClient,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test a request from approval until its pipe has left the yard."""
        client.post(
            "/locations",
            json={"id": "A", "name": "Rack A", "allocation_mode": "LINEAR", "capacity": 100},
            headers=admin_headers,
        )
        request_id = open_request(client, tenant_headers, 50)

        created = self.schedule(client, tenant_headers, request_id)
        assert created.status_code == status.HTTP_201_CREATED
        again = self.schedule(client, tenant_headers, request_id)
        assert again.status_code == status.HTTP_200_OK
        assert again.json()["id"] == created.json()["id"]
        load_id = created.json()["id"]

        client.post(
            f"/requests/{request_id}/approve",
            json={"location_ids": ["A"], "required_quantity": 50},
            headers=admin_headers,
        )
        assert client.get(f"/loads/{load_id}", headers=tenant_headers).json()["status"] == "APPROVED"

        response = client.post(
            f"/loads/{load_id}/complete", json={"actual_quantity": 50}, headers=admin_headers
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "invalid_state_transition"

        for target in ("IN_TRANSIT", "ARRIVED"):
            response = client.post(
                f"/loads/{load_id}/transition", json={"status": target}, headers=admin_headers
            )
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["status"] == target

        response = client.post(
            f"/loads/{load_id}/complete",
            json={"manifest_items": [{"quantity": 20}, {"quantity": 28}]},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_200_OK
        completion = response.json()
        assert completion["warning"]["kind"] == "reconciliation_mismatch"
        assert Decimal(completion["warning"]["delta"]) == Decimal("2")
        record_ids = completion["inventory_record_ids"]

        inventory = client.get(f"/requests/{request_id}/inventory", headers=tenant_headers).json()
        assert [Decimal(item["quantity"]) for item in inventory] == [Decimal("48")]

        response = client.post(
            f"/requests/{request_id}/pickup",
            json={"inventory_record_ids": record_ids},
            headers=tenant_headers,
        )
        assert response.json()["status"] == "PICKUP_REQUESTED"

        outbound = self.schedule(
            client, tenant_headers, request_id, direction="OUTBOUND", planned_quantity=48
        ).json()
        for target in ("APPROVED", "IN_TRANSIT", "DELIVERED"):
            client.post(
                f"/loads/{outbound['id']}/transition", json={"status": target}, headers=admin_headers
            )
        response = client.post(
            f"/loads/{outbound['id']}/complete", json={"actual_quantity": 48}, headers=admin_headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["warning"] is None

        request = client.get(f"/requests/{request_id}", headers=tenant_headers).json()
        assert request["status"] == "COMPLETE"
        location = client.get("/locations/A", headers=admin_headers).json()
        assert Decimal(location["occupied"]) == Decimal("0")

    def test_outbound_cannot_arrive(
        self,
        client: TestClient,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that ARRIVED is refused for an outbound truck in transit."""
        client.post(
            "/locations",
            json={"id": "B", "name": "Rack B", "allocation_mode": "LINEAR", "capacity": 100},
            headers=admin_headers,
        )
        request_id = open_request(client, tenant_headers, 10)
        load_id = self.schedule(client, tenant_headers, request_id, direction="OUTBOUND").json()["id"]

        response = client.post(
            f"/loads/{load_id}/transition", json={"status": "APPROVED"}, headers=admin_headers
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "invalid_state"

        client.post(
            f"/requests/{request_id}/approve",
            json={"location_ids": ["B"], "required_quantity": 10},
            headers=admin_headers,
        )
        for target in ("APPROVED", "IN_TRANSIT"):
            client.post(f"/loads/{load_id}/transition", json={"status": target}, headers=admin_headers)

        response = client.post(
            f"/loads/{load_id}/transition", json={"status": "ARRIVED"}, headers=admin_headers
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["current"] == "IN_TRANSIT"
        assert response.json()["attempted"] == "ARRIVED"

        response = client.post(
            f"/loads/{load_id}/transition", json={"status": "DELIVERED"}, headers=admin_headers
        )
        assert response.json()["status"] == "DELIVERED"

    def test_complete_needs_one_quantity_source(
        self,
        client: TestClient,
        admin_headers: dict[str, str],
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that both or neither of quantity and manifest is a validation error."""
        request_id = open_request(client, tenant_headers, 10)
        load_id = self.schedule(client, tenant_headers, request_id).json()["id"]

        response = client.post(
            f"/loads/{load_id}/complete",
            json={"actual_quantity": 10, "manifest_items": [{"quantity": 10}]},
            headers=admin_headers,
        )
        assert response.status_code == 422
        response = client.post(f"/loads/{load_id}/complete", json={}, headers=admin_headers)
        assert response.status_code == 422
