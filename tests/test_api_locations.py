"""Tests for location API endpoints, caller headers and error rendering."""

from decimal import Decimal

from fastapi import status
from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient) -> None:
        """Test health check returns healthy status."""
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}


class TestCallerHeaders:
    """Tests for the caller capability dependency."""

    def test_missing_headers(self, client: TestClient) -> None:
        """Test that anonymous calls are refused."""
        response = client.get("/locations")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_unknown_role(self, client: TestClient) -> None:
        """Test that only admin and tenant roles are accepted."""
        response = client.get(
            "/locations",
            headers={"X-Caller-Id": "someone", "X-Caller-Role": "superuser"},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_tenant_needs_tenant_id(self, client: TestClient) -> None:
        """Test that tenant callers must name their tenant."""
        response = client.get(
            "/locations",
            headers={"X-Caller-Id": "ops@acme.test", "X-Caller-Role": "tenant"},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestLocationEndpoints:
    """Tests for /locations."""

    def test_create_and_list(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test registering racks and slots and listing them."""
        response = client.post(
            "/locations",
            json={"id": "A-A1-5", "name": "Rack A1-5", "allocation_mode": "LINEAR", "capacity": 100},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["id"] == "A-A1-5"
        assert Decimal(data["available"]) == Decimal("100")
        assert data["utilization"] == 0.0

        client.post(
            "/locations",
            json={"id": "B-S1", "name": "Slot 1", "allocation_mode": "SLOT", "capacity": 1},
            headers=admin_headers,
        )

        response = client.get("/locations", headers=admin_headers)
        assert [item["id"] for item in response.json()] == ["A-A1-5", "B-S1"]

        response = client.get("/locations?allocation_mode=SLOT", headers=admin_headers)
        assert [item["id"] for item in response.json()] == ["B-S1"]

    def test_duplicate_location(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test that a taken rack code returns 409."""
        body = {"id": "A", "name": "A", "allocation_mode": "LINEAR", "capacity": 10}
        client.post("/locations", json=body, headers=admin_headers)
        response = client.post("/locations", json=body, headers=admin_headers)
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "already_exists"

    def test_tenant_cannot_manage_locations(
        self,
        client: TestClient,
        tenant_headers: dict[str, str],
    ) -> None:
        """Test that location administration is admin only."""
        response = client.post(
            "/locations",
            json={"id": "A", "name": "A", "allocation_mode": "LINEAR", "capacity": 10},
            headers=tenant_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["kind"] == "permission_denied"

    def test_unknown_location(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test the error body for an unknown rack code."""
        response = client.get("/locations/nowhere", headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["kind"] == "invalid_location"
        assert response.json()["location_ids"] == ["nowhere"]

    def test_adjustment(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test a manual occupancy correction and its audit entry."""
        client.post(
            "/locations",
            json={"id": "A", "name": "A", "allocation_mode": "LINEAR", "capacity": 100},
            headers=admin_headers,
        )

        response = client.post(
            "/locations/A/adjustments",
            json={"new_occupied": 80, "reason": "Physical recount"},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert Decimal(response.json()["new_occupied"]) == Decimal("80")

        location = client.get("/locations/A", headers=admin_headers).json()
        assert Decimal(location["occupied"]) == Decimal("80")

        trail = client.get("/audit/storage_location/A", headers=admin_headers).json()
        assert [entry["action"] for entry in trail] == ["adjust_occupancy"]

    def test_adjustment_needs_reason(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        """Test that a vague adjustment is refused."""
        client.post(
            "/locations",
            json={"id": "A", "name": "A", "allocation_mode": "LINEAR", "capacity": 100},
            headers=admin_headers,
        )
        response = client.post(
            "/locations/A/adjustments",
            json={"new_occupied": 80, "reason": "oops"},
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert response.json()["kind"] == "invalid_adjustment"
