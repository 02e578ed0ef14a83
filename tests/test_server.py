"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from stockflow.server import app, get_operations

LEAD_HEADERS = {"X-Actor-Id": "lead-1", "X-Actor-Name": "Ravi", "X-Actor-Role": "production_head"}
MANAGER_HEADERS = {"X-Actor-Id": "mgr-1", "X-Actor-Name": "Asha", "X-Actor-Store-Id": "S1"}


@pytest.fixture
def client(operations):
    """TestClient wired to the seeded operations facade."""
    app.dependency_overrides[get_operations] = lambda: operations
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_request(client, quantities=None):
    response = client.post(
        "/stock-requests",
        json={"storeId": "S1", "quantities": quantities or {"chicken": 50}},
        headers=MANAGER_HEADERS
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    """Tests for the health endpoint."""

    def test_health_check(self, client):
        """Test the health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestStockRequestRoutes:
    """Tests for the stock request endpoints."""

    def test_create(self, client):
        """Test creating a request over HTTP."""
        data = create_request(client, {"chicken": 50, "veg": 0})

        assert data["status"] == "pending"
        assert data["fulfilledQuantities"] is None
        assert data["requestedBy"] == "mgr-1"
        assert data["productionHouseId"] == "H1"

    def test_create_requires_actor(self, client):
        """Test requests without actor headers are unauthorized."""
        response = client.post("/stock-requests", json={"storeId": "S1", "quantities": {"chicken": 5}})

        assert response.status_code == 401

    def test_create_for_unassigned_store(self, client):
        """Test a store without a production house returns 422."""
        response = client.post(
            "/stock-requests", json={"storeId": "S2", "quantities": {"chicken": 5}}, headers=MANAGER_HEADERS
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"
        assert "administrator" in response.json()["message"]

    def test_create_for_unknown_store(self, client):
        """Test an unknown store returns 404."""
        response = client.post(
            "/stock-requests", json={"storeId": "S9", "quantities": {"chicken": 5}}, headers=MANAGER_HEADERS
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_malformed_body(self, client):
        """Test a body missing storeId returns a validation error."""
        response = client.post("/stock-requests", json={"quantities": {"chicken": 5}}, headers=MANAGER_HEADERS)

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"
        assert "storeId" in response.json()["message"]

    def test_fulfill(self, client):
        """Test a partial fulfillment over HTTP."""
        created = create_request(client)

        response = client.post(
            f"/stock-requests/{created['id']}/fulfill",
            json={"quantities": {"chicken": 20}, "notes": "rest tomorrow"},
            headers=LEAD_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["status"] == "partially_fulfilled"
        assert response.json()["fulfilledQuantities"] == {"chicken": 20}

    def test_fulfill_over_allocation(self, client):
        """Test over-allocation returns 422."""
        created = create_request(client, {"chicken": 500})

        response = client.post(
            f"/stock-requests/{created['id']}/fulfill", json={"quantities": {"chicken": 500}}, headers=LEAD_HEADERS
        )

        assert response.status_code == 422

    def test_cancel_then_fulfill(self, client):
        """Test fulfilling a cancelled request returns 409."""
        created = create_request(client)

        cancelled = client.post(f"/stock-requests/{created['id']}/cancel", headers=MANAGER_HEADERS)
        response = client.post(
            f"/stock-requests/{created['id']}/fulfill", json={"quantities": {"chicken": 50}}, headers=LEAD_HEADERS
        )

        assert cancelled.json()["status"] == "cancelled"
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"

    def test_list(self, client):
        """Test listing requests with filters."""
        create_request(client)
        create_request(client)

        response = client.get("/stock-requests", params={"storeId": "S1", "status": "pending"})

        assert response.status_code == 200
        assert len(response.json()["stockRequests"]) == 2

    def test_list_unknown_status(self, client):
        """Test an unknown status filter returns 422."""
        response = client.get("/stock-requests", params={"status": "lost"})

        assert response.status_code == 422


class TestProductionRoutes:
    """Tests for the production record endpoints."""

    def submit(self, client, date="2024-03-01", chicken=100):
        return client.post(
            "/production-records",
            json={"productionHouseId": "H1", "date": date, "breakdown": {"chicken": {"final": chicken}}},
            headers=LEAD_HEADERS
        )

    def test_submit_and_approve(self, client, house_inventory):
        """Test submitting and approving production over HTTP."""
        submitted = self.submit(client)
        record_id = submitted.json()["id"]

        approved = client.post(f"/production-records/{record_id}/approve", headers=LEAD_HEADERS)
        again = client.post(f"/production-records/{record_id}/approve", headers=LEAD_HEADERS)

        assert submitted.status_code == 201
        assert approved.json()["approvalStatus"] == "approved"
        assert again.status_code == 409
        assert house_inventory()["chicken"] == 200

    def test_bad_date(self, client):
        """Test a malformed date returns 422."""
        response = self.submit(client, date="03/01/2024")

        assert response.status_code == 422

    def test_list_and_duplicates(self, client):
        """Test listing production records and the duplicate audit."""
        self.submit(client, date="2024-03-01")
        self.submit(client, date="2024-03-01", chicken=90)
        self.submit(client, date="2024-03-02")

        records = client.get("/production-records", params={"productionHouseId": "H1"}).json()
        duplicates = client.get("/production-records/duplicates").json()

        assert len(records["productionRecords"]) == 2
        assert duplicates == {"duplicates": []}


class TestStockEstimateRoute:
    """Tests for the store stock estimate endpoint."""

    def test_estimate(self, client):
        """Test the store stock estimate endpoint."""
        created = create_request(client, {"chicken": 80})
        client.post(
            f"/stock-requests/{created['id']}/fulfill", json={"quantities": {"chicken": 80}}, headers=LEAD_HEADERS
        )

        response = client.get("/stores/S1/stock-estimate")

        assert response.status_code == 200
        assert response.json()["perSkuQuantity"] == {"chicken": 80}
        assert response.json()["overallStatus"] == "low"

    def test_unknown_store(self, client):
        """Test estimating an unknown store returns 404."""
        response = client.get("/stores/S9/stock-estimate")

        assert response.status_code == 404
