"""
Tests for the HTTP layer, run against in-memory storage.
"""

import pytest
from fastapi.testclient import TestClient

from labtrack.api.deps import get_coordinator, get_equipment_service, get_notification_sink, get_storage
from labtrack.core.coordinator import TransactionCoordinator
from labtrack.core.equipment import EquipmentService
from labtrack.main import app

from conftest import DUE, PER_DAY


@pytest.fixture
def client(storage, sink, clock):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notification_sink] = lambda: sink
    app.dependency_overrides[get_coordinator] = lambda: TransactionCoordinator(
        storage, notification_sink=sink, fine_per_day=PER_DAY, retry_base_delay=0, clock=clock,
    )
    app.dependency_overrides[get_equipment_service] = lambda: EquipmentService(storage, retry_base_delay=0, clock=clock)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, quantity=3, staff=True, equipment_id="eq-microscope"):
    response = client.post("/api/v1/transactions/", json={
        "student_id": "2021-00001",
        "student_name": "Ada Lovelace",
        "student_email": "ada@university.edu",
        "items": [{"equipment_id": equipment_id, "quantity": quantity}],
        "due_date": DUE.isoformat(),
        "is_staff_created": staff,
    })
    return response


class TestTransactionsApi:
    def test_create_and_read(self, client):
        response = _create(client)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "Ongoing"
        assert body["total_price"] == 450

        fetched = client.get(f"/api/v1/transactions/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["transaction_id"] == body["transaction_id"]

        equipment = client.get("/api/v1/equipment/eq-microscope").json()
        assert (equipment["available_quantity"], equipment["borrowed_quantity"]) == (0, 3)

    def test_insufficient_inventory_maps_to_conflict(self, client):
        response = _create(client, quantity=4)
        assert response.status_code == 409
        assert response.json()["kind"] == "insufficient_inventory"

    def test_unknown_equipment_is_404(self, client):
        response = _create(client, equipment_id="eq-missing")
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_invalid_payload_is_422(self, client):
        response = client.post("/api/v1/transactions/", json={"student_id": "x", "items": []})
        assert response.status_code == 422

    def test_approve_then_approve_again(self, client, sink):
        transaction = _create(client, staff=False).json()
        response = client.patch(f"/api/v1/transactions/{transaction['id']}/approve")
        assert response.status_code == 200
        assert response.json()["new_status"] == "Ongoing"
        assert len(sink.delivered) == 1

        again = client.patch(f"/api/v1/transactions/{transaction['id']}/approve")
        assert again.status_code == 409
        assert again.json()["kind"] == "invalid_state"

    def test_deny(self, client):
        transaction = _create(client, quantity=2, staff=False).json()
        response = client.patch(f"/api/v1/transactions/{transaction['id']}/deny")
        assert response.status_code == 200
        assert client.get(f"/api/v1/transactions/{transaction['id']}").status_code == 404

    def test_complete_archives(self, client):
        transaction = _create(client).json()
        item_id = transaction["items"][0]["id"]
        response = client.post(
            f"/api/v1/transactions/{transaction['id']}/complete",
            json={"items": {item_id: {"checked": True, "quantity": 3}}},
        )
        assert response.status_code == 200
        assert response.json()["new_status"] == "Complete"

        records = client.get("/api/v1/records/").json()
        assert [r["transaction_id"] for r in records] == [transaction["transaction_id"]]
        assert client.get("/api/v1/records/student/2021-00001").json()[0]["final_status"] == "Complete"
        assert client.get("/api/v1/fines/").json() == []

    def test_complete_over_return_is_400(self, client):
        transaction = _create(client).json()
        item_id = transaction["items"][0]["id"]
        response = client.post(
            f"/api/v1/transactions/{transaction['id']}/complete",
            json={"items": {item_id: {"checked": True, "quantity": 9}}},
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_return_quantity"

    def test_delete(self, client):
        transaction = _create(client).json()
        assert client.delete(f"/api/v1/transactions/{transaction['id']}").status_code == 204
        equipment = client.get("/api/v1/equipment/eq-microscope").json()
        assert equipment["available_quantity"] == 3

    def test_filters(self, client):
        _create(client, quantity=1, staff=False)
        _create(client, quantity=1, staff=True)
        assert len(client.get("/api/v1/transactions/").json()) == 2
        assert len(client.get("/api/v1/transactions/", params={"status": "Request"}).json()) == 1
        assert client.get("/api/v1/transactions/", params={"status": "Lost"}).status_code == 400
        assert len(client.get("/api/v1/transactions/student/2021-00001").json()) == 2


class TestEquipmentApi:
    def test_crud(self, client):
        created = client.post("/api/v1/equipment/", json={"name": "Pipette", "total_quantity": 6})
        assert created.status_code == 201
        equipment_id = created.json()["id"]
        assert created.json()["available_quantity"] == 6

        updated = client.patch(f"/api/v1/equipment/{equipment_id}", json={"total_quantity": 8})
        assert updated.json()["available_quantity"] == 8

        assert client.delete(f"/api/v1/equipment/{equipment_id}").status_code == 204
        assert client.get(f"/api/v1/equipment/{equipment_id}").status_code == 404

    def test_null_update_is_422_and_leaves_equipment_readable(self, client):
        response = client.patch("/api/v1/equipment/eq-beaker", json={"name": None, "price_per_unit": None})
        assert response.status_code == 422

        listed = client.get("/api/v1/equipment/")
        assert listed.status_code == 200
        assert [e["name"] for e in listed.json()] == ["Beaker", "Microscope"]
        assert _create(client, quantity=1, equipment_id="eq-beaker").status_code == 201

    def test_delete_in_use(self, client):
        _create(client)
        response = client.delete("/api/v1/equipment/eq-microscope")
        assert response.status_code == 409
        assert response.json()["kind"] == "equipment_in_use"


class TestReportsAndMaintenanceApi:
    def test_summary(self, client):
        _create(client, quantity=1)
        report = client.get("/api/v1/reports/summary").json()
        assert report["transactions"]["ongoing"] == 1
        assert report["equipment"]["borrowed_units"] == 1

    def test_manual_sweep_uses_wall_clock(self, client):
        # The loan was due in mid 2025, so by the real clock it is overdue
        transaction = _create(client, quantity=1).json()
        response = client.post("/api/v1/maintenance/sweep")
        assert response.status_code == 200
        assert response.json() == {"updated": 1}
        assert client.get(f"/api/v1/transactions/{transaction['id']}").json()["status"] == "Overdue"

        assert client.post("/api/v1/maintenance/sweep").json() == {"updated": 0}
