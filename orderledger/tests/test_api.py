"""
HTTP tests for the order ledger API
"""

import pytest
from fastapi.testclient import TestClient

from orderledger.api import create_app


@pytest.fixture
def client(settings, services) -> TestClient:
    return TestClient(create_app(settings, services))


@pytest.fixture
def distributer_headers(distributer) -> dict:
    return {"X-Distributer-Id": str(distributer.id)}


@pytest.fixture
def actor_headers(field_actor) -> dict:
    return {"X-Actor-Id": str(field_actor.id)}


def create_order(client, headers, **overrides):
    payload = {"qty": 10, "unit": "kg", "total": 500, "payment_mode": "cod"}
    payload.update(overrides)
    return client.post("/orders", json=payload, headers=headers)


class TestOrderRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_identity_is_required(self, client):
        assert create_order(client, {}).status_code == 401

    def test_malformed_identity_header(self, client):
        assert create_order(client, {"X-Distributer-Id": "DIST-01"}).status_code == 401

    def test_create_order(self, client, distributer_headers, field_actor):
        response = create_order(client, distributer_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["order_id"] == "ORDER-01"
        assert body["status"] == "processing"
        assert body["cod"] is True
        assert body["assigned_to"] == str(field_actor.id)

    def test_create_order_missing_fields(self, client, distributer_headers):
        response = client.post("/orders", json={"qty": 10}, headers=distributer_headers)
        assert response.status_code == 400

    def test_create_order_negative_total(self, client, distributer_headers):
        assert create_order(client, distributer_headers, total=-500).status_code == 400
        assert client.get("/orders", headers=distributer_headers).json() == []

    def test_create_order_unknown_distributer(self, client):
        headers = {"X-Distributer-Id": "00000000-0000-0000-0000-000000000000"}
        assert create_order(client, headers).status_code == 404

    def test_status_update(self, client, distributer_headers, actor_headers):
        order = create_order(client, distributer_headers).json()

        response = client.patch(f"/orders/{order['id']}/status", json={"status": "completed"}, headers=actor_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == "completed"
        assert body["distributer"]["fullname"] == "Sunil Traders"
        assert body["assignee"]["fullname"] == "Ravi Kumar"

    def test_invalid_status(self, client, distributer_headers, actor_headers):
        order = create_order(client, distributer_headers).json()
        response = client.patch(f"/orders/{order['id']}/status", json={"status": "lost"}, headers=actor_headers)
        assert response.status_code == 400

    def test_missing_order(self, client, actor_headers):
        response = client.get("/orders/00000000-0000-0000-0000-000000000000", headers=actor_headers)
        assert response.status_code == 404

    def test_payment_update_is_idempotent(self, client, distributer_headers, actor_headers):
        order = create_order(client, distributer_headers).json()
        url = f"/orders/{order['id']}/payment"

        first = client.patch(url, json={"paid": True, "payment_mode": "upi"}, headers=actor_headers)
        second = client.patch(url, json={"paid": True, "payment_mode": "upi"}, headers=actor_headers)

        assert first.status_code == 200
        assert first.json()["transaction"]["type"] == "credit"
        assert first.json()["transaction"]["payment_mode"] == "upi"
        assert second.status_code == 200
        assert second.json()["transaction"] is None

        listing = client.get("/transactions", headers=distributer_headers).json()
        assert listing["total"] == 1

    def test_reassign(self, client, services, distributer_headers, actor_headers):
        order = create_order(client, distributer_headers).json()
        other = services.directory.add_actor("Meena Rao", "9000000003")

        response = client.patch(
            f"/orders/{order['id']}/assignee", json={"assigned_to": str(other.id)}, headers=actor_headers
        )
        assert response.status_code == 200
        assert response.json()["assigned_to"] == str(other.id)

        bad = client.patch(f"/orders/{order['id']}/assignee", json={"assigned_to": "nobody"}, headers=actor_headers)
        assert bad.status_code == 400

    def test_list_orders(self, client, distributer_headers):
        create_order(client, distributer_headers)
        response = client.get("/orders", headers=distributer_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1


class TestLedgerRoutes:

    def test_dispatch_and_summary(self, client, distributer, distributer_headers, actor_headers):
        order = create_order(client, distributer_headers).json()
        client.patch(f"/orders/{order['id']}/payment", json={"paid": True}, headers=actor_headers)

        response = client.post(
            "/dispatches",
            json={"distributer_id": str(distributer.id), "qty": 5, "unit": "kg", "total_price": 200, "mode": "cash"},
            headers=actor_headers,
        )
        assert response.status_code == 201
        assert response.json()["transaction"]["type"] == "debit"

        summary = client.get(f"/distributers/{distributer.id}/summary", headers=actor_headers).json()
        assert float(summary["total_credit"]) == 500
        assert float(summary["total_debit"]) == 200
        assert float(summary["balance"]) == 300
        assert summary["count"] == 2

        assert len(client.get("/dispatches", headers=actor_headers).json()) == 1
        assert len(client.get("/dispatches/today", headers=actor_headers).json()) == 1

    def test_dispatch_validation(self, client, distributer, actor_headers):
        response = client.post(
            "/dispatches",
            json={"distributer_id": str(distributer.id), "qty": 5, "unit": "kg", "total_price": 200, "mode": "upi"},
            headers=actor_headers,
        )
        assert response.status_code == 400

    def test_transaction_type_filter(self, client, distributer, distributer_headers, actor_headers):
        client.post(
            "/dispatches",
            json={"distributer_id": str(distributer.id), "qty": 5, "unit": "kg", "total_price": 200, "mode": "credit"},
            headers=actor_headers,
        )
        assert client.get("/transactions?type=credit", headers=distributer_headers).json()["total"] == 0
        assert client.get("/transactions?type=debit", headers=distributer_headers).json()["total"] == 1

    def test_negative_dispatch_price_is_a_bad_request(self, client, distributer, actor_headers):
        response = client.post(
            "/dispatches",
            json={"distributer_id": str(distributer.id), "qty": 5, "unit": "kg", "total_price": -200, "mode": "cash"},
            headers=actor_headers,
        )
        assert response.status_code == 400
        assert client.get("/dispatches", headers=actor_headers).json() == []

    def test_distributers_added_by_caller(self, client, distributer, actor_headers, distributer_headers):
        response = client.get("/distributers/by-added-by", headers=actor_headers)
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [str(distributer.id)]

        assert client.get("/distributers/by-added-by", headers=distributer_headers).status_code == 400

    def test_summary_with_malformed_id(self, client, actor_headers):
        assert client.get("/distributers/DIST-01/summary", headers=actor_headers).status_code == 400

    def test_push_token(self, client, services, distributer, distributer_headers):
        response = client.patch("/push-token", json={"fcm_token": "fresh-token"}, headers=distributer_headers)
        assert response.status_code == 200
        assert services.storage.get_distributer(distributer.id)["fcm_token"] == "fresh-token"
