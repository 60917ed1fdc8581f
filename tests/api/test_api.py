"""
HTTP surface: routing, auth, status codes and the response envelope.

The app is built with the suite's engine and an in-memory cache and never
talks to MusicBrainz.
"""

import logging
import pytest
from fastapi.testclient import TestClient

from record_store.infrastructure.auth import create_access_token
from record_store.main import create_app
from support import FakeMetadataLookup

CUSTOMER = "johndoe@email.com"
ADMIN = "admin@email.com"


@pytest.fixture
def client(settings, engine, cache):
    app = create_app(settings=settings, engine=engine, cache=cache, metadata=FakeMetadataLookup(), bootstrap=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth(settings):
    def _headers(subject=CUSTOMER, role="user"):
        return {"Authorization": f"Bearer {create_access_token(subject, role=role, settings=settings)}"}

    return _headers


@pytest.fixture
def record_id(client, auth):
    response = client.post(
        "/records/",
        json={
            "artist": "Radiohead",
            "album": "OK Computer",
            "price": 25.0,
            "qty": 5,
            "format": "Vinyl",
            "category": "Alternative",
        },
        headers=auth(ADMIN, "admin"),
    )
    assert response.status_code == 201
    return response.json()["data"]["id"]


class TestRecords:
    def test_create_returns_envelope(self, client, auth):
        response = client.post(
            "/records/",
            json={"artist": "Miles Davis", "album": "Kind of Blue", "price": 30, "qty": 2,
                  "format": "CD", "category": "Jazz"},
            headers=auth(ADMIN, "admin"),
        )
        body = response.json()
        assert response.status_code == 201
        assert body["status"] == 201
        assert body["message"] == "Record created successfully"
        assert body["error"] is None
        assert body["data"]["format"] == "CD"

    def test_catalog_is_public(self, client, record_id):
        response = client.get("/records/", params={"q": "radio"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["meta"]["total_items"] == 1
        assert data["items"][0]["id"] == record_id

        assert client.get(f"/records/{record_id}").json()["data"]["album"] == "OK Computer"

    def test_customers_cannot_manage_the_catalog(self, client, auth, record_id):
        response = client.put(f"/records/{record_id}", json={"qty": 50}, headers=auth())
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "UNAUTHORIZED"
        assert response.json()["message"] == "Only administrators can perform this action"

    def test_writes_need_a_token(self, client):
        response = client.post("/records/", json={})
        assert response.status_code == 401
        assert response.json()["message"] == "Missing bearer token"

    def test_bad_token(self, client):
        response = client.delete("/records/1", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    def test_duplicate_is_a_conflict(self, client, auth, record_id):
        response = client.post(
            "/records/",
            json={"artist": "Radiohead", "album": "OK Computer", "price": 10, "qty": 1,
                  "format": "Vinyl", "category": "Rock"},
            headers=auth(ADMIN, "admin"),
        )
        assert response.status_code == 409
        assert response.json()["error"] == {
            "code": "CONFLICT", "artist": "Radiohead", "album": "OK Computer", "format": "Vinyl",
        }

    def test_missing_record(self, client):
        response = client.get("/records/999")
        assert response.status_code == 404
        assert response.json()["message"] == "Record with ID 999 not found"
        assert response.json()["data"] is None

    def test_invalid_payload(self, client, auth):
        response = client.post("/records/", json={"artist": "x"}, headers=auth(ADMIN, "admin"))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_page_size_is_capped(self, client):
        assert client.get("/records/", params={"limit": 101}).status_code == 422

    def test_delete(self, client, auth, record_id):
        response = client.delete(f"/records/{record_id}", headers=auth(ADMIN, "admin"))
        assert response.status_code == 200
        assert client.get(f"/records/{record_id}").status_code == 404


class TestOrders:
    def test_order_lifecycle(self, client, auth, record_id):
        created = client.post("/orders/", json={"record_id": record_id, "quantity": 2}, headers=auth())
        assert created.status_code == 201
        order = created.json()["data"]
        assert order["email"] == CUSTOMER
        assert order["status"] == "pending"
        assert order["total_price"] == 50.0
        assert client.get(f"/records/{record_id}").json()["data"]["qty"] == 3

        resized = client.patch(f"/orders/{order['id']}", json={"quantity": 4}, headers=auth())
        assert resized.status_code == 200
        assert client.get(f"/records/{record_id}").json()["data"]["qty"] == 1

        cancelled = client.patch(f"/orders/{order['id']}", json={"status": "cancelled"}, headers=auth())
        assert cancelled.json()["data"]["status"] == "cancelled"
        assert client.get(f"/records/{record_id}").json()["data"]["qty"] == 5

        removed = client.delete(f"/orders/{order['id']}", headers=auth())
        assert removed.status_code == 200
        assert client.get(f"/orders/{order['id']}", headers=auth()).status_code == 404

    def test_insufficient_stock(self, client, auth, record_id):
        response = client.post("/orders/", json={"record_id": record_id, "quantity": 6}, headers=auth())
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Not enough records in stock"
        assert body["error"]["code"] == "INSUFFICIENT_STOCK"
        assert body["error"]["requested"] == 6
        assert body["error"]["available"] == 5

    def test_orders_need_a_token(self, client):
        assert client.get("/orders/").status_code == 401

    def test_other_customers_orders_are_private(self, client, auth, record_id):
        order = client.post("/orders/", json={"record_id": record_id, "quantity": 1}, headers=auth()).json()["data"]

        stranger = auth("janedoe@email.com")
        assert client.get(f"/orders/{order['id']}", headers=stranger).status_code == 403
        assert client.get("/orders/", headers=stranger).json()["data"]["meta"]["total_items"] == 0
        assert client.get("/orders/", headers=auth(ADMIN, "admin")).json()["data"]["meta"]["total_items"] == 1

    def test_unknown_patch_field_is_rejected(self, client, auth, record_id):
        order = client.post("/orders/", json={"record_id": record_id, "quantity": 1}, headers=auth()).json()["data"]
        response = client.patch(f"/orders/{order['id']}", json={"email": "x@email.com"}, headers=auth())
        assert response.status_code == 422

    def test_invalid_transition(self, client, auth, record_id):
        order = client.post("/orders/", json={"record_id": record_id, "quantity": 1}, headers=auth()).json()["data"]
        client.patch(f"/orders/{order['id']}", json={"status": "completed"}, headers=auth())

        response = client.patch(f"/orders/{order['id']}", json={"status": "pending"}, headers=auth())
        assert response.status_code == 400
        assert response.json()["message"] == "Order status cannot change from completed to pending"


class TestServiceEndpoints:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "pass"
        assert body["service"] == "record-store"
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness_reports_database(self, client):
        body = client.get("/health/ready").json()
        assert body["checks"]["database:connectivity"]["status"] == "pass"
        assert body["checks"]["cache:connectivity"]["status"] == "pass"

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["service"] == "record-store"

    def test_request_id_is_generated(self, client):
        assert client.get("/info").headers.get("X-Request-ID")


class TestRequestContext:
    def test_service_logs_carry_the_caller(self, client, auth, record_id, caplog):
        with caplog.at_level(logging.INFO, logger="record_store.application.orders"):
            response = client.post("/orders/", json={"record_id": record_id, "quantity": 1}, headers=auth())
        assert response.status_code == 201

        placed = [r for r in caplog.records if r.name == "record_store.application.orders" and "placed" in r.getMessage()]
        assert placed
        assert placed[0].user_id == CUSTOMER

    def test_access_log_carries_the_caller(self, client, auth, caplog):
        with caplog.at_level(logging.INFO, logger="shared.core.logging_config"):
            client.get("/orders/", headers=auth())

        access = [r for r in caplog.records if r.name == "shared.core.logging_config" and "/orders/" in r.getMessage()]
        assert access
        assert access[-1].extra_fields["user_id"] == CUSTOMER
