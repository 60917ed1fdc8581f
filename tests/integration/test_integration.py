"""
Integration test suite for a running record store.

Runs against RECORD_STORE_URL (for example ``http://localhost:8000``) and
mints its own bearer tokens, so JWT_SECRET must match the server's.
"""

import os
import time
import uuid
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from record_store.core_settings import Settings
from record_store.infrastructure.auth import create_access_token

BASE_URL = os.getenv("RECORD_STORE_URL")
HEALTH_CHECK_RETRIES = 30
HEALTH_CHECK_DELAY = 2

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not BASE_URL, reason="RECORD_STORE_URL is not set"),
]


class TestRecordStoreIntegration:
    """End-to-end checks against a deployed service"""

    @classmethod
    def setup_class(cls):
        cls.client = httpx.Client(base_url=BASE_URL, timeout=30.0)
        cls.wait_for_service()
        settings = Settings()
        suffix = uuid.uuid4().hex[:8]
        cls.customer = f"customer-{suffix}@email.com"
        cls.admin_headers = cls.bearer(create_access_token(f"admin-{suffix}@email.com", role="admin", settings=settings))
        cls.customer_headers = cls.bearer(create_access_token(cls.customer, settings=settings))
        cls.suffix = suffix

    @classmethod
    def teardown_class(cls):
        cls.client.close()

    @staticmethod
    def bearer(token):
        return {"Authorization": f"Bearer {token}"}

    @classmethod
    def wait_for_service(cls):
        for attempt in range(HEALTH_CHECK_RETRIES):
            try:
                if cls.client.get("/health").status_code == 200:
                    return
            except httpx.HTTPError as e:
                print(f"Attempt {attempt + 1}/{HEALTH_CHECK_RETRIES}: {e}")
            time.sleep(HEALTH_CHECK_DELAY)
        raise RuntimeError("Record store failed to start within timeout period")

    def create_record(self, qty=5):
        response = self.client.post(
            "/records/",
            json={
                "artist": f"Integration Artist {self.suffix}",
                "album": f"Album {uuid.uuid4().hex[:8]}",
                "price": 12.5,
                "qty": qty,
                "format": "Vinyl",
                "category": "Rock",
            },
            headers=self.admin_headers,
        )
        assert response.status_code == 201
        return response.json()["data"]

    def test_health_endpoints(self):
        for endpoint in ["/health", "/health/live", "/health/ready", "/health/startup"]:
            response = self.client.get(endpoint)
            assert response.status_code in [200, 503]
            assert "status" in response.json()

    def test_metrics_endpoint(self):
        data = self.client.get("/metrics").json()
        assert data["service"] == "record-store"
        assert "uptime_seconds" in data

    def test_catalog_crud(self):
        record = self.create_record()

        response = self.client.get("/records/", params={"artist": self.suffix})
        assert response.status_code == 200
        assert record["id"] in [r["id"] for r in response.json()["data"]["items"]]

        response = self.client.put(f"/records/{record['id']}", json={"qty": 7}, headers=self.admin_headers)
        assert response.json()["data"]["qty"] == 7

        response = self.client.delete(f"/records/{record['id']}", headers=self.admin_headers)
        assert response.status_code == 200
        assert self.client.get(f"/records/{record['id']}").status_code == 404

    def test_order_workflow(self):
        record = self.create_record(qty=3)

        response = self.client.post("/orders/", json={"record_id": record["id"], "quantity": 2}, headers=self.customer_headers)
        assert response.status_code == 201
        order = response.json()["data"]
        assert order["email"] == self.customer
        assert self.client.get(f"/records/{record['id']}").json()["data"]["qty"] == 1

        response = self.client.post("/orders/", json={"record_id": record["id"], "quantity": 2}, headers=self.customer_headers)
        assert response.status_code == 400
        assert response.json()["error"]["available"] == 1

        response = self.client.patch(f"/orders/{order['id']}", json={"status": "cancelled"}, headers=self.customer_headers)
        assert response.json()["data"]["status"] == "cancelled"
        assert self.client.get(f"/records/{record['id']}").json()["data"]["qty"] == 3

    def test_concurrent_orders_never_oversell(self):
        record = self.create_record(qty=5)

        def place(client):
            return client.post("/orders/", json={"record_id": record["id"], "quantity": 1}, headers=self.customer_headers)

        with httpx.Client(base_url=BASE_URL, timeout=30.0) as client:
            with ThreadPoolExecutor(max_workers=10) as pool:
                responses = list(pool.map(lambda _: place(client), range(10)))

        placed = [r for r in responses if r.status_code == 201]
        assert len(placed) <= 5
        assert self.client.get(f"/records/{record['id']}").json()["data"]["qty"] == 5 - len(placed)

    def test_unauthenticated_requests_are_rejected(self):
        assert self.client.get("/orders/").status_code == 401
        assert self.client.post("/records/", json={}).status_code == 401
