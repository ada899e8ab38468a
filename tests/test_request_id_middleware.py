from __future__ import annotations

from fastapi.testclient import TestClient

from corn_gate.adapters.purchase_store.in_memory import InMemoryPurchaseStore
from corn_gate.core.app_factory import create_app
from corn_gate.core.errors import StoreUnavailableError
from corn_gate.main import app
from corn_gate.services.purchase_gate import PurchaseGate


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert resp.headers.get("X-Request-Duration-ms") is not None


class UnavailableStore(InMemoryPurchaseStore):
    backend = "unavailable"

    async def consume(self, client_id, now, cooldown):
        raise StoreUnavailableError(details={"backend": self.backend, "operation": "consume"})


def test_store_failure_envelope_carries_request_id():
    failing_client = TestClient(create_app(gate=PurchaseGate(UnavailableStore())))

    resp = failing_client.post(
        "/corn/purchase",
        headers={"X-Request-ID": "req-err-1", "clientId": "c1"},
    )

    assert resp.status_code == 503
    assert resp.json()["error"]["request_id"] == "req-err-1"
    assert resp.json()["error"]["code"] == "store_unavailable"
    assert resp.headers.get("X-Request-ID") == "req-err-1"
