"""Tests for the corn purchase and health HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from corn_gate.adapters.purchase_store.in_memory import InMemoryPurchaseStore
from corn_gate.core.app_factory import create_app
from corn_gate.core.config import settings
from corn_gate.core.errors import StoreUnavailableError
from corn_gate.services.purchase_gate import PurchaseGate


class UnavailableStore(InMemoryPurchaseStore):
    backend = "unavailable"

    async def consume(self, client_id, now, cooldown):
        raise StoreUnavailableError(details={"backend": self.backend, "operation": "consume"})

    async def get(self, client_id):
        raise StoreUnavailableError(details={"backend": self.backend, "operation": "get"})


@pytest.fixture
def gate(clock) -> PurchaseGate:
    return PurchaseGate(InMemoryPurchaseStore(), clock=clock)


@pytest.fixture
def client(gate: PurchaseGate) -> TestClient:
    return TestClient(create_app(gate=gate))


def _buy(client: TestClient, client_id: str | None = "c1"):
    headers = {} if client_id is None else {"clientId": client_id}
    return client.post("/corn/purchase", headers=headers)


class TestPurchase:
    def test_first_purchase_succeeds(self, client: TestClient, clock) -> None:
        resp = _buy(client)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Corn purchased successfully!"
        assert body["client_id"] == "c1"
        assert body["purchase_count"] == 1
        assert body["last_purchase_time"].startswith("2024-01-01T12:00:00")

    def test_second_purchase_within_minute_is_rate_limited(self, client: TestClient, clock) -> None:
        _buy(client)
        clock.advance(30)

        resp = _buy(client)

        assert resp.status_code == 429
        assert resp.json() == {"detail": "Too Many Requests: Limit exceeded."}
        assert resp.headers["Retry-After"] == "30"

    def test_purchase_after_minute_succeeds(self, client: TestClient, clock) -> None:
        _buy(client)
        clock.advance(61)

        resp = _buy(client)

        assert resp.status_code == 200
        assert resp.json()["purchase_count"] == 2

    def test_header_name_is_case_insensitive(self, client: TestClient) -> None:
        resp = client.post("/corn/purchase", headers={"CLIENTID": "c1"})

        assert resp.status_code == 200
        assert _buy(client, "c1").status_code == 429

    def test_clients_are_limited_independently(self, client: TestClient) -> None:
        assert _buy(client, "c1").status_code == 200
        assert _buy(client, "c2").status_code == 200
        assert _buy(client, "c1").status_code == 429

    def test_missing_header_returns_400(self, client: TestClient) -> None:
        resp = _buy(client, None)

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_client_id"
        assert error["details"]["header"] == "clientId"

    def test_empty_header_returns_400(self, client: TestClient) -> None:
        resp = _buy(client, "")

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_client_id"

    def test_store_unavailable_returns_503(self, clock) -> None:
        client = TestClient(create_app(gate=PurchaseGate(UnavailableStore(), clock=clock)))

        resp = _buy(client)

        assert resp.status_code == 503
        error = resp.json()["error"]
        assert error["code"] == "store_unavailable"
        assert "request_id" in error

    def test_get_is_not_allowed(self, client: TestClient) -> None:
        assert client.get("/corn/purchase").status_code == 405


class TestHealth:
    def test_liveness(self, client: TestClient) -> None:
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_readiness_reports_backend(self, client: TestClient) -> None:
        resp = client.get("/health/ready")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "store": "memory"}

    def test_readiness_fails_when_store_unavailable(self, clock) -> None:
        client = TestClient(create_app(gate=PurchaseGate(UnavailableStore(), clock=clock)))

        resp = client.get("/health/ready")

        assert resp.status_code == 503


class TestAppWiring:
    def test_cors_preflight_allows_configured_origin(self, client: TestClient) -> None:
        resp = client.options(
            "/corn/purchase",
            headers={
                "Origin": "http://localhost:5116",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "clientId",
            },
        )

        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:5116"

    def test_openapi_documents_client_id_header(self, client: TestClient) -> None:
        schema = client.get("/openapi.json").json()

        params = schema["paths"]["/corn/purchase"]["post"]["parameters"]
        assert {"name": "clientId", "in": "header"}.items() <= params[0].items()
        assert "429" in schema["paths"]["/corn/purchase"]["post"]["responses"]

    def test_lifespan_builds_memory_store_when_configured(self) -> None:
        app = create_app()

        with TestClient(app) as client:
            assert client.get("/health/ready").json()["store"] == "memory"
            assert _buy(client, "lifespan").status_code == 200

        assert app.state.purchase_gate is None


@pytest.fixture
def sql_store_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings.store, "backend", "sql")
    monkeypatch.setattr(
        settings.store, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'corn.db'}"
    )
    return settings.store


class TestDurableStore:
    def test_lifespan_builds_sql_store_from_settings(self, sql_store_settings) -> None:
        app = create_app()

        with TestClient(app) as client:
            assert client.get("/health/ready").json() == {"status": "ok", "store": "sql"}
            assert _buy(client, "lifespan").status_code == 200

        assert app.state.purchase_gate is None

    def test_workers_sharing_database_share_cooldown(self, sql_store_settings) -> None:
        with TestClient(create_app()) as worker_a, TestClient(create_app()) as worker_b:
            assert _buy(worker_a, "c1").status_code == 200
            assert _buy(worker_b, "c1").status_code == 429

    def test_cooldown_survives_restart(self, sql_store_settings) -> None:
        with TestClient(create_app()) as first_run:
            assert _buy(first_run, "c1").status_code == 200

        with TestClient(create_app()) as second_run:
            resp = _buy(second_run, "c1")

        assert resp.status_code == 429
        assert resp.headers["Retry-After"]
